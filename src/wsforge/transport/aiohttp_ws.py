"""WebSocket transport built on ``aiohttp.ClientSession.ws_connect``."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import aiohttp

from wsforge._internal.errors import ConnectError, ConnectionClosedError, TransportError
from wsforge._internal.logging import get_logger
from wsforge.transport.base import (
    CLOSE_SENT,
    SWITCHING_PROTOCOLS,
    Close,
    Error,
    Message,
    Open,
)

if TYPE_CHECKING:
    from wsforge._internal.types import Tags
    from wsforge.transport.base import Signal

logger = get_logger("transport.aiohttp")

_CLOSED_TYPES = (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED)


class AiohttpConnection:
    """One WebSocket connection, adapted to the signal-based contract.

    Attributes:
        tags: Tags the connection was opened with.
    """

    def __init__(self, ws: aiohttp.ClientWebSocketResponse, tags: Tags) -> None:
        self.tags = tags
        self._ws = ws
        self._opened = False
        self._close_requested = False

    @property
    def status(self) -> int:
        # ws_connect only returns after a validated 101 upgrade.
        return SWITCHING_PROTOCOLS

    async def receive(self) -> Signal:
        if not self._opened:
            self._opened = True
            return Open()

        while True:
            msg = await self._ws.receive()
            if msg.type == aiohttp.WSMsgType.TEXT:
                return Message(payload=msg.data)
            if msg.type == aiohttp.WSMsgType.BINARY:
                return Message(payload=msg.data.decode("utf-8", errors="replace"))
            if msg.type in _CLOSED_TYPES:
                return Close(code=self._ws.close_code)
            if msg.type == aiohttp.WSMsgType.ERROR:
                exc = self._ws.exception()
                return Error(cause=str(exc) if exc is not None else str(msg.data))
            # PING/PONG are answered by aiohttp itself.
            logger.debug("Ignoring frame of type %s", msg.type)

    async def send(self, payload: str) -> None:
        if self._close_requested or self._ws.closed:
            raise ConnectionClosedError(CLOSE_SENT)
        try:
            await self._ws.send_str(payload)
        except ConnectionResetError as exc:
            raise ConnectionClosedError(CLOSE_SENT) from exc
        except (aiohttp.ClientError, OSError) as exc:
            msg = f"{type(exc).__name__}: {exc}"
            raise TransportError(msg) from exc

    async def close(self) -> None:
        self._close_requested = True
        if not self._ws.closed:
            await self._ws.close()


class AiohttpTransport:
    """Opens :class:`AiohttpConnection` objects over a shared client session.

    Must be used as an async context manager; the session is closed on exit.

    Example::

        async with AiohttpTransport(connect_timeout=10.0) as transport:
            conn = await transport.connect("ws://localhost:8080/ws", {"src": "websocket"})
    """

    def __init__(self, connect_timeout: float = 30.0) -> None:
        self._timeout = aiohttp.ClientWSTimeout(ws_receive=None, ws_close=connect_timeout)
        self._connect_timeout = connect_timeout
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> AiohttpTransport:
        self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def connect(self, url: str, tags: Tags) -> AiohttpConnection:
        """Perform the WebSocket handshake with *url*.

        Args:
            url: ``ws://`` or ``wss://`` endpoint.
            tags: Tags attached to the connection for metric segmentation.

        Returns:
            The open connection.

        Raises:
            ConnectError: If the handshake fails or times out.
            RuntimeError: If used outside of an async context manager.
        """
        if self._session is None:
            msg = "AiohttpTransport must be used as an async context manager"
            raise RuntimeError(msg)

        try:
            ws = await asyncio.wait_for(
                self._session.ws_connect(url, timeout=self._timeout, autoping=True),
                timeout=self._connect_timeout,
            )
        except aiohttp.WSServerHandshakeError as exc:
            msg = f"handshake failed: {exc.status} {exc.message}"
            raise ConnectError(msg, status=exc.status) from exc
        except TimeoutError as exc:
            msg = f"handshake timed out after {self._connect_timeout:g}s"
            raise ConnectError(msg) from exc
        except (aiohttp.ClientError, OSError) as exc:
            msg = f"{type(exc).__name__}: {exc}"
            raise ConnectError(msg) from exc

        return AiohttpConnection(ws, tags)
