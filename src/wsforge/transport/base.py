"""Transport contract: connection signals and the connect/send/receive protocol."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from wsforge._internal.types import Tags

# Cause reported when a send or close races a close that was already sent.
CLOSE_SENT = "websocket: close sent"

# Handshake status of a successful WebSocket upgrade.
SWITCHING_PROTOCOLS = 101


@dataclass(frozen=True)
class Open:
    """The connection is established and ready to send."""


@dataclass(frozen=True)
class Message:
    """A text payload arrived from the server."""

    payload: str


@dataclass(frozen=True)
class Close:
    """The connection closed, by either side."""

    code: int | None = None


@dataclass(frozen=True)
class Error:
    """The connection failed; *cause* is a short description."""

    cause: str


Signal = Open | Message | Close | Error


class Connection(Protocol):
    """An open bidirectional connection.

    Signals are delivered through :meth:`receive` in arrival order; the
    first one is always :class:`Open`. Once :class:`Close` or
    :class:`Error` has been returned, no further signals follow.
    """

    @property
    def status(self) -> int:
        """HTTP status of the handshake response."""
        ...

    async def receive(self) -> Signal:
        """Wait for and return the next signal."""
        ...

    async def send(self, payload: str) -> None:
        """Send a text payload.

        Raises:
            ConnectionClosedError: If a close was already sent.
            TransportError: On any other send failure.
        """
        ...

    async def close(self) -> None:
        """Request a close. Safe to call more than once."""
        ...


class Transport(Protocol):
    """Factory for connections."""

    async def connect(self, url: str, tags: Tags) -> Connection:
        """Open a connection to *url*.

        Raises:
            ConnectError: If the handshake fails.
        """
        ...
