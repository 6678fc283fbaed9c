"""Shared test fixtures for WsForge test suite."""

from __future__ import annotations

import asyncio
import logging
import socket
import threading
import weakref
from typing import TYPE_CHECKING

import aiohttp
import pytest
from aiohttp import web

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator


# =============================================================================
# Pytest configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    for item in items:
        test_path = str(item.fspath)
        if "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path:
            item.add_marker(pytest.mark.e2e)


@pytest.fixture(autouse=True)
def _reset_wsforge_logger() -> Iterator[None]:
    """Undo ``setup_logging`` so caplog sees records and handlers don't leak."""

    def _reset() -> None:
        logger = logging.getLogger("wsforge")
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        logger.propagate = True
        logger.setLevel(logging.NOTSET)

    _reset()
    yield
    _reset()


# =============================================================================
# Network utilities
# =============================================================================


def _get_free_port() -> int:
    """Find an available port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


# =============================================================================
# WebSocket server handlers
# =============================================================================

_WEBSOCKETS = web.AppKey("websockets", weakref.WeakSet)


async def _close_websockets(app: web.Application) -> None:
    """Close server-side sockets still open at shutdown."""
    for ws in list(app[_WEBSOCKETS]):
        await ws.close(code=aiohttp.WSCloseCode.GOING_AWAY, message=b"Server shutdown")


async def _prepare(request: web.Request) -> web.WebSocketResponse:
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    request.app[_WEBSOCKETS].add(ws)
    return ws


async def _echo_handler(request: web.Request) -> web.WebSocketResponse:
    """Echo every text and binary frame back to the client."""
    ws = await _prepare(request)
    async for msg in ws:
        if msg.type == aiohttp.WSMsgType.TEXT:
            await ws.send_str(msg.data)
        elif msg.type == aiohttp.WSMsgType.BINARY:
            await ws.send_bytes(msg.data)
    return ws


async def _chatty_handler(request: web.Request) -> web.WebSocketResponse:
    """Send unrelated frames before echoing, like a server pushing state."""
    ws = await _prepare(request)
    await ws.send_str("welcome")
    async for msg in ws:
        if msg.type == aiohttp.WSMsgType.TEXT:
            await ws.send_str("tick")
            await ws.send_str(msg.data)
            await ws.send_str("tock")
    return ws


async def _silent_handler(request: web.Request) -> web.WebSocketResponse:
    """Accept the upgrade and never answer."""
    ws = await _prepare(request)
    async for _msg in ws:
        pass
    return ws


async def _hangup_handler(request: web.Request) -> web.WebSocketResponse:
    """Close the connection right after the first frame arrives."""
    ws = await _prepare(request)
    await ws.receive()
    await ws.close()
    return ws


async def _reject_handler(request: web.Request) -> web.Response:
    """Refuse the upgrade with a plain HTTP error."""
    return web.json_response({"error": "forbidden"}, status=403)


def _create_ws_app() -> web.Application:
    """Build the WebSocket test server app with all test routes."""
    app = web.Application()
    app[_WEBSOCKETS] = weakref.WeakSet()
    app.on_shutdown.append(_close_websockets)
    app.router.add_get("/ws", _echo_handler)
    app.router.add_get("/chatty", _chatty_handler)
    app.router.add_get("/silent", _silent_handler)
    app.router.add_get("/hangup", _hangup_handler)
    app.router.add_get("/reject", _reject_handler)
    return app


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def ws_server() -> AsyncIterator[str]:
    """Aiohttp WebSocket server fixture.

    Returns the base URL (e.g., 'ws://127.0.0.1:54321'); append ``/ws``,
    ``/chatty``, ``/silent``, ``/hangup`` or ``/reject``.
    """
    app = _create_ws_app()
    port = _get_free_port()
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    yield f"ws://127.0.0.1:{port}"
    await runner.cleanup()


@pytest.fixture
def sync_ws_server() -> Iterator[str]:
    """WebSocket server running in a background thread for sync tests.

    Useful for CLI tests where the command blocks the main thread with
    its own event loop.
    """
    port = _get_free_port()
    started = threading.Event()
    loop_holder: list[asyncio.AbstractEventLoop] = []

    def _thread_target() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        runner = web.AppRunner(_create_ws_app())
        loop.run_until_complete(runner.setup())
        site = web.TCPSite(runner, "127.0.0.1", port)
        loop.run_until_complete(site.start())
        loop_holder.append(loop)
        started.set()
        loop.run_forever()
        loop.run_until_complete(runner.cleanup())
        loop.close()

    thread = threading.Thread(target=_thread_target, daemon=True)
    thread.start()
    started.wait(timeout=5.0)

    yield f"ws://127.0.0.1:{port}"

    if loop_holder:
        loop_holder[0].call_soon_threadsafe(loop_holder[0].stop)
    thread.join(timeout=5.0)
