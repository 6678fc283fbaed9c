"""Tests for the probe session state machine, driven by a scripted transport."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import pytest

from wsforge._internal.errors import (
    ConnectError,
    ConnectionClosedError,
    InvalidTransitionError,
    TransportError,
)
from wsforge.engine.session import (
    CONNECTED_CHECK,
    PROBE_ECHOES,
    PROBE_RTT,
    ProbeSession,
    SessionState,
)
from wsforge.metrics.sink import CheckTally, InMemorySink, MetricKind
from wsforge.scenarios.catalog import RTT_GAUGE
from wsforge.transport.base import CLOSE_SENT, Close, Error, Message, Open

if TYPE_CHECKING:
    from collections.abc import Callable

    from wsforge._internal.types import Tags
    from wsforge.transport.base import Signal

PROBE = "onTestcase1"


# =============================================================================
# Fakes
# =============================================================================


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakeConnection:
    """Replays scripted signals; a close request yields one ``Close``."""

    def __init__(
        self,
        script: list[Signal | Exception],
        *,
        status: int = 101,
        send_error: TransportError | None = None,
        on_receive: Callable[[Signal | Exception], None] | None = None,
    ) -> None:
        self.sent: list[str] = []
        self.close_calls = 0
        self._status = status
        self._send_error = send_error
        self._on_receive = on_receive
        self._queue: asyncio.Queue[Signal | Exception] = asyncio.Queue()
        for item in script:
            self._queue.put_nowait(item)

    @property
    def status(self) -> int:
        return self._status

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    async def receive(self) -> Signal:
        item = await self._queue.get()
        if self._on_receive is not None:
            self._on_receive(item)
        if isinstance(item, Exception):
            raise item
        return item

    async def send(self, payload: str) -> None:
        if self._send_error is not None:
            raise self._send_error
        self.sent.append(payload)

    async def close(self) -> None:
        if self.close_calls == 0:
            self._queue.put_nowait(Close(code=1000))
        self.close_calls += 1


class FakeTransport:
    """Hands out one prepared connection, or fails the handshake."""

    def __init__(
        self,
        connection: FakeConnection | None = None,
        error: ConnectError | None = None,
    ) -> None:
        self.connection = connection
        self.error = error
        self.connect_calls: list[tuple[str, Tags]] = []

    async def connect(self, url: str, tags: Tags) -> FakeConnection:
        self.connect_calls.append((url, tags))
        if self.error is not None:
            raise self.error
        assert self.connection is not None
        return self.connection


class PendingTransport(FakeTransport):
    """Holds the handshake open until released."""

    def __init__(self, connection: FakeConnection) -> None:
        super().__init__(connection)
        self.release = asyncio.Event()

    async def connect(self, url: str, tags: Tags) -> FakeConnection:
        await self.release.wait()
        return await super().connect(url, tags)


def _session(
    transport: FakeTransport,
    sink: InMemorySink,
    **kwargs: object,
) -> ProbeSession:
    kwargs.setdefault("cooldown_seconds", 0.0)
    return ProbeSession(
        "ws://test/ws",
        transport,
        sink,
        worker_ordinal=1,
        probe=PROBE,
        **kwargs,  # type: ignore[arg-type]
    )


def _warnings(caplog: pytest.LogCaptureFixture) -> list[logging.LogRecord]:
    return [r for r in caplog.records if r.levelno >= logging.WARNING]


@pytest.fixture
def sink() -> InMemorySink:
    return InMemorySink()


# =============================================================================
# Tests
# =============================================================================


class TestProbeExchange:
    """Tests for the normal probe/echo cycle."""

    async def test_single_cycle(self, sink: InMemorySink) -> None:
        conn = FakeConnection([Open(), Message(PROBE), Close(1000)])
        transport = FakeTransport(conn)
        session = _session(transport, sink)

        state = await session.run()

        assert state is SessionState.CLOSED
        assert conn.sent == [PROBE]
        assert conn.closed
        assert sink.counters[PROBE_ECHOES] == 1
        assert sink.duration_counts[PROBE_RTT] == 1
        assert RTT_GAUGE in sink.gauges
        assert sink.checks[CONNECTED_CHECK] == CheckTally(passes=1, fails=0)

    async def test_latency_measured_from_connect(self, sink: InMemorySink) -> None:
        clock = FakeClock()

        def _advance(item: Signal | Exception) -> None:
            if isinstance(item, Message):
                clock.now += 0.025

        conn = FakeConnection([Open(), Message(PROBE), Close()], on_receive=_advance)
        session = _session(FakeTransport(conn), sink, clock=clock)

        await session.run()

        assert sink.gauges[RTT_GAUGE] == pytest.approx(25.0)
        assert sink.samples(PROBE_RTT)[0].value == pytest.approx(25.0)

    async def test_one_match_among_many_messages(self, sink: InMemorySink) -> None:
        script: list[Signal | Exception] = [
            Open(),
            Message("welcome"),
            Message("tick"),
            Message(PROBE),
            Message("tock"),
            Message(PROBE.upper()),
            Close(),
        ]
        session = _session(FakeTransport(FakeConnection(script)), sink)

        await session.run()

        assert sink.counters[PROBE_ECHOES] == 1
        assert len([s for s in sink.samples(RTT_GAUGE) if s.kind is MetricKind.GAUGE]) == 1

    async def test_repeated_echo_counts_but_times_once(self, sink: InMemorySink) -> None:
        script: list[Signal | Exception] = [Open(), Message(PROBE), Message(PROBE), Close()]
        session = _session(FakeTransport(FakeConnection(script)), sink)

        await session.run()

        assert sink.counters[PROBE_ECHOES] == 2
        assert sink.duration_counts[PROBE_RTT] == 1
        assert len(sink.samples(RTT_GAUGE)) == 1

    async def test_unanswered_probe_records_nothing(self, sink: InMemorySink) -> None:
        session = _session(FakeTransport(FakeConnection([Open(), Close()])), sink)

        assert await session.run() is SessionState.CLOSED
        assert sink.counters[PROBE_ECHOES] == 0
        assert sink.duration_counts[PROBE_RTT] == 0
        assert RTT_GAUGE not in sink.gauges

    async def test_tags_reach_transport_and_metrics(self, sink: InMemorySink) -> None:
        transport = FakeTransport(FakeConnection([Open(), Message(PROBE), Close()]))
        session = _session(transport, sink, tags={"type": "game"})

        await session.run()

        expected = {"src": "websocket", "type": "game"}
        assert transport.connect_calls == [("ws://test/ws", expected)]
        assert session.tags == expected
        assert sink.samples(PROBE_ECHOES)[0].tags == expected

    async def test_cooldown_delays_closed(self, sink: InMemorySink) -> None:
        session = _session(
            FakeTransport(FakeConnection([Open(), Close()])), sink, cooldown_seconds=0.05
        )
        loop = asyncio.get_running_loop()

        begin = loop.time()
        await session.run()

        assert loop.time() - begin >= 0.04
        assert session.ended_at is not None


class TestErrorHandling:
    """Tests for failure paths and log suppression."""

    async def test_close_sent_is_not_logged(
        self, sink: InMemorySink, caplog: pytest.LogCaptureFixture
    ) -> None:
        session = _session(FakeTransport(FakeConnection([Open(), Error(CLOSE_SENT)])), sink)

        with caplog.at_level(logging.WARNING, logger="wsforge"):
            state = await session.run()

        assert state is SessionState.FAILED
        assert _warnings(caplog) == []

    async def test_other_error_logged_once(
        self, sink: InMemorySink, caplog: pytest.LogCaptureFixture
    ) -> None:
        session = _session(
            FakeTransport(FakeConnection([Open(), Error("connection reset by peer")])), sink
        )

        with caplog.at_level(logging.WARNING, logger="wsforge"):
            state = await session.run()

        assert state is SessionState.FAILED
        records = _warnings(caplog)
        assert len(records) == 1
        assert "VU 1" in records[0].getMessage()
        assert "connection reset by peer" in records[0].getMessage()

    async def test_receive_error_becomes_error_signal(
        self, sink: InMemorySink, caplog: pytest.LogCaptureFixture
    ) -> None:
        conn = FakeConnection([Open(), TransportError("socket exploded")])
        session = _session(FakeTransport(conn), sink)

        with caplog.at_level(logging.WARNING, logger="wsforge"):
            assert await session.run() is SessionState.FAILED

        assert len(_warnings(caplog)) == 1
        assert conn.closed

    async def test_send_after_close_sent_fails_quietly(
        self, sink: InMemorySink, caplog: pytest.LogCaptureFixture
    ) -> None:
        conn = FakeConnection([Open()], send_error=ConnectionClosedError(CLOSE_SENT))
        session = _session(FakeTransport(conn), sink)

        with caplog.at_level(logging.WARNING, logger="wsforge"):
            assert await session.run() is SessionState.FAILED

        assert _warnings(caplog) == []

    async def test_handshake_failure(
        self, sink: InMemorySink, caplog: pytest.LogCaptureFixture
    ) -> None:
        transport = FakeTransport(error=ConnectError("handshake failed: 403 Forbidden", status=403))
        session = _session(transport, sink)

        with caplog.at_level(logging.WARNING, logger="wsforge"):
            state = await session.run()

        assert state is SessionState.FAILED
        assert sink.checks[CONNECTED_CHECK] == CheckTally(passes=0, fails=1)
        assert sink.counters[PROBE_ECHOES] == 0
        assert len(_warnings(caplog)) == 1

    async def test_wrong_status_fails_check(self, sink: InMemorySink) -> None:
        conn = FakeConnection([Open(), Message(PROBE), Close()], status=200)
        session = _session(FakeTransport(conn), sink)

        await session.run()

        assert sink.checks[CONNECTED_CHECK] == CheckTally(passes=0, fails=1)


class TestTransitions:
    """Tests for the explicit transition table."""

    async def test_message_before_connect_rejected(self, sink: InMemorySink) -> None:
        session = _session(FakeTransport(FakeConnection([])), sink)
        with pytest.raises(InvalidTransitionError, match="Message not accepted in state IDLE"):
            await session.dispatch(Message(PROBE))

    async def test_connect_twice_rejected(self, sink: InMemorySink) -> None:
        session = _session(FakeTransport(FakeConnection([])), sink)
        await session.connect()
        assert session.state is SessionState.CONNECTING
        with pytest.raises(InvalidTransitionError, match="requires IDLE"):
            await session.connect()

    async def test_open_twice_rejected(self, sink: InMemorySink) -> None:
        session = _session(FakeTransport(FakeConnection([])), sink)
        await session.connect()
        await session.dispatch(Open())
        assert session.state is SessionState.AWAITING_ECHO
        with pytest.raises(InvalidTransitionError):
            await session.dispatch(Open())

    async def test_open_during_handshake_rejected(self, sink: InMemorySink) -> None:
        transport = PendingTransport(FakeConnection([]))
        session = _session(transport, sink)
        connecting = asyncio.create_task(session.connect())
        await asyncio.sleep(0)
        assert session.state is SessionState.CONNECTING

        with pytest.raises(InvalidTransitionError, match="no connection in state CONNECTING"):
            await session.dispatch(Open())

        transport.release.set()
        await connecting
        await session.dispatch(Open())
        assert session.state is SessionState.AWAITING_ECHO

    async def test_echo_returns_to_open(self, sink: InMemorySink) -> None:
        session = _session(FakeTransport(FakeConnection([])), sink)
        await session.connect()
        await session.dispatch(Open())
        await session.dispatch(Message(PROBE))
        assert session.state is SessionState.OPEN

    async def test_signals_after_close_rejected(self, sink: InMemorySink) -> None:
        session = _session(FakeTransport(FakeConnection([])), sink)
        await session.connect()
        await session.dispatch(Open())
        await session.dispatch(Close())
        assert session.is_terminal
        with pytest.raises(InvalidTransitionError, match="CLOSED"):
            await session.dispatch(Message(PROBE))
        with pytest.raises(InvalidTransitionError):
            await session.dispatch(Error("late"))


class TestShutdown:
    """Tests for host-driven stop and cancellation."""

    async def test_stop_event_closes_gracefully(self, sink: InMemorySink) -> None:
        conn = FakeConnection([Open(), Message(PROBE)])
        session = _session(FakeTransport(conn), sink)
        stop = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, stop.set)

        state = await asyncio.wait_for(session.run(stop), timeout=2.0)

        assert state is SessionState.CLOSED
        assert sink.counters[PROBE_ECHOES] == 1
        assert conn.closed

    async def test_cancellation_releases_connection(self, sink: InMemorySink) -> None:
        conn = FakeConnection([Open()])
        session = _session(FakeTransport(conn), sink)

        task = asyncio.create_task(session.run())
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert conn.closed
