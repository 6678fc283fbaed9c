"""Probe session: one worker's connection lifecycle as an explicit state machine."""

from __future__ import annotations

import asyncio
import contextlib
import time
from enum import Enum, auto
from typing import TYPE_CHECKING

from wsforge._internal.config import DEFAULT_PROBE
from wsforge._internal.errors import ConnectError, InvalidTransitionError, TransportError
from wsforge._internal.logging import get_vu_logger
from wsforge.metrics.recorder import LatencyRecorder
from wsforge.scenarios.catalog import RTT_GAUGE
from wsforge.transport.base import CLOSE_SENT, SWITCHING_PROTOCOLS, Close, Error, Message, Open

if TYPE_CHECKING:
    from wsforge._internal.types import Clock, Tags
    from wsforge.metrics.sink import MetricSink
    from wsforge.transport.base import Connection, Signal, Transport

CONNECTED_CHECK = "Connected successfully"
PROBE_RTT = "probe_rtt"
PROBE_ECHOES = "probe_echoes"
BASE_TAGS: Tags = {"src": "websocket"}


class SessionState(Enum):
    """State machine for one probe session."""

    IDLE = auto()
    CONNECTING = auto()
    OPEN = auto()
    AWAITING_ECHO = auto()
    CLOSED = auto()
    FAILED = auto()


_TERMINAL = frozenset({SessionState.CLOSED, SessionState.FAILED})
_CONNECTED = frozenset({SessionState.OPEN, SessionState.AWAITING_ECHO})


class ProbeSession:
    """Drives one connection from handshake to close.

    State machine::

        IDLE -> CONNECTING -> OPEN -> AWAITING_ECHO <-> OPEN -> CLOSED
                           -> FAILED (handshake error)
                              OPEN/AWAITING_ECHO -> FAILED (transport error)

    On open the session sends the probe payload once. Every echo equal to
    the probe increments the ``probe_echoes`` counter; the first one also
    ends the latency measurement, which started when the connection was
    established, and feeds the round trip to the ``gaugeRtt`` gauge.
    Other payloads are logged and ignored.

    A close signal is followed by a cool-down pause before the session
    counts as closed. A transport error ends the session immediately; the
    ``websocket: close sent`` race is not logged. Nothing is retried.

    Attributes:
        worker_ordinal: 1-based worker position, used in log lines.
        iteration_index: 0-based iteration of the worker.
        started_at: Monotonic time :meth:`connect` was called.
        ended_at: Monotonic time the session reached a terminal state.
    """

    def __init__(
        self,
        url: str,
        transport: Transport,
        sink: MetricSink,
        *,
        worker_ordinal: int,
        iteration_index: int = 0,
        probe: str = DEFAULT_PROBE,
        tags: Tags | None = None,
        cooldown_seconds: float = 1.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self.worker_ordinal = worker_ordinal
        self.iteration_index = iteration_index
        self.started_at: float | None = None
        self.ended_at: float | None = None

        self._url = url
        self._transport = transport
        self._sink = sink
        self._probe = probe
        self._tags: Tags = {**BASE_TAGS, **(tags or {})}
        self._cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._logger = get_vu_logger("engine.session", worker_ordinal)

        self._state = SessionState.IDLE
        self._connection: Connection | None = None
        self._recorder: LatencyRecorder | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state in _TERMINAL

    @property
    def tags(self) -> Tags:
        return dict(self._tags)

    # -------------------------------------------------------------------------
    # Driving
    # -------------------------------------------------------------------------

    async def run(self, stop_event: asyncio.Event | None = None) -> SessionState:
        """Connect and handle signals until the session terminates.

        When *stop_event* is set while the connection is open, the session
        requests a close and keeps handling signals, so the resulting
        ``Close`` goes through the normal cool-down path.

        Args:
            stop_event: Host shutdown signal. ``None`` means run until the
                connection ends on its own.

        Returns:
            The terminal state.
        """
        await self.connect()

        receiver: asyncio.Task[Signal] | None = None
        stopper: asyncio.Task[bool] | None = None
        if stop_event is not None and not self.is_terminal:
            stopper = asyncio.create_task(stop_event.wait())

        try:
            while not self.is_terminal:
                if receiver is None:
                    receiver = asyncio.create_task(self._receive(self._open_connection()))
                waiters: set[asyncio.Task[Signal] | asyncio.Task[bool]] = {receiver}
                if stopper is not None:
                    waiters.add(stopper)

                done, _pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

                if stopper is not None and stopper in done:
                    stopper = None
                    self._logger.debug("Stop requested, closing connection")
                    await self._request_close()

                if receiver in done:
                    signal = receiver.result()
                    receiver = None
                    await self.dispatch(signal)
        finally:
            for task in (receiver, stopper):
                if task is not None and not task.done():
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task
            await self._release()

        return self._state

    async def connect(self) -> None:
        """Open the connection (IDLE -> CONNECTING).

        Records the handshake check. On failure the session moves to
        FAILED; the error is not raised.

        Raises:
            InvalidTransitionError: If the session is not IDLE.
        """
        if self._state is not SessionState.IDLE:
            msg = f"connect() requires IDLE, session is {self._state.name}"
            raise InvalidTransitionError(msg)

        self._state = SessionState.CONNECTING
        self.started_at = self._clock()

        try:
            connection = await self._transport.connect(self._url, self._tags)
        except ConnectError as exc:
            self._sink.record_check(CONNECTED_CHECK, exc.status == SWITCHING_PROTOCOLS, self._tags)
            self._fail(exc.cause)
            return

        self._connection = connection
        self._sink.record_check(
            CONNECTED_CHECK, connection.status == SWITCHING_PROTOCOLS, self._tags
        )
        self._recorder = LatencyRecorder(PROBE_RTT, self._sink, tags=self._tags, clock=self._clock)
        self._recorder.start()

    async def dispatch(self, signal: Signal) -> None:
        """Apply one transport signal to the state machine.

        Args:
            signal: The next signal, in arrival order.

        Raises:
            InvalidTransitionError: If *signal* is not accepted in the
                current state.
        """
        if isinstance(signal, Open):
            self._require(signal, SessionState.CONNECTING)
            await self._on_open()
        elif isinstance(signal, Message):
            self._require(signal, *_CONNECTED)
            self._on_message(signal.payload)
        elif isinstance(signal, Close):
            self._require(signal, SessionState.CONNECTING, *_CONNECTED)
            await self._on_close()
        elif isinstance(signal, Error):
            self._require(signal, SessionState.CONNECTING, *_CONNECTED)
            self._fail(signal.cause)
        else:
            msg = f"unknown signal: {signal!r}"
            raise InvalidTransitionError(msg)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def _on_open(self) -> None:
        connection = self._open_connection()
        self._state = SessionState.OPEN
        self._logger.info("connected")
        try:
            await connection.send(self._probe)
        except TransportError as exc:
            self._fail(exc.cause)
            return
        self._state = SessionState.AWAITING_ECHO

    def _on_message(self, payload: str) -> None:
        self._logger.debug("received %d bytes: %s", len(payload.encode()), payload)
        if payload != self._probe:
            return

        if self._recorder is None:
            msg = "echo received before the latency timer started"
            raise InvalidTransitionError(msg)
        rtt = self._recorder.end()
        if rtt >= 0:
            self._sink.record_gauge(RTT_GAUGE, rtt, self._tags)
        self._sink.increment_counter(PROBE_ECHOES, 1, self._tags)
        self._state = SessionState.OPEN

    async def _on_close(self) -> None:
        self._logger.info("disconnected")
        await asyncio.sleep(self._cooldown_seconds)
        self._state = SessionState.CLOSED
        self.ended_at = self._clock()

    def _fail(self, cause: str) -> None:
        if cause != CLOSE_SENT:
            self._logger.warning("unexpected error: %s", cause)
        self._state = SessionState.FAILED
        self.ended_at = self._clock()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _open_connection(self) -> Connection:
        if self._connection is None:
            msg = f"no connection in state {self._state.name}"
            raise InvalidTransitionError(msg)
        return self._connection

    def _require(self, signal: Signal, *allowed: SessionState) -> None:
        if self._state not in allowed:
            msg = f"{type(signal).__name__} not accepted in state {self._state.name}"
            raise InvalidTransitionError(msg)

    @staticmethod
    async def _receive(connection: Connection) -> Signal:
        try:
            return await connection.receive()
        except TransportError as exc:
            return Error(cause=exc.cause)

    async def _request_close(self) -> None:
        if self._connection is None:
            return
        try:
            await self._connection.close()
        except TransportError as exc:
            self._fail(exc.cause)

    async def _release(self) -> None:
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            await connection.close()
        except TransportError as exc:
            self._logger.debug("close on release failed: %s", exc.cause)
