"""Workload entry points invoked by the host: setup, main, monitor, teardown."""

from __future__ import annotations

from collections import deque
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from wsforge._internal.errors import ConnectError, TransportError
from wsforge._internal.logging import get_logger, get_vu_logger
from wsforge.engine.session import BASE_TAGS, ProbeSession
from wsforge.engine.stagger import plan_start
from wsforge.transport.base import SWITCHING_PROTOCOLS

if TYPE_CHECKING:
    from wsforge._internal.config import WsForgeConfig
    from wsforge.engine.context import VUContext
    from wsforge.metrics.sink import MetricSink
    from wsforge.transport.base import Transport

logger = get_logger("workload")

MONITOR_CHECK = "Monitor connected"
MONITOR_CHECKS = "monitor_checks"
RECENT_SESSIONS = 1000


class ProbeWorkload:
    """Probe/echo workload against one WebSocket endpoint.

    The host calls :meth:`setup` once, then :meth:`main` (or the entry
    point a sub-run names, e.g. :meth:`monitor`) once per worker iteration,
    then :meth:`teardown` once with whatever :meth:`setup` returned.

    Attributes:
        config: Run configuration.
        sessions: The most recent sessions started by :meth:`main`, in
            start order.
    """

    def __init__(
        self,
        config: WsForgeConfig,
        transport: Transport,
        sink: MetricSink,
    ) -> None:
        self.config = config
        self.sessions: deque[ProbeSession] = deque(maxlen=RECENT_SESSIONS)
        self._transport = transport
        self._sink = sink

    def setup(self) -> str:
        """Log and return the run's start timestamp."""
        started = datetime.now(tz=UTC).isoformat()
        logger.info("setup() %s", started)
        return started

    def main(self, ctx: VUContext) -> None:
        """Schedule this iteration's probe session after its staggered delay.

        Args:
            ctx: Execution context of the calling worker iteration.
        """
        plan = plan_start(
            ctx.worker_ordinal,
            ctx.iteration_index,
            self.config.per_stage_duration_ms,
        )
        logger.info(
            "START TIME: vu=%d delay=%dms iteration=%d",
            plan.worker_ordinal,
            plan.delay_ms,
            plan.iteration_index,
        )

        session = ProbeSession(
            self.config.url,
            self._transport,
            self._sink,
            worker_ordinal=ctx.worker_ordinal,
            iteration_index=ctx.iteration_index,
            probe=self.config.probe,
            tags=ctx.tags,
            cooldown_seconds=self.config.cooldown_seconds,
        )
        self.sessions.append(session)

        async def _deferred() -> None:
            await session.run(ctx.stop_event)

        ctx.after(plan.delay_ms, _deferred)

    async def monitor(self, ctx: VUContext) -> None:
        """Check that the endpoint accepts a connection, then close it."""
        vu_logger = get_vu_logger("workload", ctx.worker_ordinal)
        tags = {**BASE_TAGS, **ctx.tags, "scenario": ctx.scenario}
        try:
            connection = await self._transport.connect(self.config.url, tags)
        except ConnectError as exc:
            self._sink.record_check(MONITOR_CHECK, exc.status == SWITCHING_PROTOCOLS, tags)
            vu_logger.warning("monitor connect failed: %s", exc.cause)
            return

        self._sink.record_check(MONITOR_CHECK, connection.status == SWITCHING_PROTOCOLS, tags)
        self._sink.increment_counter(MONITOR_CHECKS, 1, tags)
        try:
            await connection.close()
        except TransportError as exc:
            vu_logger.debug("monitor close failed: %s", exc.cause)

    def teardown(self, data: object) -> None:
        """Nothing to clean up; the host releases every connection."""
