"""Per-iteration execution context handed to workload entry points."""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from wsforge._internal.logging import get_logger

if TYPE_CHECKING:
    from wsforge._internal.types import Clock, DeferredCallback, Tags

logger = get_logger("engine.context")


@dataclass(order=True)
class _Timer:
    due_at: float
    seq: int
    callback: DeferredCallback = field(compare=False)


class VUContext:
    """What a worker iteration knows about itself, plus a timer queue.

    :meth:`after` registers a deferred callback with an explicit due time.
    The host calls :meth:`run_pending` once the entry point returns; it
    sleeps until each timer is due, starts its callback as a task and waits
    for every started callback before the iteration counts as finished.

    Attributes:
        worker_ordinal: 1-based worker position across the whole run.
        iteration_index: 0-based iteration count of this worker within its
            sub-run.
        scenario: Name of the sub-run executing this iteration.
        stop_event: Set by the host when the sub-run's duration is over.
        tags: Tags of the sub-run.
    """

    def __init__(
        self,
        worker_ordinal: int,
        iteration_index: int,
        *,
        scenario: str = "default",
        stop_event: asyncio.Event | None = None,
        tags: Tags | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.worker_ordinal = worker_ordinal
        self.iteration_index = iteration_index
        self.scenario = scenario
        self.stop_event = stop_event if stop_event is not None else asyncio.Event()
        self.tags: Tags = dict(tags or {})
        self._clock = clock
        self._timers: list[_Timer] = []
        self._seq = itertools.count()

    @property
    def worker_id(self) -> str:
        """Return a readable identity, e.g. ``constant/vu-2/iter-0``."""
        return f"{self.scenario}/vu-{self.worker_ordinal}/iter-{self.iteration_index}"

    @property
    def pending(self) -> int:
        """Return the number of timers not yet started."""
        return len(self._timers)

    def after(self, delay_ms: float, callback: DeferredCallback) -> None:
        """Schedule *callback* to start *delay_ms* milliseconds from now.

        Args:
            delay_ms: Non-negative delay in milliseconds.
            callback: Zero-argument coroutine function.

        Raises:
            ValueError: If *delay_ms* is negative.
        """
        if delay_ms < 0:
            msg = f"delay_ms must be non-negative, got {delay_ms}"
            raise ValueError(msg)
        due_at = self._clock() + delay_ms / 1000
        heapq.heappush(self._timers, _Timer(due_at, next(self._seq), callback))

    async def run_pending(self) -> None:
        """Start every timer when due and wait for all callbacks to finish.

        Timers are started in due-time order. A callback that raises is
        logged; it never prevents other callbacks from running. Timers not
        yet due when :attr:`stop_event` is set are dropped.
        """
        running: list[asyncio.Task[None]] = []
        try:
            while self._timers:
                timer = heapq.heappop(self._timers)
                wait = timer.due_at - self._clock()
                if wait > 0 and await self._stopped_within(wait):
                    logger.debug(
                        "%s: stop requested, dropping %d timer(s)",
                        self.worker_id,
                        len(self._timers) + 1,
                    )
                    self._timers.clear()
                    break
                running.append(asyncio.create_task(timer.callback()))

            if running:
                results = await asyncio.gather(*running, return_exceptions=True)
                for result in results:
                    if isinstance(result, Exception):
                        logger.warning(
                            "%s: deferred callback failed",
                            self.worker_id,
                            exc_info=result,
                        )
        finally:
            for task in running:
                if not task.done():
                    task.cancel()

    async def _stopped_within(self, seconds: float) -> bool:
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=seconds)
        except TimeoutError:
            return False
        return True
