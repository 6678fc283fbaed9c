"""Executors: run workload iterations according to one sub-run descriptor."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from wsforge._internal.logging import get_logger
from wsforge.engine.context import VUContext
from wsforge.engine.rate_limiter import TokenBucketRateLimiter
from wsforge.engine.scheduler import Scheduler
from wsforge.scenarios.models import (
    ConstantArrivalRate,
    ConstantVUs,
    RampingArrivalRate,
    RampingVUs,
    SharedIterations,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from wsforge.metrics.sink import MetricSink
    from wsforge.scenarios.models import Executor

logger = get_logger("engine.executors")

ITERATIONS = "iterations"
DROPPED_ITERATIONS = "dropped_iterations"


@dataclass
class VirtualUser:
    """A worker slot with a stable ordinal and its own iteration count."""

    ordinal: int
    iterations: int = 0


@dataclass
class _ActiveVU:
    vu: VirtualUser
    stop_event: asyncio.Event
    task: asyncio.Task[None]


@dataclass
class ExecutorEnv:
    """Everything an executor needs from the host.

    Attributes:
        entry: Workload entry point called once per iteration.
        sink: Metrics sink for iteration counters.
        ordinals: Shared 1-based ordinal generator for the whole run.
        max_vus: Host cap on workers per sub-run.
        graceful_stop: Seconds in-flight iterations get after the sub-run ends.
        tick_interval: Seconds between load-shape samples.
    """

    entry: Callable[[VUContext], Any]
    sink: MetricSink
    ordinals: Iterator[int]
    max_vus: int
    graceful_stop: float = 5.0
    tick_interval: float = 1.0

    def new_vu(self) -> VirtualUser:
        return VirtualUser(ordinal=next(self.ordinals))


async def run_iteration(
    env: ExecutorEnv,
    vu: VirtualUser,
    executor: Executor,
    stop_event: asyncio.Event,
) -> None:
    """Run one iteration of *env.entry* for *vu*, including its deferred work.

    Exceptions from the workload are logged and never propagate, so one
    iteration cannot affect another.
    """
    ctx = VUContext(
        vu.ordinal,
        vu.iterations,
        scenario=executor.name,
        stop_event=stop_event,
        tags=executor.tags,
    )
    vu.iterations += 1
    try:
        result = env.entry(ctx)
        if inspect.isawaitable(result):
            await result
        await ctx.run_pending()
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.warning("Iteration %s failed", ctx.worker_id, exc_info=True)
    finally:
        env.sink.increment_counter(ITERATIONS, 1, {"scenario": executor.name})


async def shutdown_tasks(tasks: list[asyncio.Task[None]], timeout: float) -> None:
    """Wait up to *timeout* seconds for *tasks*, then cancel the rest.

    Args:
        tasks: Tasks to shut down. The list is cleared.
        timeout: Graceful window in seconds.
    """
    if tasks:
        _done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.debug("Cancelled %d iteration(s) after graceful stop", len(pending))
            await asyncio.wait(pending, timeout=2.0)
    tasks.clear()


async def _sleep_until(deadline: float, stop_event: asyncio.Event) -> bool:
    """Sleep until *deadline*; return True if *stop_event* was set first."""
    remaining = deadline - time.monotonic()
    if remaining > 0:
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=remaining)
    return stop_event.is_set()


async def _vu_loop(
    env: ExecutorEnv,
    vu: VirtualUser,
    executor: Executor,
    stop_event: asyncio.Event,
) -> None:
    while not stop_event.is_set():
        await run_iteration(env, vu, executor, stop_event)
        # Yield even when an iteration finished without suspending.
        await asyncio.sleep(0)


# =============================================================================
# VU-based executors
# =============================================================================


async def run_shared_iterations(
    env: ExecutorEnv,
    executor: SharedIterations,
    stop_event: asyncio.Event,
) -> None:
    """*vus* workers take iterations from a shared pool until it is empty."""
    remaining = [executor.iterations]

    async def _worker(vu: VirtualUser) -> None:
        while remaining[0] > 0 and not stop_event.is_set():
            remaining[0] -= 1
            await run_iteration(env, vu, executor, stop_event)

    vus = [env.new_vu() for _ in range(min(executor.vus, env.max_vus))]
    tasks = [
        asyncio.create_task(_worker(vu), name=f"{executor.name}-vu-{vu.ordinal}") for vu in vus
    ]
    finished = asyncio.create_task(asyncio.wait(tasks))
    stopped = asyncio.create_task(stop_event.wait())
    try:
        await asyncio.wait(
            {finished, stopped},
            timeout=executor.max_duration,
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        for waiter in (finished, stopped):
            waiter.cancel()
        pending = [task for task in tasks if not task.done()]
        if pending and not stop_event.is_set():
            logger.info("%s: max duration %.0fs reached", executor.name, executor.max_duration)
        stop_event.set()
        await shutdown_tasks(pending, env.graceful_stop)


async def run_constant_vus(
    env: ExecutorEnv,
    executor: ConstantVUs,
    stop_event: asyncio.Event,
) -> None:
    """Hold *vus* looping workers for *duration* seconds."""
    await _run_scaled_vus(
        env,
        executor,
        stop_event,
        Scheduler(executor.pattern(), env.tick_interval, env.max_vus),
        executor.duration,
    )


async def run_ramping_vus(
    env: ExecutorEnv,
    executor: RampingVUs,
    stop_event: asyncio.Event,
) -> None:
    """Follow the stage ramp, adding or retiring looping workers each tick."""
    await _run_scaled_vus(
        env,
        executor,
        stop_event,
        Scheduler(executor.pattern(), env.tick_interval, env.max_vus),
        executor.total_duration,
    )


async def _run_scaled_vus(
    env: ExecutorEnv,
    executor: ConstantVUs | RampingVUs,
    stop_event: asyncio.Event,
    scheduler: Scheduler,
    duration: float,
) -> None:
    active: list[_ActiveVU] = []
    retired: list[_ActiveVU] = []
    start = time.monotonic()

    try:
        for command in scheduler.iter_commands():
            if await _sleep_until(start + command.elapsed_seconds, stop_event):
                break

            current = len(active)
            target = command.target_concurrency
            if target > current:
                for _ in range(target - current):
                    # Reuse a retired worker's ordinal once its last iteration is over.
                    reusable = next((r for r in retired if r.task.done()), None)
                    if reusable is not None:
                        retired.remove(reusable)
                        vu = reusable.vu
                    else:
                        vu = env.new_vu()
                    own_stop = asyncio.Event()
                    task = asyncio.create_task(
                        _vu_loop(env, vu, executor, own_stop),
                        name=f"{executor.name}-vu-{vu.ordinal}",
                    )
                    active.append(_ActiveVU(vu, own_stop, task))
            elif target < current:
                # Retire the most recently started workers; their current
                # iteration finishes on its own.
                for _ in range(current - target):
                    entry = active.pop()
                    entry.stop_event.set()
                    retired.append(entry)

            logger.debug(
                "%s t=%.0fs: %d active VU(s)", executor.name, command.elapsed_seconds, len(active)
            )

        await _sleep_until(start + duration, stop_event)
    finally:
        stop_event.set()
        for entry in active:
            entry.stop_event.set()
        await shutdown_tasks([e.task for e in active + retired], env.graceful_stop)


# =============================================================================
# Arrival-rate executors
# =============================================================================


async def run_arrival_rate(
    env: ExecutorEnv,
    executor: ConstantArrivalRate | RampingArrivalRate,
    stop_event: asyncio.Event,
) -> None:
    """Start iterations at the shape's rate using a bounded worker pool.

    When every worker is busy and the pool is at its cap, the iteration is
    dropped and counted under ``dropped_iterations``.
    """
    if executor.max_vus is not None:
        cap = executor.max_vus
    elif isinstance(executor, RampingArrivalRate):
        cap = env.max_vus
    else:
        cap = executor.preallocated_vus
    cap = max(min(cap, env.max_vus), 1)
    preallocated = min(executor.preallocated_vus, cap)
    pool: asyncio.Queue[VirtualUser] = asyncio.Queue()
    for _ in range(preallocated):
        pool.put_nowait(env.new_vu())
    created = preallocated

    pattern = executor.pattern()
    limiter = TokenBucketRateLimiter(rate=pattern.target_at(0.0), time_unit=executor.time_unit)
    in_flight: set[asyncio.Task[None]] = set()

    async def _iterate(vu: VirtualUser) -> None:
        try:
            await run_iteration(env, vu, executor, stop_event)
        finally:
            pool.put_nowait(vu)

    async def _dispatch() -> None:
        nonlocal created
        while not stop_event.is_set():
            await limiter.acquire()
            if stop_event.is_set():
                break
            if not pool.empty():
                vu = pool.get_nowait()
            elif created < cap:
                vu = env.new_vu()
                created += 1
            else:
                env.sink.increment_counter(DROPPED_ITERATIONS, 1, {"scenario": executor.name})
                continue
            task = asyncio.create_task(_iterate(vu), name=f"{executor.name}-vu-{vu.ordinal}")
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)

    dispatcher = asyncio.create_task(_dispatch(), name=f"{executor.name}-dispatcher")
    start = time.monotonic()
    try:
        for elapsed, rate in pattern.iter_targets(env.tick_interval):
            if await _sleep_until(start + elapsed, stop_event):
                break
            limiter.update_rate(rate)
        await _sleep_until(start + pattern.duration_seconds, stop_event)
    finally:
        stop_event.set()
        dispatcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await dispatcher
        await shutdown_tasks(list(in_flight), env.graceful_stop)


async def run_executor(env: ExecutorEnv, executor: Executor, stop_event: asyncio.Event) -> None:
    """Dispatch *executor* to the matching runtime."""
    if isinstance(executor, SharedIterations):
        await run_shared_iterations(env, executor, stop_event)
    elif isinstance(executor, ConstantVUs):
        await run_constant_vus(env, executor, stop_event)
    elif isinstance(executor, RampingVUs):
        await run_ramping_vus(env, executor, stop_event)
    else:
        await run_arrival_rate(env, executor, stop_event)
