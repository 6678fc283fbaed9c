"""Top-level run orchestration: setup, concurrent sub-runs, teardown, thresholds."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import itertools
import signal
import sys
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from wsforge._internal.errors import EngineError, ScenarioError
from wsforge._internal.logging import get_logger, setup_logging
from wsforge.engine.executors import DROPPED_ITERATIONS, ITERATIONS, ExecutorEnv, run_executor
from wsforge.metrics.sink import InMemorySink
from wsforge.scenarios.catalog import resolve_scenario
from wsforge.transport.aiohttp_ws import AiohttpTransport
from wsforge.workload import ProbeWorkload

if TYPE_CHECKING:
    from collections.abc import Callable

    from wsforge._internal.config import WsForgeConfig
    from wsforge.metrics.sink import CheckTally, MetricSample
    from wsforge.metrics.thresholds import ThresholdResult
    from wsforge.scenarios.models import LoadScenario

logger = get_logger("engine.runner")


@dataclass
class RunResult:
    """Outcome of one run.

    Attributes:
        scenario_name: Name of the executed scenario.
        duration_seconds: Wall-clock duration of the run.
        iterations: Completed iterations across all sub-runs.
        dropped_iterations: Arrival-rate iterations skipped for lack of workers.
        counters: Counter totals by name.
        gauges: Last gauge values by name.
        checks: Pass/fail tallies by check name.
        thresholds: Threshold outcomes, in scenario order.
    """

    scenario_name: str
    duration_seconds: float
    iterations: int = 0
    dropped_iterations: int = 0
    counters: dict[str, float] = field(default_factory=dict)
    gauges: dict[str, float] = field(default_factory=dict)
    checks: dict[str, CheckTally] = field(default_factory=dict)
    thresholds: list[ThresholdResult] = field(default_factory=list)

    @property
    def thresholds_passed(self) -> bool:
        return all(result.passed for result in self.thresholds)


class WorkloadRunner:
    """Executes a scenario's sub-runs against a workload on one event loop.

    Lifecycle: ``workload.setup()`` once, every sub-run concurrently, then
    ``workload.teardown(data)`` once, even if a sub-run failed.

    Args:
        scenario: Resolved scenario descriptor.
        workload: Object exposing ``setup``, ``teardown`` and the entry
            points the sub-runs name.
        sink: Sink the workload reports to; thresholds are evaluated on it.
        max_vus: Host cap on workers per sub-run.
        graceful_stop: Seconds in-flight iterations get after a sub-run ends.
        tick_interval: Seconds between load-shape samples.
        flush_interval: Seconds between drains of the sink's sample buffer.
        on_samples: Receives each drained batch, oldest first. Without it
            drained samples are discarded; the sink's running aggregates
            are kept either way.

    Raises:
        ScenarioError: If a sub-run names an entry point the workload lacks.
    """

    def __init__(
        self,
        scenario: LoadScenario,
        workload: object,
        sink: InMemorySink,
        *,
        max_vus: int = 1000,
        graceful_stop: float = 5.0,
        tick_interval: float = 1.0,
        flush_interval: float = 1.0,
        on_samples: Callable[[list[MetricSample]], None] | None = None,
    ) -> None:
        for run in scenario.runs:
            if not callable(getattr(workload, run.exec_name, None)):
                msg = (
                    f"Sub-run {run.name!r} executes {run.exec_name!r}, "
                    f"which {type(workload).__name__} does not define"
                )
                raise ScenarioError(msg)

        self.scenario = scenario
        self._workload = workload
        self._sink = sink
        self._max_vus = max_vus
        self._graceful_stop = graceful_stop
        self._tick_interval = tick_interval
        self._flush_interval = flush_interval
        self._on_samples = on_samples
        self._stop_events: list[asyncio.Event] = []

    def stop(self) -> None:
        """End every sub-run early; in-flight iterations get the graceful window."""
        logger.info("Stop requested")
        for event in self._stop_events:
            event.set()

    async def run(self) -> RunResult:
        """Execute the scenario and return its result.

        Raises:
            EngineError: If a sub-run fails outside of workload code.
        """
        logger.info("Starting run:\n%s", self.scenario.describe())
        data = await _call(getattr(self._workload, "setup", None))

        ordinals = itertools.count(1)
        self._stop_events = [asyncio.Event() for _ in self.scenario.runs]
        start = time.monotonic()
        flusher = asyncio.create_task(self._flush_loop(), name="sample-flusher")
        try:
            results = await asyncio.gather(
                *(
                    run_executor(
                        ExecutorEnv(
                            entry=getattr(self._workload, run.exec_name),
                            sink=self._sink,
                            ordinals=ordinals,
                            max_vus=self._max_vus,
                            graceful_stop=self._graceful_stop,
                            tick_interval=self._tick_interval,
                        ),
                        run,
                        stop_event,
                    )
                    for run, stop_event in zip(self.scenario.runs, self._stop_events, strict=True)
                ),
                return_exceptions=True,
            )
        finally:
            flusher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await flusher
            await _call(getattr(self._workload, "teardown", None), data)
            self._flush()

        for run, outcome in zip(self.scenario.runs, results, strict=True):
            if isinstance(outcome, BaseException):
                msg = f"Sub-run {run.name!r} failed"
                raise EngineError(msg) from outcome

        duration = time.monotonic() - start
        result = RunResult(
            scenario_name=self.scenario.name.value,
            duration_seconds=duration,
            iterations=int(self._sink.counters.get(ITERATIONS, 0)),
            dropped_iterations=int(self._sink.counters.get(DROPPED_ITERATIONS, 0)),
            counters=dict(self._sink.counters),
            gauges=dict(self._sink.gauges),
            checks=dict(self._sink.checks),
            thresholds=[t.evaluate(self._sink) for t in self.scenario.thresholds],
        )

        logger.info(
            "Run completed: scenario=%s, duration=%.1fs, iterations=%d, dropped=%d",
            result.scenario_name,
            duration,
            result.iterations,
            result.dropped_iterations,
        )
        for outcome in result.thresholds:
            if not outcome.passed:
                logger.warning("Threshold failed: %s (observed %s)", outcome.threshold, outcome.observed)
        return result

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self._flush_interval)
            self._flush()

    def _flush(self) -> None:
        drained = self._sink.drain()
        if not drained:
            return
        logger.debug("Flushed %d metric sample(s)", len(drained))
        if self._on_samples is not None:
            self._on_samples(drained)


async def _call(func: object, *args: object) -> object:
    if not callable(func):
        return None
    value = func(*args)
    if inspect.isawaitable(value):
        value = await value
    return value


def _install_uvloop() -> None:
    """Install uvloop as the event loop policy where available."""
    if sys.platform == "win32":
        return

    try:
        import uvloop

        uvloop.install()
        logger.debug("uvloop installed as event loop policy")
    except ImportError:
        logger.debug("uvloop not available, using default asyncio event loop")


def _install_signal_handlers(runner: WorkloadRunner) -> None:
    """Route SIGINT and SIGTERM to :meth:`WorkloadRunner.stop`."""
    if sys.platform == "win32":
        signal.signal(signal.SIGINT, lambda _s, _f: runner.stop())
        signal.signal(signal.SIGTERM, lambda _s, _f: runner.stop())
        return
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, runner.stop)


def _remove_signal_handlers() -> None:
    if sys.platform == "win32":
        signal.signal(signal.SIGINT, signal.default_int_handler)
        signal.signal(signal.SIGTERM, signal.SIG_DFL)
        return
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.remove_signal_handler(sig)


async def _run_probe_workload(config: WsForgeConfig, scenario: LoadScenario) -> RunResult:
    sink = InMemorySink()
    async with AiohttpTransport(connect_timeout=config.connect_timeout) as transport:
        workload = ProbeWorkload(config, transport, sink)
        runner = WorkloadRunner(
            scenario,
            workload,
            sink,
            max_vus=config.max_vus,
            graceful_stop=config.graceful_stop,
        )
        _install_signal_handlers(runner)
        try:
            return await runner.run()
        finally:
            _remove_signal_handlers()


def run_workload(
    config: WsForgeConfig,
    *,
    log_level: int = 20,
    json_logs: bool = False,
) -> RunResult:
    """Resolve the configured scenario and run the probe workload to completion.

    Args:
        config: Run configuration.
        log_level: Logging level (default: ``logging.INFO``).
        json_logs: Emit one-line JSON logs.

    Returns:
        The run's result.

    Raises:
        ConfigError: If the configured duration is invalid.
        EngineError: If the host fails.
    """
    _install_uvloop()
    setup_logging(level=log_level, json_format=json_logs)

    scenario = resolve_scenario(config.scene, duration=config.duration, vus=config.vus)
    return asyncio.run(_run_probe_workload(config, scenario))
