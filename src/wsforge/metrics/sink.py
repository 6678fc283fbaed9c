"""Metric sink contract and the in-memory sink used by the host runtime."""

from __future__ import annotations

import time
from collections import Counter, defaultdict, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from wsforge._internal.logging import get_logger

if TYPE_CHECKING:
    from wsforge._internal.types import Clock, Tags

logger = get_logger("metrics.sink")


class MetricKind(Enum):
    """Kind of a recorded measurement."""

    DURATION = "duration"
    GAUGE = "gauge"
    COUNTER = "counter"
    CHECK = "check"


@dataclass(frozen=True)
class MetricSample:
    """One measurement emitted to a sink.

    Attributes:
        kind: Measurement kind.
        name: Metric name, matched by thresholds and reports.
        value: Milliseconds for durations, the value for gauges, the
            increment for counters, 1.0/0.0 for passed/failed checks.
        tags: Segmentation tags.
        timestamp: Monotonic time the sample was recorded.
    """

    kind: MetricKind
    name: str
    value: float
    tags: Tags = field(default_factory=dict)
    timestamp: float = 0.0


class MetricSink(Protocol):
    """Destination for measurements. Owns storage and aggregation."""

    def record_duration(self, name: str, milliseconds: float, tags: Tags | None = None) -> None:
        """Record one timed operation."""
        ...

    def record_gauge(self, name: str, value: float, tags: Tags | None = None) -> None:
        """Set a gauge to its latest value."""
        ...

    def increment_counter(self, name: str, by: float = 1, tags: Tags | None = None) -> None:
        """Add *by* to a counter."""
        ...

    def record_check(self, name: str, passed: bool, tags: Tags | None = None) -> None:  # noqa: FBT001
        """Record the outcome of a named assertion."""
        ...


@dataclass
class CheckTally:
    """Pass/fail counts for one named check."""

    passes: int = 0
    fails: int = 0


class InMemorySink:
    """Collects samples in a deque and keeps running aggregates.

    Counters keep their totals, gauges keep their last value, checks keep
    pass/fail tallies, durations keep a sample count. Raw samples stay in
    the buffer until :meth:`drain` is called; a running
    :class:`~wsforge.engine.runner.WorkloadRunner` drains it every flush
    interval, so the buffer only holds the samples of the current one.
    No distribution statistics are computed here.

    All coroutines of a run share one event loop, so appends never race.
    """

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._buffer: deque[MetricSample] = deque()
        self.counters: Counter[str] = Counter()
        self.gauges: dict[str, float] = {}
        self.duration_counts: Counter[str] = Counter()
        self.checks: defaultdict[str, CheckTally] = defaultdict(CheckTally)

    @property
    def pending_count(self) -> int:
        """Return the number of samples not yet drained."""
        return len(self._buffer)

    def record_duration(self, name: str, milliseconds: float, tags: Tags | None = None) -> None:
        self.duration_counts[name] += 1
        self._append(MetricKind.DURATION, name, milliseconds, tags)

    def record_gauge(self, name: str, value: float, tags: Tags | None = None) -> None:
        self.gauges[name] = value
        self._append(MetricKind.GAUGE, name, value, tags)

    def increment_counter(self, name: str, by: float = 1, tags: Tags | None = None) -> None:
        self.counters[name] += by
        self._append(MetricKind.COUNTER, name, by, tags)

    def record_check(self, name: str, passed: bool, tags: Tags | None = None) -> None:  # noqa: FBT001
        tally = self.checks[name]
        if passed:
            tally.passes += 1
        else:
            tally.fails += 1
            logger.debug("Check failed: %s", name)
        self._append(MetricKind.CHECK, name, 1.0 if passed else 0.0, tags)

    def drain(self) -> list[MetricSample]:
        """Remove and return all buffered samples, oldest first."""
        drained: list[MetricSample] = []
        while self._buffer:
            drained.append(self._buffer.popleft())
        return drained

    def samples(self, name: str | None = None) -> list[MetricSample]:
        """Return buffered samples without draining, optionally filtered by name."""
        return [s for s in self._buffer if name is None or s.name == name]

    def reset(self) -> None:
        """Clear all state. Primarily for testing."""
        self._buffer.clear()
        self.counters.clear()
        self.gauges.clear()
        self.duration_counts.clear()
        self.checks.clear()

    def _append(self, kind: MetricKind, name: str, value: float, tags: Tags | None) -> None:
        self._buffer.append(
            MetricSample(
                kind=kind,
                name=name,
                value=value,
                tags=dict(tags or {}),
                timestamp=self._clock(),
            )
        )
