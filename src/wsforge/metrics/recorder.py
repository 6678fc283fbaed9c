"""Latency recorder: times one operation and forwards it to a sink."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from wsforge._internal.types import Clock, Tags
    from wsforge.metrics.sink import MetricSink

NO_MEASUREMENT = -1.0


class LatencyRecorder:
    """Start/stop timer for a single in-flight operation.

    At most one measurement is in flight per instance: :meth:`start`
    overwrites an unfinished one. :meth:`end` forwards the elapsed
    milliseconds to the sink under :attr:`name` and clears the start
    marker, so a second :meth:`end` without a new :meth:`start` returns
    :data:`NO_MEASUREMENT` and forwards nothing.

    Attributes:
        name: Duration metric name used when forwarding.
    """

    def __init__(
        self,
        name: str,
        sink: MetricSink,
        *,
        tags: Tags | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.name = name
        self._sink = sink
        self._tags = dict(tags or {})
        self._clock = clock
        self._started_at: float | None = None
        self._duration = NO_MEASUREMENT

    @property
    def in_flight(self) -> bool:
        """Return True between :meth:`start` and the matching :meth:`end`."""
        return self._started_at is not None

    @property
    def duration(self) -> float:
        """Return the last forwarded duration in ms, or -1 if none."""
        return self._duration

    def start(self) -> None:
        self._started_at = self._clock()

    def end(self) -> float:
        """Finish the in-flight measurement.

        Returns:
            Elapsed milliseconds, or -1 if :meth:`start` was not called
            since the last :meth:`end`.
        """
        if self._started_at is None:
            return NO_MEASUREMENT
        elapsed_ms = (self._clock() - self._started_at) * 1000
        self._started_at = None
        self._duration = elapsed_ms
        self._sink.record_duration(self.name, elapsed_ms, self._tags)
        return elapsed_ms
