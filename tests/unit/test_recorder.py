"""Tests for the latency recorder."""

from __future__ import annotations

import pytest

from wsforge.metrics.recorder import NO_MEASUREMENT, LatencyRecorder
from wsforge.metrics.sink import InMemorySink, MetricKind


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink(clock: FakeClock) -> InMemorySink:
    return InMemorySink(clock=clock)


class TestLatencyRecorder:
    """Tests for start/end measurement."""

    def test_end_without_start_returns_no_measurement(self, sink: InMemorySink) -> None:
        recorder = LatencyRecorder("probe_rtt", sink)
        assert recorder.end() == NO_MEASUREMENT
        assert sink.pending_count == 0

    def test_single_cycle_forwards_elapsed_ms(
        self, sink: InMemorySink, clock: FakeClock
    ) -> None:
        recorder = LatencyRecorder("probe_rtt", sink, tags={"src": "websocket"}, clock=clock)
        recorder.start()
        clock.advance(0.042)

        assert recorder.end() == pytest.approx(42.0)

        samples = sink.samples("probe_rtt")
        assert len(samples) == 1
        assert samples[0].kind is MetricKind.DURATION
        assert samples[0].value == pytest.approx(42.0)
        assert samples[0].tags == {"src": "websocket"}

    def test_second_end_forwards_nothing(self, sink: InMemorySink, clock: FakeClock) -> None:
        recorder = LatencyRecorder("probe_rtt", sink, clock=clock)
        recorder.start()
        clock.advance(0.01)
        recorder.end()

        assert recorder.end() == NO_MEASUREMENT
        assert sink.duration_counts["probe_rtt"] == 1

    def test_restart_overwrites_unfinished_measurement(
        self, sink: InMemorySink, clock: FakeClock
    ) -> None:
        recorder = LatencyRecorder("probe_rtt", sink, clock=clock)
        recorder.start()
        clock.advance(5.0)
        recorder.start()
        clock.advance(0.002)

        assert recorder.end() == pytest.approx(2.0)

    def test_in_flight_and_duration(self, sink: InMemorySink, clock: FakeClock) -> None:
        recorder = LatencyRecorder("probe_rtt", sink, clock=clock)
        assert not recorder.in_flight
        assert recorder.duration == NO_MEASUREMENT

        recorder.start()
        assert recorder.in_flight

        clock.advance(0.5)
        recorder.end()
        assert not recorder.in_flight
        assert recorder.duration == pytest.approx(500.0)

    def test_tags_are_copied(self, sink: InMemorySink, clock: FakeClock) -> None:
        tags = {"type": "game"}
        recorder = LatencyRecorder("probe_rtt", sink, tags=tags, clock=clock)
        tags["type"] = "changed"
        recorder.start()
        recorder.end()
        assert sink.samples()[0].tags == {"type": "game"}
