"""Scenario descriptors: executor kinds and the LoadScenario container."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from wsforge.patterns.base import _validate_non_negative, _validate_positive
from wsforge.patterns.constant import ConstantPattern
from wsforge.patterns.staged import Stage, StagedPattern

if TYPE_CHECKING:
    from wsforge._internal.types import Tags
    from wsforge.metrics.thresholds import Threshold
    from wsforge.patterns.base import LoadPattern


class ScenarioName(str, Enum):
    """The closed set of named load shapes."""

    ITERATIONS = "iterations"
    RAMPING_ARRIVAL_RATE = "ramping_arrival_rate"
    STRESS = "stress"
    CONSTANT = "constant"
    BREAKPOINT = "breakpoint"


# =============================================================================
# Executors
# =============================================================================


@dataclass(frozen=True)
class SharedIterations:
    """*vus* workers share a pool of *iterations* total iterations.

    Attributes:
        name: Sub-run name.
        vus: Workers sharing the pool.
        iterations: Total iterations across all workers.
        max_duration: Ceiling on wall time in seconds.
        exec_name: Workload entry point to invoke.
        tags: Extra connection/metric tags.
    """

    name: str
    vus: int = 1
    iterations: int = 1
    max_duration: float = 600.0
    exec_name: str = "main"
    tags: Tags = field(default_factory=dict)

    def __post_init__(self) -> None:
        _validate_positive(self.vus, "vus")
        _validate_positive(self.iterations, "iterations")
        _validate_positive(self.max_duration, "max_duration")

    @property
    def total_duration(self) -> float:
        return self.max_duration

    @property
    def max_concurrency(self) -> int:
        return self.vus

    def pattern(self) -> LoadPattern:
        return ConstantPattern(target=self.vus, duration=self.max_duration)

    def describe(self) -> str:
        return (
            f"shared-iterations: {self.iterations} iteration(s) over {self.vus} VU(s), "
            f"max {self.max_duration:g}s"
        )


@dataclass(frozen=True)
class ConstantVUs:
    """A fixed number of workers looping for *duration* seconds."""

    name: str
    vus: int
    duration: float
    exec_name: str = "main"
    tags: Tags = field(default_factory=dict)

    def __post_init__(self) -> None:
        _validate_non_negative(self.vus, "vus")
        _validate_non_negative(self.duration, "duration")

    @property
    def total_duration(self) -> float:
        return self.duration

    @property
    def max_concurrency(self) -> int:
        return self.vus

    def pattern(self) -> LoadPattern:
        return ConstantPattern(target=self.vus, duration=self.duration)

    def describe(self) -> str:
        return f"constant-vus: {self.vus} VU(s) for {self.duration:g}s"


@dataclass(frozen=True)
class RampingVUs:
    """Worker count ramps from *start_vus* through *stages*."""

    name: str
    stages: tuple[Stage, ...]
    start_vus: int = 1
    exec_name: str = "main"
    tags: Tags = field(default_factory=dict)

    def __post_init__(self) -> None:
        _validate_non_negative(self.start_vus, "start_vus")

    @property
    def total_duration(self) -> float:
        return sum(stage.duration for stage in self.stages)

    @property
    def max_concurrency(self) -> int:
        return max([self.start_vus, *(stage.target for stage in self.stages)])

    def pattern(self) -> LoadPattern:
        return StagedPattern(start=self.start_vus, stages=self.stages)

    def describe(self) -> str:
        return f"ramping-vus: {self.pattern().describe()}"


@dataclass(frozen=True)
class ConstantArrivalRate:
    """Start *rate* iterations per *time_unit* seconds, regardless of latency.

    Attributes:
        max_vus: Worker pool cap. ``None`` means *preallocated_vus*.
    """

    name: str
    rate: int
    duration: float
    time_unit: float = 1.0
    preallocated_vus: int = 1
    max_vus: int | None = None
    exec_name: str = "main"
    tags: Tags = field(default_factory=dict)

    def __post_init__(self) -> None:
        _validate_non_negative(self.rate, "rate")
        _validate_non_negative(self.duration, "duration")
        _validate_positive(self.time_unit, "time_unit")
        _validate_non_negative(self.preallocated_vus, "preallocated_vus")

    @property
    def total_duration(self) -> float:
        return self.duration

    @property
    def max_concurrency(self) -> int:
        return self.max_vus if self.max_vus is not None else self.preallocated_vus

    def pattern(self) -> LoadPattern:
        return ConstantPattern(target=self.rate, duration=self.duration)

    def describe(self) -> str:
        return (
            f"constant-arrival-rate: {self.rate}/{self.time_unit:g}s "
            f"for {self.duration:g}s, {self.max_concurrency} VU(s)"
        )


@dataclass(frozen=True)
class RampingArrivalRate:
    """Iteration start rate ramps from *start_rate* through *stages*.

    Attributes:
        max_vus: Worker pool cap. ``None`` leaves the cap to the host.
    """

    name: str
    stages: tuple[Stage, ...]
    start_rate: int = 1
    time_unit: float = 1.0
    preallocated_vus: int = 1
    max_vus: int | None = None
    exec_name: str = "main"
    tags: Tags = field(default_factory=dict)

    def __post_init__(self) -> None:
        _validate_non_negative(self.start_rate, "start_rate")
        _validate_positive(self.time_unit, "time_unit")
        _validate_non_negative(self.preallocated_vus, "preallocated_vus")

    @property
    def total_duration(self) -> float:
        return sum(stage.duration for stage in self.stages)

    @property
    def max_concurrency(self) -> int:
        return self.max_vus if self.max_vus is not None else self.preallocated_vus

    def pattern(self) -> LoadPattern:
        return StagedPattern(start=self.start_rate, stages=self.stages)

    def describe(self) -> str:
        cap = "host cap" if self.max_vus is None else f"max {self.max_vus} VU(s)"
        return f"ramping-arrival-rate per {self.time_unit:g}s, {cap}: {self.pattern().describe()}"


Executor = SharedIterations | ConstantVUs | RampingVUs | ConstantArrivalRate | RampingArrivalRate


# =============================================================================
# Scenario
# =============================================================================


@dataclass(frozen=True)
class LoadScenario:
    """A named load shape: one or more concurrently executed sub-runs.

    Attributes:
        name: Which catalog entry this is.
        runs: Sub-runs started together when the run begins.
        thresholds: Pass/fail criteria evaluated against the metrics sink.
    """

    name: ScenarioName
    runs: tuple[Executor, ...]
    thresholds: tuple[Threshold, ...] = ()

    @property
    def concurrency(self) -> int:
        """Return the summed worker ceiling across all sub-runs."""
        return sum(run.max_concurrency for run in self.runs)

    @property
    def arrival_pattern(self) -> tuple[Stage, ...]:
        """Return the primary sub-run's stages.

        Non-staged sub-runs are reported as one stage holding their constant
        target for their whole duration.
        """
        primary = self.runs[0]
        if isinstance(primary, RampingVUs | RampingArrivalRate):
            return primary.stages
        if isinstance(primary, ConstantArrivalRate):
            return (Stage(primary.duration, primary.rate),)
        return (Stage(primary.total_duration, primary.max_concurrency),)

    @property
    def total_duration(self) -> float:
        """Return the longest sub-run duration in seconds."""
        return max((run.total_duration for run in self.runs), default=0.0)

    def describe(self) -> str:
        lines = [f"{self.name.value}: {len(self.runs)} sub-run(s), {self.total_duration:g}s"]
        lines.extend(f"  {run.name}: {run.describe()}" for run in self.runs)
        lines.extend(f"  threshold {t}" for t in self.thresholds)
        return "\n".join(lines)
