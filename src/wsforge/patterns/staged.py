"""Staged load shape: linear ramps through an ordered list of stages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from wsforge._internal.errors import ConfigError
from wsforge.patterns.base import LoadPattern, _validate_non_negative

if TYPE_CHECKING:
    from collections.abc import Sequence


@dataclass(frozen=True)
class Stage:
    """One ramp segment: move to *target* over *duration* seconds.

    Attributes:
        duration: Length of the segment in seconds. Must be >= 0.
        target: Value reached at the end of the segment. Must be >= 0.
    """

    duration: float
    target: int

    def __post_init__(self) -> None:
        _validate_non_negative(self.duration, "stage duration")
        _validate_non_negative(self.target, "stage target")


class StagedPattern(LoadPattern):
    """Interpolate linearly from *start* through each stage's target.

    Every stage ramps from the previous stage's target (or *start* for the
    first one) to its own target, so the shape has no jumps except across a
    zero-length stage. After the last stage the final target holds.

    Args:
        start: Value at ``t=0``. Must be >= 0.
        stages: Ordered stages. Must contain at least one stage.

    Raises:
        ConfigError: If *stages* is empty or *start* is negative.

    Example::

        pattern = StagedPattern(start=0, stages=[Stage(10.0, 10), Stage(10.0, 0)])
        assert pattern.target_at(5.0) == 5
        assert pattern.target_at(10.0) == 10
        assert pattern.target_at(20.0) == 0
    """

    def __init__(self, start: int, stages: Sequence[Stage]) -> None:
        _validate_non_negative(start, "start")
        if not stages:
            msg = "stages must contain at least one stage"
            raise ConfigError(msg)
        self._start = start
        self._stages = tuple(stages)

    @property
    def stages(self) -> tuple[Stage, ...]:
        """Return the configured stages."""
        return self._stages

    @property
    def duration_seconds(self) -> float:
        return sum(stage.duration for stage in self._stages)

    def target_at(self, elapsed: float) -> int:
        previous = self._start
        remaining = max(elapsed, 0.0)
        for stage in self._stages:
            if remaining < stage.duration:
                fraction = remaining / stage.duration
                return max(round(previous + (stage.target - previous) * fraction), 0)
            remaining -= stage.duration
            previous = stage.target
        return previous

    def describe(self) -> str:
        path = " -> ".join(f"{s.target}@{s.duration:g}s" for s in self._stages)
        return f"Staged: {self._start} -> {path} ({self.duration_seconds:g}s total)"
