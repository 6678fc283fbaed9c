"""Constant load shape: one target held for the whole duration."""

from __future__ import annotations

from wsforge.patterns.base import LoadPattern, _validate_non_negative


class ConstantPattern(LoadPattern):
    """Hold *target* for *duration* seconds.

    Args:
        target: Workers (or iterations per time unit). Must be >= 0.
        duration: Seconds to hold the target. Must be >= 0.

    Raises:
        ConfigError: If either argument is negative.

    Example::

        pattern = ConstantPattern(target=2, duration=60.0)
        assert all(n == 2 for _, n in pattern.iter_targets())
    """

    def __init__(self, target: int, duration: float) -> None:
        _validate_non_negative(target, "target")
        _validate_non_negative(duration, "duration")
        self._target = target
        self._duration = duration

    @property
    def duration_seconds(self) -> float:
        return self._duration

    def target_at(self, elapsed: float) -> int:  # noqa: ARG002
        return self._target

    def describe(self) -> str:
        return f"Constant: {self._target} for {self._duration:g}s"
