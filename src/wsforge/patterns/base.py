"""Abstract base class for load shapes."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from wsforge._internal.errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Iterator


class LoadPattern(ABC):
    """Abstract base for all load shapes.

    A load shape maps elapsed time to a target: a number of concurrent
    workers for VU-based executors, or a number of iteration starts per
    time unit for arrival-rate executors. Concrete subclasses implement
    :meth:`target_at`; :meth:`iter_targets` samples it at a fixed tick.

    Example::

        pattern = StagedPattern(start=0, stages=[Stage(60.0, 100)])
        for elapsed, target in pattern.iter_targets(tick_interval=10.0):
            print(f"t={elapsed:.0f}s -> {target}")
    """

    @property
    @abstractmethod
    def duration_seconds(self) -> float:
        """Total length of the shape in seconds."""

    @abstractmethod
    def target_at(self, elapsed: float) -> int:
        """Return the target at *elapsed* seconds from the start.

        Args:
            elapsed: Seconds since the shape started. Values past
                :attr:`duration_seconds` return the final target.

        Returns:
            Non-negative target value.
        """

    @abstractmethod
    def describe(self) -> str:
        """Return a short human-readable summary for logs and tables."""

    def iter_targets(self, tick_interval: float = 1.0) -> Iterator[tuple[float, int]]:
        """Yield ``(elapsed_seconds, target)`` every *tick_interval* seconds.

        The first tick is at ``0.0``; the last tick is at or before
        :attr:`duration_seconds`.

        Args:
            tick_interval: Seconds between ticks. Must be > 0.

        Yields:
            ``(elapsed_seconds, target)`` tuples.
        """
        _validate_positive(tick_interval, "tick_interval")
        ticks = int(self.duration_seconds / tick_interval)
        for i in range(ticks + 1):
            elapsed = i * tick_interval
            yield (elapsed, self.target_at(elapsed))


def _validate_positive(value: float, name: str) -> None:
    """Raise :class:`ConfigError` if *value* is not strictly positive."""
    if value <= 0:
        msg = f"{name} must be positive, got {value}"
        raise ConfigError(msg)


def _validate_non_negative(value: float, name: str) -> None:
    """Raise :class:`ConfigError` if *value* is negative."""
    if value < 0:
        msg = f"{name} must be non-negative, got {value}"
        raise ConfigError(msg)
