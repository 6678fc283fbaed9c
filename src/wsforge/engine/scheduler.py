"""Turns a load shape into per-tick scale commands for VU-based executors."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from wsforge.patterns.base import LoadPattern


class ScaleDirection(Enum):
    """Direction of a worker-count change."""

    UP = auto()
    DOWN = auto()
    HOLD = auto()


@dataclass(frozen=True)
class ScaleCommand:
    """Adjust the number of active workers.

    Attributes:
        elapsed_seconds: Time offset from the sub-run start.
        target_concurrency: Desired number of active workers, capped.
        direction: Whether this scales up, down, or holds.
        delta: Absolute change from the previous command.
    """

    elapsed_seconds: float
    target_concurrency: int
    direction: ScaleDirection
    delta: int


class Scheduler:
    """Emits one :class:`ScaleCommand` per tick of a load shape.

    Args:
        pattern: Shape giving the target worker count over time.
        tick_interval: Seconds between commands.
        max_concurrency: Host cap applied to every target. ``None`` means
            uncapped.
    """

    def __init__(
        self,
        pattern: LoadPattern,
        tick_interval: float = 1.0,
        max_concurrency: int | None = None,
    ) -> None:
        self._pattern = pattern
        self._tick_interval = tick_interval
        self._max_concurrency = max_concurrency

    def iter_commands(self) -> Iterator[ScaleCommand]:
        """Yield a command per tick, starting from zero active workers."""
        prev = 0
        for elapsed, target in self._pattern.iter_targets(self._tick_interval):
            if self._max_concurrency is not None:
                target = min(target, self._max_concurrency)  # noqa: PLW2901
            delta = target - prev
            if delta > 0:
                direction = ScaleDirection.UP
            elif delta < 0:
                direction = ScaleDirection.DOWN
            else:
                direction = ScaleDirection.HOLD
            yield ScaleCommand(
                elapsed_seconds=elapsed,
                target_concurrency=target,
                direction=direction,
                delta=abs(delta),
            )
            prev = target
