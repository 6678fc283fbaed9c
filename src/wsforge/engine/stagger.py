"""Start-delay staggering: spread session starts across one-second batches."""

from __future__ import annotations

import math
from dataclasses import dataclass

from wsforge._internal.errors import ConfigError

PER_STAGE_DURATION_MS = 1000


def compute_delay(
    worker_ordinal: int,
    iteration_index: int,
    per_stage_duration_ms: int = PER_STAGE_DURATION_MS,
) -> int:
    """Return the start delay in milliseconds for one worker iteration.

    A worker's first iteration lands in batch ``worker_ordinal``; later
    iterations land in batch ``iteration_index``. Each batch starts
    ``per_stage_duration_ms`` after the previous one.

    Args:
        worker_ordinal: 1-based worker position assigned by the host.
        iteration_index: 0-based repetition count of this worker.
        per_stage_duration_ms: Width of one batch in milliseconds.

    Returns:
        Non-negative delay in milliseconds.

    Raises:
        ConfigError: If any argument is negative.
    """
    if worker_ordinal < 0 or iteration_index < 0 or per_stage_duration_ms < 0:
        msg = (
            "worker_ordinal, iteration_index and per_stage_duration_ms must be "
            f"non-negative, got {worker_ordinal}, {iteration_index}, {per_stage_duration_ms}"
        )
        raise ConfigError(msg)
    batch = iteration_index if iteration_index != 0 else worker_ordinal
    return int(math.floor(batch) * per_stage_duration_ms)


@dataclass(frozen=True)
class StartPlan:
    """When one worker iteration opens its connection.

    Attributes:
        worker_ordinal: 1-based worker position.
        iteration_index: 0-based iteration of that worker.
        delay_ms: Milliseconds to wait before connecting.
    """

    worker_ordinal: int
    iteration_index: int
    delay_ms: int

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000


def plan_start(
    worker_ordinal: int,
    iteration_index: int,
    per_stage_duration_ms: int = PER_STAGE_DURATION_MS,
) -> StartPlan:
    """Build a :class:`StartPlan` using :func:`compute_delay`."""
    return StartPlan(
        worker_ordinal=worker_ordinal,
        iteration_index=iteration_index,
        delay_ms=compute_delay(worker_ordinal, iteration_index, per_stage_duration_ms),
    )
