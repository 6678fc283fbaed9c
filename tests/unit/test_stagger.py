"""Tests for start-delay staggering."""

from __future__ import annotations

import pytest

from wsforge._internal.errors import ConfigError
from wsforge.engine.stagger import PER_STAGE_DURATION_MS, StartPlan, compute_delay, plan_start


class TestComputeDelay:
    """Tests for compute_delay."""

    @pytest.mark.parametrize(
        ("ordinal", "iteration", "expected"),
        [
            (1, 0, 1000),
            (2, 0, 2000),
            (5, 0, 5000),
            (1, 3, 3000),
            (2, 2, 2000),
            (0, 0, 0),
        ],
    )
    def test_default_batch_width(self, ordinal: int, iteration: int, expected: int) -> None:
        assert compute_delay(ordinal, iteration) == expected

    def test_first_iteration_uses_ordinal(self) -> None:
        assert compute_delay(7, 0, per_stage_duration_ms=250) == 1750

    def test_later_iterations_use_iteration_index(self) -> None:
        assert compute_delay(3, 4, per_stage_duration_ms=100) == 400

    def test_zero_width_batches(self) -> None:
        assert compute_delay(10, 0, per_stage_duration_ms=0) == 0

    def test_deterministic(self) -> None:
        assert compute_delay(4, 0) == compute_delay(4, 0)

    def test_default_width_constant(self) -> None:
        assert PER_STAGE_DURATION_MS == 1000

    def test_result_is_int(self) -> None:
        assert isinstance(compute_delay(3, 0), int)

    @pytest.mark.parametrize(
        ("ordinal", "iteration", "width"),
        [(-1, 0, 1000), (1, -1, 1000), (1, 0, -5)],
    )
    def test_rejects_negative_inputs(self, ordinal: int, iteration: int, width: int) -> None:
        with pytest.raises(ConfigError, match="non-negative"):
            compute_delay(ordinal, iteration, width)


class TestPlanStart:
    """Tests for plan_start and StartPlan."""

    def test_plan_carries_inputs_and_delay(self) -> None:
        plan = plan_start(2, 0)
        assert plan == StartPlan(worker_ordinal=2, iteration_index=0, delay_ms=2000)

    def test_delay_seconds(self) -> None:
        assert plan_start(3, 0, per_stage_duration_ms=500).delay_seconds == pytest.approx(1.5)

    def test_plan_is_frozen(self) -> None:
        plan = plan_start(1, 0)
        with pytest.raises(AttributeError):
            plan.delay_ms = 0  # type: ignore[misc]
