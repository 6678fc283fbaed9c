"""The scenario catalog: five named load shapes and name resolution."""

from __future__ import annotations

from wsforge._internal.config import DEFAULT_DURATION, parse_duration
from wsforge._internal.logging import get_logger
from wsforge.metrics.thresholds import Threshold
from wsforge.patterns.staged import Stage
from wsforge.scenarios.models import (
    ConstantArrivalRate,
    ConstantVUs,
    LoadScenario,
    RampingArrivalRate,
    RampingVUs,
    ScenarioName,
    SharedIterations,
)

logger = get_logger("scenarios.catalog")

# Gauge fed with each session's probe round trip; the constant scenario's
# threshold references it by this exact name.
RTT_GAUGE = "gaugeRtt"

DEFAULT_CONSTANT_VUS = 2


def _iterations() -> LoadScenario:
    return LoadScenario(
        name=ScenarioName.ITERATIONS,
        runs=(
            SharedIterations(name="iterations", vus=1, iterations=1, max_duration=600.0),
            ConstantArrivalRate(
                name="monitor",
                rate=1,
                time_unit=1.0,
                duration=70.0,
                preallocated_vus=1,
                exec_name="monitor",
            ),
        ),
    )


def _ramping_arrival_rate() -> LoadScenario:
    return LoadScenario(
        name=ScenarioName.RAMPING_ARRIVAL_RATE,
        runs=(
            RampingArrivalRate(
                name="ramping_arrival_rate",
                start_rate=1,
                time_unit=1.0,
                preallocated_vus=2,
                max_vus=2,
                stages=(
                    Stage(30.0, 0),
                    Stage(300.0, 10),
                    Stage(300.0, 50),
                    Stage(600.0, 100),
                    Stage(30.0, 0),
                ),
            ),
        ),
    )


def _stress() -> LoadScenario:
    return LoadScenario(
        name=ScenarioName.STRESS,
        runs=(
            RampingVUs(
                name="stress",
                start_vus=1,
                stages=(
                    Stage(10.0, 10),
                    Stage(10.0, 10),
                    Stage(10.0, 50),
                    Stage(10.0, 0),
                ),
            ),
        ),
    )


def _constant(duration: float, vus: int) -> LoadScenario:
    return LoadScenario(
        name=ScenarioName.CONSTANT,
        runs=(
            ConstantVUs(
                name="constant",
                vus=vus,
                duration=duration,
                tags={"type": "game"},
            ),
        ),
        thresholds=(Threshold(metric=RTT_GAUGE, expression="value<100"),),
    )


def _breakpoint() -> LoadScenario:
    return LoadScenario(
        name=ScenarioName.BREAKPOINT,
        runs=(
            RampingArrivalRate(
                name="breakpoint",
                start_rate=0,
                preallocated_vus=1,
                max_vus=None,
                stages=(Stage(600.0, 20000),),
            ),
        ),
    )


def resolve_scenario(
    scene: str | None,
    *,
    duration: str | float = DEFAULT_DURATION,
    vus: int | None = None,
) -> LoadScenario:
    """Return the scenario named *scene*, falling back to ``constant``.

    Matching is exact and case-sensitive. ``None``, empty and unknown names
    all resolve to the constant scenario; this function never fails on the
    name.

    Args:
        scene: Scenario name from configuration.
        duration: Run duration for the constant scenario.
        vus: Worker count for the constant scenario. ``None`` keeps the
            default of 2.

    Returns:
        An immutable scenario descriptor.

    Raises:
        ConfigError: If *duration* cannot be parsed or *vus* is negative.
    """
    try:
        name = ScenarioName(scene) if scene else ScenarioName.CONSTANT
    except ValueError:
        logger.debug("Unknown scene %r, using %s", scene, ScenarioName.CONSTANT.value)
        name = ScenarioName.CONSTANT

    if name is ScenarioName.ITERATIONS:
        return _iterations()
    if name is ScenarioName.RAMPING_ARRIVAL_RATE:
        return _ramping_arrival_rate()
    if name is ScenarioName.STRESS:
        return _stress()
    if name is ScenarioName.BREAKPOINT:
        return _breakpoint()
    return _constant(
        duration=parse_duration(duration),
        vus=DEFAULT_CONSTANT_VUS if vus is None else vus,
    )


def list_scenarios(*, duration: str | float = DEFAULT_DURATION) -> list[LoadScenario]:
    """Return every catalog entry, in declaration order."""
    return [resolve_scenario(name.value, duration=duration) for name in ScenarioName]
