"""Threshold expressions evaluated against the in-memory metrics sink."""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from wsforge._internal.errors import ScenarioError

if TYPE_CHECKING:
    from collections.abc import Callable

    from wsforge.metrics.sink import InMemorySink

_EXPRESSION = re.compile(r"^\s*(value|count)\s*(<=|>=|==|!=|<|>)\s*(-?\d+(?:\.\d+)?)\s*$")

_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}


def _parse(metric: str, expression: str) -> tuple[str, str, float]:
    match = _EXPRESSION.match(expression)
    if match is None:
        msg = (
            f"invalid threshold expression for {metric!r}: {expression!r} "
            "(expected e.g. 'value<100' or 'count>=1')"
        )
        raise ScenarioError(msg)
    aggregation, op, bound = match.groups()
    return aggregation, op, float(bound)


@dataclass(frozen=True)
class Threshold:
    """A pass/fail criterion on one metric, e.g. ``gaugeRtt: value<100``.

    ``value`` reads a gauge's last value; ``count`` reads a counter's total.

    Attributes:
        metric: Metric name the expression applies to.
        expression: ``<aggregation><op><number>``.
    """

    metric: str
    expression: str

    def __post_init__(self) -> None:
        _parse(self.metric, self.expression)

    def __str__(self) -> str:
        return f"{self.metric}: {self.expression}"

    def evaluate(self, sink: InMemorySink) -> ThresholdResult:
        """Evaluate the expression against *sink*'s current aggregates.

        A gauge that was never set has no value and fails the threshold.

        Args:
            sink: Sink holding the run's counters and gauges.

        Returns:
            The outcome, including the observed value.
        """
        aggregation, op, bound = _parse(self.metric, self.expression)

        observed: float | None
        if aggregation == "value":
            observed = sink.gauges.get(self.metric)
        else:
            observed = float(sink.counters.get(self.metric, 0))

        passed = observed is not None and _OPERATORS[op](observed, bound)
        return ThresholdResult(threshold=self, observed=observed, passed=passed)


@dataclass(frozen=True)
class ThresholdResult:
    """Outcome of evaluating one :class:`Threshold`.

    Attributes:
        threshold: The evaluated threshold.
        observed: Value the expression was checked against, None if unset.
        passed: Whether the expression held.
    """

    threshold: Threshold
    observed: float | None
    passed: bool
