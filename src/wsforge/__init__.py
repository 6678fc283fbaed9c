"""WsForge: WebSocket probe/echo load testing on asyncio."""

from __future__ import annotations

from wsforge._internal.config import WsForgeConfig, load_config, parse_duration
from wsforge.engine.session import ProbeSession, SessionState
from wsforge.engine.stagger import compute_delay
from wsforge.metrics.recorder import LatencyRecorder
from wsforge.metrics.sink import InMemorySink, MetricSink
from wsforge.scenarios.catalog import resolve_scenario
from wsforge.scenarios.models import LoadScenario, ScenarioName
from wsforge.workload import ProbeWorkload

__version__ = "0.1.0"

__all__ = [
    "InMemorySink",
    "LatencyRecorder",
    "LoadScenario",
    "MetricSink",
    "ProbeSession",
    "ProbeWorkload",
    "ScenarioName",
    "SessionState",
    "WsForgeConfig",
    "compute_delay",
    "load_config",
    "parse_duration",
    "resolve_scenario",
]
