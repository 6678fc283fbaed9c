"""Embed wsforge in a script with a hand-built scenario.

Runs two workers against a local echo server for ten seconds, plus a
liveness monitor at two connections per second. Run it with:

    python examples/custom_scenario.py ws://localhost:8080/ws
"""

from __future__ import annotations

import asyncio
import sys

from wsforge import InMemorySink, LoadScenario, ProbeWorkload, ScenarioName, WsForgeConfig
from wsforge._internal.logging import setup_logging
from wsforge.engine.runner import WorkloadRunner
from wsforge.metrics.thresholds import Threshold
from wsforge.scenarios.catalog import RTT_GAUGE
from wsforge.scenarios.models import ConstantArrivalRate, ConstantVUs
from wsforge.transport.aiohttp_ws import AiohttpTransport


async def main(url: str) -> int:
    config = WsForgeConfig(url=url, per_stage_duration_ms=500)
    scenario = LoadScenario(
        name=ScenarioName.CONSTANT,
        runs=(
            ConstantVUs(name="probe", vus=2, duration=10.0, tags={"type": "game"}),
            ConstantArrivalRate(name="monitor", rate=2, duration=10.0, exec_name="monitor"),
        ),
        thresholds=(Threshold(RTT_GAUGE, "value<250"),),
    )
    sink = InMemorySink()

    async with AiohttpTransport(connect_timeout=config.connect_timeout) as transport:
        workload = ProbeWorkload(config, transport, sink)
        result = await WorkloadRunner(scenario, workload, sink).run()

    for name, total in sorted(result.counters.items()):
        print(f"{name:24} {total:g}")
    return 0 if result.thresholds_passed else 1


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "ws://localhost:8080/ws")))
