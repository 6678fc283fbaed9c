"""Configuration loading for WsForge."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass

from wsforge._internal.errors import ConfigError

DEFAULT_URL = "ws://localhost:8080/ws"
DEFAULT_DURATION = "1m"
DEFAULT_PROBE = "onTestcase1"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: str | float) -> float:
    """Parse a duration such as ``"1m10s"``, ``"500ms"`` or ``"30"`` into seconds.

    Bare numbers are seconds. Units may be combined in any order as long as
    the whole string is consumed.

    Args:
        value: Duration string or a number of seconds.

    Returns:
        Duration in seconds.

    Raises:
        ConfigError: If the value is empty, malformed, or negative.
    """
    if isinstance(value, int | float):
        if value < 0:
            msg = f"duration must be non-negative, got {value}"
            raise ConfigError(msg)
        return float(value)

    text = value.strip()
    if not text:
        msg = "duration must not be empty"
        raise ConfigError(msg)

    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        if seconds < 0:
            msg = f"duration must be non-negative, got {text!r}"
            raise ConfigError(msg)
        return seconds

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()

    if pos != len(text):
        msg = f"invalid duration: {text!r} (expected e.g. '30s', '1m10s', '500ms')"
        raise ConfigError(msg)
    return total


@dataclass(frozen=True)
class WsForgeConfig:
    """Global WsForge configuration, read once at startup.

    Attributes:
        url: WebSocket endpoint under test.
        scene: Scenario name; ``None`` selects the default scenario.
        vus: Worker-count override for the constant scenario.
        duration: Run duration string for the constant scenario.
        probe: Probe payload sent on open and expected back as the echo.
        max_vus: Host-enforced cap on concurrently running workers.
        connect_timeout: Handshake timeout in seconds.
        per_stage_duration_ms: Stagger width of one start batch.
        cooldown_seconds: Drain pause after a close signal.
        graceful_stop: Seconds workers get to finish after a sub-run ends.
    """

    url: str = DEFAULT_URL
    scene: str | None = None
    vus: int | None = None
    duration: str = DEFAULT_DURATION
    probe: str = DEFAULT_PROBE
    max_vus: int = 1000
    connect_timeout: float = 30.0
    per_stage_duration_ms: int = 1000
    cooldown_seconds: float = 1.0
    graceful_stop: float = 5.0

    @property
    def duration_seconds(self) -> float:
        """Return :attr:`duration` parsed into seconds."""
        return parse_duration(self.duration)


def _read_int(name: str, *, minimum: int) -> int | None:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        msg = f"{name} must be an integer, got: {raw!r}"
        raise ConfigError(msg) from None
    if value < minimum:
        msg = f"{name} must be >= {minimum}, got: {value}"
        raise ConfigError(msg)
    return value


def load_config() -> WsForgeConfig:
    """Load configuration from environment variables with defaults.

    Environment variables:
        WSFORGE_URL: Endpoint under test (default: ``ws://localhost:8080/ws``).
        WSFORGE_SCENE: Scenario name (default: constant).
        WSFORGE_VUS: Worker count for the constant scenario.
        WSFORGE_DURATION: Run duration (default: ``1m``).
        WSFORGE_PROBE: Probe payload (default: ``onTestcase1``).
        WSFORGE_MAX_VUS: Worker cap (default: 1000).
        WSFORGE_TIMEOUT: Handshake timeout in seconds (default: 30.0).

    Returns:
        Populated WsForgeConfig instance.

    Raises:
        ConfigError: If an environment variable has an invalid value.
    """
    duration = os.environ.get("WSFORGE_DURATION") or DEFAULT_DURATION
    # Validate eagerly so a bad value fails at startup.
    parse_duration(duration)

    timeout_str = os.environ.get("WSFORGE_TIMEOUT", "30.0")
    try:
        timeout = float(timeout_str)
    except ValueError:
        msg = f"WSFORGE_TIMEOUT must be a number, got: {timeout_str!r}"
        raise ConfigError(msg) from None
    if timeout <= 0:
        msg = f"WSFORGE_TIMEOUT must be positive, got: {timeout}"
        raise ConfigError(msg)

    max_vus = _read_int("WSFORGE_MAX_VUS", minimum=1)

    return WsForgeConfig(
        url=os.environ.get("WSFORGE_URL") or DEFAULT_URL,
        scene=os.environ.get("WSFORGE_SCENE") or None,
        vus=_read_int("WSFORGE_VUS", minimum=0),
        duration=duration,
        probe=os.environ.get("WSFORGE_PROBE") or DEFAULT_PROBE,
        max_vus=max_vus if max_vus is not None else 1000,
        connect_timeout=timeout,
    )
