"""Shared type aliases for WsForge."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

# Metric / connection tags.
Tags = dict[str, str]

# Zero-argument coroutine function scheduled through ``VUContext.after``.
DeferredCallback = Callable[[], Awaitable[None]]

# Monotonic clock returning seconds.
Clock = Callable[[], float]
