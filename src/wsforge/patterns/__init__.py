"""Load shapes for WsForge.

A load shape maps elapsed time to a target worker count or arrival rate.
Scenario executors build one with :meth:`pattern` and the host samples it
through :meth:`LoadPattern.iter_targets`.
"""

from __future__ import annotations

from wsforge.patterns.base import LoadPattern
from wsforge.patterns.constant import ConstantPattern
from wsforge.patterns.staged import Stage, StagedPattern

__all__ = [
    "ConstantPattern",
    "LoadPattern",
    "Stage",
    "StagedPattern",
]
