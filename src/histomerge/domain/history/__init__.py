"""Temporal history of reference entities."""

from __future__ import annotations

from .invariants import verify_history
from .store import TemporalVersioningStore
from .transitions import (
    KeepVersion,
    OpenFirstVersion,
    SupersedeVersion,
    VersionTransition,
    effect_of,
    plan_transition,
)

__all__ = [
    "KeepVersion",
    "OpenFirstVersion",
    "SupersedeVersion",
    "TemporalVersioningStore",
    "VersionTransition",
    "effect_of",
    "plan_transition",
    "verify_history",
]
