"""Milestone accumulation for process entity types."""

from __future__ import annotations

from .accumulator import (
    MilestoneAccumulator,
    apply_milestone,
    derive_durations,
    derive_status,
    events_from_canonical,
    is_closed,
    parse_timestamp,
)
from .schema import DurationSpan, MilestoneDefinition, MilestoneSchema

__all__ = [
    "DurationSpan",
    "MilestoneAccumulator",
    "MilestoneDefinition",
    "MilestoneSchema",
    "apply_milestone",
    "derive_durations",
    "derive_status",
    "events_from_canonical",
    "is_closed",
    "parse_timestamp",
]
