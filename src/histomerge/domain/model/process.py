"""Accumulating snapshot of long-running process instances."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime, timedelta


@dataclass(frozen=True, slots=True, kw_only=True)
class MilestoneSlot:
    """A reached milestone: when it happened and what came with it."""

    reached_at: datetime
    batch_id: str
    payload: dict[str, object] = field(default_factory=dict["str", "object"])


@dataclass(frozen=True, slots=True, kw_only=True)
class MilestoneEvent:
    """Signal that ``milestone_name`` happened for ``process_id``."""

    process_id: str
    milestone_name: str
    occurred_at: datetime
    batch_id: str
    payload: dict[str, object] = field(default_factory=dict["str", "object"])


@dataclass(eq=False, kw_only=True)
class ProcessInstance:
    """One mutable row per process instance, updated in place.

    ``status``, ``durations`` and ``is_closed`` are projections recomputed by
    the accumulator from ``slots`` on every write; they are never set on their
    own.
    """

    process_type: str
    process_id: str
    created_batch_id: str
    updated_batch_id: str
    slots: dict[str, MilestoneSlot] = field(default_factory=dict["str", "MilestoneSlot"])
    status: str | None = None
    durations: dict[str, timedelta | None] = field(
        default_factory=dict["str", "timedelta | None"]
    )
    is_closed: bool = False
    id: int | None = field(default=None, repr=False)

    def slot(self, milestone_name: str) -> MilestoneSlot | None:
        return self.slots.get(milestone_name)

    def reached(self, milestone_name: str) -> bool:
        return milestone_name in self.slots
