"""Merge engine output: canonical records and their audit trail."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from .enums import MatchMethod, ReviewReason


@dataclass(frozen=True, slots=True, kw_only=True)
class CanonicalRecord:
    """Merged, policy-applied view of one identity group.

    Recomputed every batch; only ``content_hash`` over the tracked fields is
    relevant for history.
    """

    entity_type: str
    master_id: str
    fields: dict[str, object]
    source_of_each_field: dict[str, str | None]
    quality_score: int
    quality_issues: tuple[str, ...]
    content_hash: str
    batch_id: str
    match_method: MatchMethod
    match_confidence: int
    captured_at: datetime | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class ConflictLogEntry:
    """One disagreement between sources on a single field. Append-only."""

    entity_type: str
    master_id: str
    field_name: str
    primary_value: object | None
    fallback_value: object | None
    resolved_value: object | None
    resolution_rule: str
    batch_id: str
    logged_at: datetime


@dataclass(frozen=True, slots=True, kw_only=True)
class ReviewItem:
    """Entry of the manual review queue.

    The engine never guesses at disambiguation; it records what looked wrong
    and carries on with the data as delivered.
    """

    entity_type: str
    master_id: str
    reason: ReviewReason
    batch_id: str
    detail: dict[str, object] = field(default_factory=dict["str", "object"])
