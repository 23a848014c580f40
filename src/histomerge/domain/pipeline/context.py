"""Shared state of one entity type while it moves through the stages."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from histomerge.domain.model import (
        BatchContext,
        IdentityGroup,
        ReviewItem,
        ScoredRecord,
        SourceRecord,
    )
    from histomerge.domain.ports import ReconciliationUnitOfWork
    from histomerge.domain.reconciliation import MergeResult, ReconciliationPolicy
    from histomerge.domain.schema import EntitySchema


@dataclass(slots=True)
class EntityCounters:
    records_read: int = 0
    groups_resolved: int = 0
    conflicts_logged: int = 0
    reviews_queued: int = 0
    rows_written: int = 0
    rows_rejected: int = 0
    effects: Counter[str] = field(default_factory=Counter[str])


@dataclass(slots=True)
class EntityBatch:
    """Mutable context handed from stage to stage for one entity type."""

    schema: EntitySchema
    context: BatchContext
    records: tuple[SourceRecord, ...]
    uow: ReconciliationUnitOfWork | None = None
    policy: ReconciliationPolicy | None = None
    scored: list[ScoredRecord] = field(default_factory=list["ScoredRecord"])
    groups: tuple[IdentityGroup, ...] = ()
    merged: list[MergeResult] = field(default_factory=list["MergeResult"])
    reviews: list[ReviewItem] = field(default_factory=list["ReviewItem"])
    counters: EntityCounters = field(default_factory=EntityCounters)

    @property
    def entity_type(self) -> str:
        return self.schema.entity_type

    def require_policy(self) -> ReconciliationPolicy:
        if self.policy is None:
            raise RuntimeError("Policy validation must run before this stage")
        return self.policy

    def require_uow(self) -> ReconciliationUnitOfWork:
        if self.uow is None:
            raise RuntimeError(f"No unit of work attached to the {self.entity_type} batch")
        return self.uow
