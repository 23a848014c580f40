"""Public domain model surface."""

from __future__ import annotations

from histomerge.domain.model.audit import BatchRun
from histomerge.domain.model.canonical import CanonicalRecord, ConflictLogEntry, ReviewItem
from histomerge.domain.model.enums import (
    BatchStatus,
    EntityKind,
    MatchMethod,
    MilestoneEffect,
    QualityCheck,
    ReconciliationRule,
    RepeatPolicy,
    ReviewReason,
    TieBreak,
    VersionEffect,
)
from histomerge.domain.model.history import OPEN_END, HistoryVersion
from histomerge.domain.model.identity import IdentityGroup
from histomerge.domain.model.process import MilestoneEvent, MilestoneSlot, ProcessInstance
from histomerge.domain.model.records import BatchContext, ScoredRecord, SourceRecord

__all__ = [  # noqa: RUF022
    # records
    "BatchContext",
    "SourceRecord",
    "ScoredRecord",
    # identity
    "IdentityGroup",
    # canonical
    "CanonicalRecord",
    "ConflictLogEntry",
    "ReviewItem",
    # history
    "OPEN_END",
    "HistoryVersion",
    # process
    "MilestoneEvent",
    "MilestoneSlot",
    "ProcessInstance",
    # audit
    "BatchRun",
    # enums
    "BatchStatus",
    "EntityKind",
    "MatchMethod",
    "MilestoneEffect",
    "QualityCheck",
    "ReconciliationRule",
    "RepeatPolicy",
    "ReviewReason",
    "TieBreak",
    "VersionEffect",
]
