"""Ports for persisting engine output."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from histomerge.domain.model import (
        BatchRun,
        CanonicalRecord,
        ConflictLogEntry,
        HistoryVersion,
        ProcessInstance,
        ReviewItem,
    )


@runtime_checkable
class Repository[TEntity](Protocol):
    """Minimal repository contract for a persistent aggregate store."""

    def add(self, entity: TEntity) -> None: ...


@runtime_checkable
class HistoryRepository(Repository["HistoryVersion"], Protocol):
    """Persistence contract for temporal history rows."""

    def history(self, entity_type: str, master_id: str) -> list[HistoryVersion]:
        """All versions of one master id ordered by ``valid_from``."""
        ...

    def versions(self, entity_type: str) -> list[HistoryVersion]: ...

    def current(self, entity_type: str) -> list[HistoryVersion]: ...

    def at(self, entity_type: str, master_id: str, moment: datetime) -> HistoryVersion | None: ...

    def flush(self) -> None: ...


@runtime_checkable
class ProcessRepository(Repository["ProcessInstance"], Protocol):
    """Persistence contract for accumulating snapshots."""

    def get(self, process_type: str, process_id: str) -> ProcessInstance | None: ...


@runtime_checkable
class CanonicalRecordRepository(Protocol):
    """Replace-per-batch surface of merged records."""

    def replace(
        self, entity_type: str, batch_id: str, records: Sequence[CanonicalRecord]
    ) -> None: ...

    def for_batch(self, entity_type: str, batch_id: str) -> list[CanonicalRecord]: ...


@runtime_checkable
class ConflictLogRepository(Protocol):
    """Append-only conflict log. ``add`` returns ``False`` for a repeat."""

    def add(self, entry: ConflictLogEntry) -> bool: ...

    def for_master(self, entity_type: str, master_id: str) -> list[ConflictLogEntry]: ...


@runtime_checkable
class ReviewQueueRepository(Protocol):
    """Append-only manual review queue. ``add`` returns ``False`` for a repeat."""

    def add(self, item: ReviewItem) -> bool: ...

    def pending(self, *, batch_id: str | None = None) -> list[ReviewItem]: ...


@runtime_checkable
class BatchRunRepository(Repository["BatchRun"], Protocol):
    """Execution log of batch runs, one row per batch and entity type."""

    def get(self, batch_id: str, entity_type: str) -> BatchRun | None: ...
