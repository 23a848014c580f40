"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import delete, select

from histomerge.adapters.sqlalchemy.mappings import (
    batch_run_table,
    canonical_record_table,
    conflict_log_table,
    history_version_table,
    process_instance_table,
    review_item_table,
)
from histomerge.domain.model import (
    BatchRun,
    CanonicalRecord,
    ConflictLogEntry,
    HistoryVersion,
    MatchMethod,
    ProcessInstance,
    ReviewItem,
    ReviewReason,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from sqlalchemy import RowMapping
    from sqlalchemy.orm import Session


class SqlAlchemyHistoryRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: HistoryVersion) -> None:
        self.session.add(entity)

    def flush(self) -> None:
        self.session.flush()

    def history(self, entity_type: str, master_id: str) -> list[HistoryVersion]:
        stmt = (
            select(HistoryVersion)
            .where(history_version_table.c.entity_type == entity_type)
            .where(history_version_table.c.master_id == master_id)
            .order_by(history_version_table.c.valid_from, history_version_table.c.version_number)
        )
        return list(self.session.execute(stmt).scalars())

    def versions(self, entity_type: str) -> list[HistoryVersion]:
        stmt = (
            select(HistoryVersion)
            .where(history_version_table.c.entity_type == entity_type)
            .order_by(
                history_version_table.c.master_id,
                history_version_table.c.valid_from,
                history_version_table.c.version_number,
            )
        )
        return list(self.session.execute(stmt).scalars())

    def current(self, entity_type: str) -> list[HistoryVersion]:
        stmt = (
            select(HistoryVersion)
            .where(history_version_table.c.entity_type == entity_type)
            .where(history_version_table.c.is_current.is_(True))
            .order_by(history_version_table.c.master_id)
        )
        return list(self.session.execute(stmt).scalars())

    def at(self, entity_type: str, master_id: str, moment: datetime) -> HistoryVersion | None:
        stmt = (
            select(HistoryVersion)
            .where(history_version_table.c.entity_type == entity_type)
            .where(history_version_table.c.master_id == master_id)
            .where(history_version_table.c.valid_from <= moment)
            .where(history_version_table.c.valid_to > moment)
        )
        return self.session.execute(stmt).scalar_one_or_none()


class SqlAlchemyProcessRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: ProcessInstance) -> None:
        self.session.add(entity)

    def get(self, process_type: str, process_id: str) -> ProcessInstance | None:
        stmt = (
            select(ProcessInstance)
            .where(process_instance_table.c.process_type == process_type)
            .where(process_instance_table.c.process_id == process_id)
        )
        return self.session.execute(stmt).scalar_one_or_none()


class SqlAlchemyBatchRunRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: BatchRun) -> None:
        self.session.add(entity)

    def get(self, batch_id: str, entity_type: str) -> BatchRun | None:
        stmt = (
            select(BatchRun)
            .where(batch_run_table.c.batch_id == batch_id)
            .where(batch_run_table.c.entity_type == entity_type)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def for_batch(self, batch_id: str) -> list[BatchRun]:
        stmt = (
            select(BatchRun)
            .where(batch_run_table.c.batch_id == batch_id)
            .order_by(batch_run_table.c.entity_type)
        )
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyCanonicalRecordRepository:
    """Canonical records are replaced as a set per entity type and batch."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def replace(self, entity_type: str, batch_id: str, records: Sequence[CanonicalRecord]) -> None:
        self.session.execute(
            delete(canonical_record_table)
            .where(canonical_record_table.c.entity_type == entity_type)
            .where(canonical_record_table.c.batch_id == batch_id)
        )
        if not records:
            return
        self.session.execute(
            canonical_record_table.insert(),
            [
                {
                    "entity_type": record.entity_type,
                    "master_id": record.master_id,
                    "batch_id": record.batch_id,
                    "fields": record.fields,
                    "source_of_each_field": record.source_of_each_field,
                    "quality_score": record.quality_score,
                    "quality_issues": list(record.quality_issues),
                    "content_hash": record.content_hash,
                    "match_method": record.match_method,
                    "match_confidence": record.match_confidence,
                    "captured_at": record.captured_at,
                }
                for record in records
            ],
        )

    def for_batch(self, entity_type: str, batch_id: str) -> list[CanonicalRecord]:
        stmt = (
            select(canonical_record_table)
            .where(canonical_record_table.c.entity_type == entity_type)
            .where(canonical_record_table.c.batch_id == batch_id)
            .order_by(canonical_record_table.c.master_id)
        )
        return [_canonical_from_row(row) for row in self.session.execute(stmt).mappings()]


class SqlAlchemyConflictLogRepository:
    """Append-only; a repeated (batch, entity type, master id, field) is skipped."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entry: ConflictLogEntry) -> bool:
        exists_stmt = (
            select(conflict_log_table.c.id)
            .where(conflict_log_table.c.batch_id == entry.batch_id)
            .where(conflict_log_table.c.entity_type == entry.entity_type)
            .where(conflict_log_table.c.master_id == entry.master_id)
            .where(conflict_log_table.c.field_name == entry.field_name)
            .limit(1)
        )
        if self.session.execute(exists_stmt).first() is not None:
            return False
        self.session.execute(
            conflict_log_table.insert().values(
                entity_type=entry.entity_type,
                master_id=entry.master_id,
                field_name=entry.field_name,
                batch_id=entry.batch_id,
                primary_value=entry.primary_value,
                fallback_value=entry.fallback_value,
                resolved_value=entry.resolved_value,
                resolution_rule=entry.resolution_rule,
                logged_at=entry.logged_at,
            )
        )
        return True

    def for_master(self, entity_type: str, master_id: str) -> list[ConflictLogEntry]:
        stmt = (
            select(conflict_log_table)
            .where(conflict_log_table.c.entity_type == entity_type)
            .where(conflict_log_table.c.master_id == master_id)
            .order_by(conflict_log_table.c.logged_at, conflict_log_table.c.field_name)
        )
        return [
            ConflictLogEntry(
                entity_type=row["entity_type"],
                master_id=row["master_id"],
                field_name=row["field_name"],
                primary_value=row["primary_value"],
                fallback_value=row["fallback_value"],
                resolved_value=row["resolved_value"],
                resolution_rule=row["resolution_rule"],
                batch_id=row["batch_id"],
                logged_at=row["logged_at"],
            )
            for row in self.session.execute(stmt).mappings()
        ]


class SqlAlchemyReviewQueueRepository:
    """Append-only; a repeated (batch, entity type, master id, reason) is skipped."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, item: ReviewItem) -> bool:
        exists_stmt = (
            select(review_item_table.c.id)
            .where(review_item_table.c.batch_id == item.batch_id)
            .where(review_item_table.c.entity_type == item.entity_type)
            .where(review_item_table.c.master_id == item.master_id)
            .where(review_item_table.c.reason == item.reason)
            .limit(1)
        )
        if self.session.execute(exists_stmt).first() is not None:
            return False
        self.session.execute(
            review_item_table.insert().values(
                entity_type=item.entity_type,
                master_id=item.master_id,
                reason=item.reason,
                batch_id=item.batch_id,
                detail=item.detail,
            )
        )
        return True

    def pending(self, *, batch_id: str | None = None) -> list[ReviewItem]:
        stmt = select(review_item_table).order_by(
            review_item_table.c.batch_id,
            review_item_table.c.entity_type,
            review_item_table.c.master_id,
            review_item_table.c.reason,
        )
        if batch_id is not None:
            stmt = stmt.where(review_item_table.c.batch_id == batch_id)
        return [
            ReviewItem(
                entity_type=row["entity_type"],
                master_id=row["master_id"],
                reason=ReviewReason(row["reason"]),
                batch_id=row["batch_id"],
                detail=row["detail"],
            )
            for row in self.session.execute(stmt).mappings()
        ]


def _canonical_from_row(row: RowMapping) -> CanonicalRecord:
    issues = cast(list[str], row["quality_issues"] or [])
    return CanonicalRecord(
        entity_type=row["entity_type"],
        master_id=row["master_id"],
        fields=cast(dict[str, Any], row["fields"]),
        source_of_each_field=cast(dict[str, str | None], row["source_of_each_field"]),
        quality_score=row["quality_score"],
        quality_issues=tuple(issues),
        content_hash=row["content_hash"],
        batch_id=row["batch_id"],
        match_method=MatchMethod(row["match_method"]),
        match_confidence=row["match_confidence"],
        captured_at=row["captured_at"],
    )


if TYPE_CHECKING:
    from histomerge.domain.ports import (
        BatchRunRepository,
        CanonicalRecordRepository,
        ConflictLogRepository,
        HistoryRepository,
        ProcessRepository,
        ReviewQueueRepository,
    )

    _session_stub = cast("Session", object())
    _history_repo: HistoryRepository = SqlAlchemyHistoryRepository(_session_stub)
    _process_repo: ProcessRepository = SqlAlchemyProcessRepository(_session_stub)
    _batch_run_repo: BatchRunRepository = SqlAlchemyBatchRunRepository(_session_stub)
    _canonical_repo: CanonicalRecordRepository = SqlAlchemyCanonicalRecordRepository(
        _session_stub
    )
    _conflict_repo: ConflictLogRepository = SqlAlchemyConflictLogRepository(_session_stub)
    _review_repo: ReviewQueueRepository = SqlAlchemyReviewQueueRepository(_session_stub)
