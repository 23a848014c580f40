"""Tests for SQLAlchemy repositories."""

from __future__ import annotations

from sqlalchemy.orm import Session  # noqa: TC002

from histomerge.adapters.sqlalchemy.repositories import (
    SqlAlchemyBatchRunRepository,
    SqlAlchemyCanonicalRecordRepository,
    SqlAlchemyConflictLogRepository,
    SqlAlchemyHistoryRepository,
    SqlAlchemyProcessRepository,
    SqlAlchemyReviewQueueRepository,
)
from histomerge.domain.model import (
    OPEN_END,
    BatchRun,
    BatchStatus,
    CanonicalRecord,
    ConflictLogEntry,
    HistoryVersion,
    MatchMethod,
    ProcessInstance,
    ReviewItem,
    ReviewReason,
)
from tests.helpers.records import at


def _canonical(master_id: str, rating: int, *, batch_id: str = "b1") -> CanonicalRecord:
    return CanonicalRecord(
        entity_type="customer",
        master_id=master_id,
        fields={"name": "Ada", "rating": rating},
        source_of_each_field={"name": "crm", "rating": "erp"},
        quality_score=80,
        quality_issues=("Missing email",),
        content_hash=f"{rating:064d}",
        batch_id=batch_id,
        match_method=MatchMethod.ONE_SIDED_PRIMARY,
        match_confidence=90,
        captured_at=at(0),
    )


def _conflict(field_name: str = "rating", *, batch_id: str = "b1") -> ConflictLogEntry:
    return ConflictLogEntry(
        entity_type="customer",
        master_id="K2",
        field_name=field_name,
        primary_value=40,
        fallback_value=60,
        resolved_value=40,
        resolution_rule="merge_fields:keep_primary",
        batch_id=batch_id,
        logged_at=at(0),
    )


def test_history_repository_queries(sqlite_session: Session) -> None:
    repository = SqlAlchemyHistoryRepository(sqlite_session)
    first = HistoryVersion(
        entity_type="customer",
        master_id="K1",
        version_number=1,
        version_fields={"rating": 30},
        content_hash="a" * 64,
        valid_from=at(0),
        valid_to=at(24),
        is_current=False,
        opened_batch_id="b1",
        closed_batch_id="b2",
    )
    second = HistoryVersion(
        entity_type="customer",
        master_id="K1",
        version_number=2,
        version_fields={"rating": 50},
        content_hash="b" * 64,
        valid_from=at(24),
        opened_batch_id="b2",
    )
    repository.add(second)
    repository.add(first)
    sqlite_session.commit()

    assert [version.version_number for version in repository.history("customer", "K1")] == [1, 2]
    assert [version.version_number for version in repository.current("customer")] == [2]
    assert len(repository.versions("customer")) == 2
    assert repository.history("supplier", "K1") == []

    as_of = repository.at("customer", "K1", at(23))
    assert as_of is not None
    assert as_of.version_number == 1
    boundary = repository.at("customer", "K1", at(24))
    assert boundary is not None
    assert boundary.version_number == 2
    assert repository.at("customer", "K1", at(-1)) is None
    assert boundary.valid_to == OPEN_END


def test_process_repository_get(sqlite_session: Session) -> None:
    repository = SqlAlchemyProcessRepository(sqlite_session)
    repository.add(
        ProcessInstance(
            process_type="order",
            process_id="O-1",
            created_batch_id="b1",
            updated_batch_id="b1",
        )
    )
    sqlite_session.commit()

    loaded = repository.get("order", "O-1")
    assert loaded is not None
    assert loaded.slots == {}
    assert repository.get("order", "O-2") is None
    assert repository.get("return", "O-1") is None


def test_canonical_records_are_replaced_per_batch(sqlite_session: Session) -> None:
    repository = SqlAlchemyCanonicalRecordRepository(sqlite_session)

    repository.replace("customer", "b1", [_canonical("K1", 30), _canonical("K2", 40)])
    repository.replace("customer", "b2", [_canonical("K1", 31, batch_id="b2")])
    repository.replace("customer", "b1", [_canonical("K1", 35)])
    sqlite_session.commit()

    (record,) = repository.for_batch("customer", "b1")
    assert record == _canonical("K1", 35)
    assert [r.master_id for r in repository.for_batch("customer", "b2")] == ["K1"]

    repository.replace("customer", "b1", [])
    assert repository.for_batch("customer", "b1") == []


def test_conflict_log_is_append_only_and_idempotent(sqlite_session: Session) -> None:
    repository = SqlAlchemyConflictLogRepository(sqlite_session)

    assert repository.add(_conflict()) is True
    assert repository.add(_conflict()) is False
    assert repository.add(_conflict("name")) is True
    assert repository.add(_conflict(batch_id="b2")) is True
    sqlite_session.commit()

    entries = repository.for_master("customer", "K2")
    assert len(entries) == 3
    assert entries[0] == _conflict("name")
    assert repository.for_master("customer", "K1") == []


def test_review_queue_filters_by_batch(sqlite_session: Session) -> None:
    repository = SqlAlchemyReviewQueueRepository(sqlite_session)
    item = ReviewItem(
        entity_type="customer",
        master_id="h:abc",
        reason=ReviewReason.MISSING_KEY,
        batch_id="b1",
        detail={"members": [{"source_id": "erp", "record_id": None}]},
    )

    assert repository.add(item) is True
    assert repository.add(item) is False
    assert (
        repository.add(
            ReviewItem(
                entity_type="customer",
                master_id="K1",
                reason=ReviewReason.KEY_COLLISION_SUSPECTED,
                batch_id="b2",
            )
        )
        is True
    )
    sqlite_session.commit()

    assert repository.pending(batch_id="b1") == [item]
    assert [pending.batch_id for pending in repository.pending()] == ["b1", "b2"]


def test_batch_run_repository_get(sqlite_session: Session) -> None:
    repository = SqlAlchemyBatchRunRepository(sqlite_session)
    run = BatchRun(batch_id="b1", entity_type="customer", batch_time=at(0), started_at=at(0))
    repository.add(run)
    sqlite_session.commit()

    run.records_read = 4
    run.finish(BatchStatus.SUCCEEDED, at=at(1))
    sqlite_session.commit()
    sqlite_session.expunge_all()

    loaded = repository.get("b1", "customer")
    assert loaded is not None
    assert loaded.status is BatchStatus.SUCCEEDED
    assert loaded.records_read == 4
    assert loaded.finished_at == at(1)
    assert loaded.batch_time == at(0)
    assert repository.get("b1", "supplier") is None
    assert [found.entity_type for found in repository.for_batch("b1")] == ["customer"]
