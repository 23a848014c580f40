"""SQLAlchemy adapter package for histomerge."""

from __future__ import annotations

from .mappings import (
    batch_run_table,
    canonical_record_table,
    conflict_log_table,
    create_all_tables,
    history_version_table,
    mapper_registry,
    process_instance_table,
    review_item_table,
    start_mappers,
)
from .repositories import (
    SqlAlchemyBatchRunRepository,
    SqlAlchemyCanonicalRecordRepository,
    SqlAlchemyConflictLogRepository,
    SqlAlchemyHistoryRepository,
    SqlAlchemyProcessRepository,
    SqlAlchemyReviewQueueRepository,
)

__all__ = [
    "SqlAlchemyBatchRunRepository",
    "SqlAlchemyCanonicalRecordRepository",
    "SqlAlchemyConflictLogRepository",
    "SqlAlchemyHistoryRepository",
    "SqlAlchemyProcessRepository",
    "SqlAlchemyReviewQueueRepository",
    "batch_run_table",
    "canonical_record_table",
    "conflict_log_table",
    "create_all_tables",
    "history_version_table",
    "mapper_registry",
    "process_instance_table",
    "review_item_table",
    "start_mappers",
]
