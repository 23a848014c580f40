"""Ports (interfaces) implemented by adapters."""

from __future__ import annotations

from .persistence import (
    BatchRunRepository,
    CanonicalRecordRepository,
    ConflictLogRepository,
    HistoryRepository,
    ProcessRepository,
    Repository,
    ReviewQueueRepository,
)
from .unit_of_work import (
    ReconciliationRepositories,
    ReconciliationUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "BatchRunRepository",
    "CanonicalRecordRepository",
    "ConflictLogRepository",
    "HistoryRepository",
    "ProcessRepository",
    "ReconciliationRepositories",
    "ReconciliationUnitOfWork",
    "Repository",
    "RepositoryCollection",
    "ReviewQueueRepository",
    "UnitOfWork",
]
