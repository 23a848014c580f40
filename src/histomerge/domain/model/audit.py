"""Execution log for batch runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .enums import BatchStatus

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(eq=False, kw_only=True)
class BatchRun:
    """Outcome of one entity type within one batch.

    Failures are reported per entity type, never for a whole batch. The
    batch time is fixed by the first run; retries replay at that time.
    """

    batch_id: str
    entity_type: str
    batch_time: datetime
    started_at: datetime
    status: BatchStatus = BatchStatus.RUNNING
    finished_at: datetime | None = None
    records_read: int = 0
    groups_resolved: int = 0
    conflicts_logged: int = 0
    rows_written: int = 0
    rows_rejected: int = 0
    error_message: str | None = None
    id: int | None = field(default=None, repr=False)

    def finish(self, status: BatchStatus, *, at: datetime, error: str | None = None) -> None:
        self.status = status
        self.finished_at = at
        self.error_message = error

    def restart(self, *, at: datetime) -> None:
        """Reset the row for a retry of the same batch and entity type."""

        self.started_at = at
        self.status = BatchStatus.RUNNING
        self.finished_at = None
        self.records_read = 0
        self.groups_resolved = 0
        self.conflicts_logged = 0
        self.rows_written = 0
        self.rows_rejected = 0
        self.error_message = None
