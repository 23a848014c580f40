"""Temporal history rows (type-2 slowly changing dimension)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Final

OPEN_END: Final[datetime] = datetime(9999, 12, 31, 23, 59, 59, tzinfo=UTC)
"""Exclusive upper bound carried by the active version."""


@dataclass(eq=False, kw_only=True)
class HistoryVersion:
    """One validity interval ``[valid_from, valid_to)`` of a master entity.

    Versions are only ever closed through :meth:`supersede`, which the
    versioning store calls together with inserting the successor.
    """

    entity_type: str
    master_id: str
    version_number: int
    version_fields: dict[str, object]
    content_hash: str
    valid_from: datetime
    valid_to: datetime = OPEN_END
    is_current: bool = True
    opened_batch_id: str
    closed_batch_id: str | None = None
    id: int | None = field(default=None, repr=False)

    @property
    def is_open(self) -> bool:
        return self.valid_to == OPEN_END

    def covers(self, moment: datetime) -> bool:
        return self.valid_from <= moment < self.valid_to

    def supersede(self, *, at: datetime, batch_id: str) -> None:
        if not self.is_current or not self.is_open:
            raise ValueError(
                f"Cannot supersede closed version {self.version_number} of {self.master_id}"
            )
        if at <= self.valid_from:
            raise ValueError("A version can only be superseded after it became valid")
        self.valid_to = at
        self.is_current = False
        self.closed_batch_id = batch_id
