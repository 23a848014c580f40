"""Inbound source records and the explicit batch context."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType


def _ensure_utc(value: datetime, *, name: str) -> datetime:
    if value.tzinfo is None:
        raise ValueError(f"{name} must include timezone information")
    return value.astimezone(UTC)


@dataclass(frozen=True, slots=True, kw_only=True)
class BatchContext:
    """Identity and reference time of one batch run.

    Passed explicitly to every stage so that each written row can be traced
    back to the batch that produced it.
    """

    batch_id: str
    batch_time: datetime

    def __post_init__(self) -> None:
        if not self.batch_id.strip():
            raise ValueError("batch_id must not be blank")
        object.__setattr__(self, "batch_time", _ensure_utc(self.batch_time, name="batch_time"))


@dataclass(frozen=True, slots=True, kw_only=True)
class SourceRecord:
    """One landed row from one upstream source. Immutable once landed."""

    entity_type: str
    source_id: str
    business_key: str | None
    payload: Mapping[str, object]
    captured_at: datetime
    batch_id: str
    record_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))
        object.__setattr__(
            self, "captured_at", _ensure_utc(self.captured_at, name="captured_at")
        )

    def value(self, field_name: str) -> object | None:
        return self.payload.get(field_name)


@dataclass(frozen=True, slots=True, kw_only=True)
class ScoredRecord:
    """Source record annotated by the quality scorer."""

    record: SourceRecord
    quality_score: int
    quality_issues: tuple[str, ...] = field(default=())
