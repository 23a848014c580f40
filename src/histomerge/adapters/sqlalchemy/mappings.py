"""SQLAlchemy mapping metadata for the histomerge output tables.

Mutable aggregates (history versions, process instances, batch runs) are
mapped imperatively onto the domain dataclasses. Canonical records, conflict
entries and review items are immutable values and go through Core tables.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime, timedelta
from functools import cache
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Dialect,
    Enum,
    Index,
    Integer,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    orm,
    true,
)
from sqlalchemy.orm import configure_mappers

from histomerge.domain.model import (
    BatchRun,
    BatchStatus,
    HistoryVersion,
    MatchMethod,
    MilestoneSlot,
    ProcessInstance,
    ReviewReason,
)
from histomerge.domain.reconciliation import canonical_json

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class JSONValue(TypeDecorator[Any]):
    """Arbitrary JSON value stored as canonical text."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect) -> str | None:
        _ = dialect
        if value is None:
            return None
        return canonical_json(value)

    def process_result_value(self, value: str | None, dialect: Dialect) -> Any:
        _ = dialect
        if value is None:
            return None
        return json.loads(value)


class JSONDict(TypeDecorator[dict[str, Any]]):
    impl = Text
    cache_ok = True

    def process_bind_param(self, value: dict[str, Any] | None, dialect: Dialect) -> str:
        _ = dialect
        return canonical_json(value or {})

    def process_result_value(self, value: str | None, dialect: Dialect) -> dict[str, Any]:
        _ = dialect
        if value is None:
            return {}
        loaded = json.loads(value)
        if not isinstance(loaded, dict):
            return {}
        return cast(dict[str, Any], loaded)


class MilestoneSlotsType(TypeDecorator[dict[str, MilestoneSlot]]):
    impl = Text
    cache_ok = True

    def process_bind_param(
        self, value: dict[str, MilestoneSlot] | None, dialect: Dialect
    ) -> str:
        _ = dialect
        payload = [
            {
                "name": name,
                "reached_at": slot.reached_at.astimezone(UTC).isoformat(),
                "batch_id": slot.batch_id,
                "payload": slot.payload,
            }
            for name, slot in (value or {}).items()
        ]
        return canonical_json(payload)

    def process_result_value(
        self, value: str | None, dialect: Dialect
    ) -> dict[str, MilestoneSlot]:
        _ = dialect
        if value is None:
            return {}
        items = cast(list[dict[str, Any]], json.loads(value))
        return {
            str(item["name"]): MilestoneSlot(
                reached_at=datetime.fromisoformat(item["reached_at"]),
                batch_id=str(item["batch_id"]),
                payload=dict(item.get("payload") or {}),
            )
            for item in items
        }


class DurationsType(TypeDecorator[dict[str, timedelta | None]]):
    """Durations as seconds, ``null`` kept for missing endpoints."""

    impl = Text
    cache_ok = True

    def process_bind_param(
        self, value: dict[str, timedelta | None] | None, dialect: Dialect
    ) -> str:
        _ = dialect
        return json.dumps(
            {
                name: None if duration is None else duration.total_seconds()
                for name, duration in (value or {}).items()
            }
        )

    def process_result_value(
        self, value: str | None, dialect: Dialect
    ) -> dict[str, timedelta | None]:
        _ = dialect
        if value is None:
            return {}
        loaded = cast(dict[str, float | None], json.loads(value))
        return {
            name: None if seconds is None else timedelta(seconds=seconds)
            for name, seconds in loaded.items()
        }


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "pk": "pk_%(table_name)s",
}

# Mapped aggregates -------------------------------------------------------------

history_version_table = Table(
    "history_version",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("entity_type", String, nullable=False),
    Column("master_id", String, nullable=False),
    Column("version_number", Integer, nullable=False),
    Column("version_fields", JSONDict, nullable=False),
    Column("content_hash", String(64), nullable=False),
    Column("valid_from", UTCDateTime, nullable=False),
    Column("valid_to", UTCDateTime, nullable=False),
    Column("is_current", Boolean, nullable=False),
    Column("opened_batch_id", String, nullable=False),
    Column("closed_batch_id", String, nullable=True),
    UniqueConstraint("entity_type", "master_id", "version_number"),
    Index("ix_history_version_master", "entity_type", "master_id", "valid_from"),
)

# one current row per master id, enforced by the database as well
history_current_index = Index(
    "uq_history_version_current",
    history_version_table.c.entity_type,
    history_version_table.c.master_id,
    unique=True,
    sqlite_where=history_version_table.c.is_current == true(),
    postgresql_where=history_version_table.c.is_current == true(),
)

process_instance_table = Table(
    "process_instance",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("process_type", String, nullable=False),
    Column("process_id", String, nullable=False),
    Column("created_batch_id", String, nullable=False),
    Column("updated_batch_id", String, nullable=False),
    Column("slots", MilestoneSlotsType, nullable=False),
    Column("status", String, nullable=True),
    Column("durations", DurationsType, nullable=False),
    Column("is_closed", Boolean, nullable=False),
    UniqueConstraint("process_type", "process_id"),
)

batch_run_table = Table(
    "batch_run",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("batch_id", String, nullable=False),
    Column("entity_type", String, nullable=False),
    Column("batch_time", UTCDateTime, nullable=False),
    Column("status", Enum(BatchStatus, native_enum=False), nullable=False),
    Column("started_at", UTCDateTime, nullable=False),
    Column("finished_at", UTCDateTime, nullable=True),
    Column("records_read", Integer, nullable=False),
    Column("groups_resolved", Integer, nullable=False),
    Column("conflicts_logged", Integer, nullable=False),
    Column("rows_written", Integer, nullable=False),
    Column("rows_rejected", Integer, nullable=False),
    Column("error_message", Text, nullable=True),
    UniqueConstraint("batch_id", "entity_type"),
)

# Value tables ------------------------------------------------------------------

canonical_record_table = Table(
    "canonical_record",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("entity_type", String, nullable=False),
    Column("master_id", String, nullable=False),
    Column("batch_id", String, nullable=False),
    Column("fields", JSONDict, nullable=False),
    Column("source_of_each_field", JSONDict, nullable=False),
    Column("quality_score", Integer, nullable=False),
    Column("quality_issues", JSONValue, nullable=False),
    Column("content_hash", String(64), nullable=False),
    Column("match_method", Enum(MatchMethod, native_enum=False), nullable=False),
    Column("match_confidence", Integer, nullable=False),
    Column("captured_at", UTCDateTime, nullable=True),
    UniqueConstraint("entity_type", "batch_id", "master_id"),
)

conflict_log_table = Table(
    "conflict_log",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("entity_type", String, nullable=False),
    Column("master_id", String, nullable=False),
    Column("field_name", String, nullable=False),
    Column("batch_id", String, nullable=False),
    Column("primary_value", JSONValue, nullable=True),
    Column("fallback_value", JSONValue, nullable=True),
    Column("resolved_value", JSONValue, nullable=True),
    Column("resolution_rule", String, nullable=False),
    Column("logged_at", UTCDateTime, nullable=False),
    UniqueConstraint("batch_id", "entity_type", "master_id", "field_name"),
)

review_item_table = Table(
    "review_item",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("entity_type", String, nullable=False),
    Column("master_id", String, nullable=False),
    Column("reason", Enum(ReviewReason, native_enum=False), nullable=False),
    Column("batch_id", String, nullable=False),
    Column("detail", JSONDict, nullable=False),
    UniqueConstraint("batch_id", "entity_type", "master_id", "reason"),
)


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the mutable domain aggregates."""

    log.info("Starting SQLAlchemy mappers")

    mapper_registry.map_imperatively(HistoryVersion, history_version_table)
    mapper_registry.map_imperatively(ProcessInstance, process_instance_table)
    mapper_registry.map_imperatively(BatchRun, batch_run_table)

    configure_mappers()
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(engine)
