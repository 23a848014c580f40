"""Accumulating snapshot of process instances.

One row per process instance, updated in place as milestones arrive. Status,
durations and the closed flag are projections recomputed from the populated
slots on every write and never stored on their own.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from histomerge.domain.model import (
    MilestoneEffect,
    MilestoneEvent,
    MilestoneSlot,
    ProcessInstance,
    RepeatPolicy,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import timedelta

    from histomerge.domain.model import BatchContext, CanonicalRecord
    from histomerge.domain.ports import ProcessRepository

    from .schema import MilestoneSchema

log = logging.getLogger(__name__)


def apply_milestone(
    instance: ProcessInstance | None,
    event: MilestoneEvent,
    schema: MilestoneSchema,
) -> tuple[ProcessInstance, MilestoneEffect]:
    """Apply ``event`` to ``instance`` (created when ``None``).

    Raises:
        UnknownMilestoneError: ``event`` names a milestone outside ``schema``.
    """

    definition = schema.definition(event.milestone_name)
    slot = MilestoneSlot(
        reached_at=_as_utc(event.occurred_at),
        batch_id=event.batch_id,
        payload=dict(event.payload),
    )

    if instance is None:
        instance = ProcessInstance(
            process_type=schema.process_type,
            process_id=event.process_id,
            created_batch_id=event.batch_id,
            updated_batch_id=event.batch_id,
        )
        _store(instance, event.milestone_name, slot, schema)
        return instance, MilestoneEffect.CREATED

    existing = instance.slot(event.milestone_name)
    if existing is not None and (
        definition.repeat is RepeatPolicy.IGNORE or _same_content(existing, slot)
    ):
        return instance, MilestoneEffect.IGNORED_DUPLICATE
    if instance.is_closed or _contradicts_order(instance, event.milestone_name, slot, schema):
        return instance, MilestoneEffect.IGNORED_OUT_OF_ORDER

    _store(instance, event.milestone_name, slot, schema)
    instance.updated_batch_id = event.batch_id
    return instance, MilestoneEffect.UPDATED


def derive_status(slots: Mapping[str, MilestoneSlot], schema: MilestoneSchema) -> str | None:
    """Terminal milestone wins, else the latest populated one in schema order."""

    status: str | None = None
    for definition in schema.milestones:
        if definition.name not in slots:
            continue
        if definition.terminal:
            return definition.label
        status = definition.label
    return status


def derive_durations(
    slots: Mapping[str, MilestoneSlot], schema: MilestoneSchema
) -> dict[str, timedelta | None]:
    """``end - start`` per span, ``None`` (never zero) when an end is missing."""

    durations: dict[str, timedelta | None] = {}
    for span in schema.duration_spans():
        start = slots.get(span.start)
        end = slots.get(span.end)
        durations[span.name] = (
            None if start is None or end is None else end.reached_at - start.reached_at
        )
    return durations


def is_closed(slots: Mapping[str, MilestoneSlot], schema: MilestoneSchema) -> bool:
    return any(definition.terminal and definition.name in slots for definition in schema.milestones)


def events_from_canonical(
    record: CanonicalRecord, schema: MilestoneSchema, context: BatchContext
) -> list[MilestoneEvent]:
    """Milestone events carried by a merged process record, in schema order."""

    events: list[MilestoneEvent] = []
    for definition in schema.milestones:
        if definition.source_field is None:
            continue
        raw = record.fields.get(definition.source_field)
        occurred_at = parse_timestamp(raw)
        if occurred_at is None:
            if raw is not None:
                log.warning(
                    "Skipping %s of %s: unreadable timestamp %r",
                    definition.name,
                    record.master_id,
                    raw,
                )
            continue
        events.append(
            MilestoneEvent(
                process_id=record.master_id,
                milestone_name=definition.name,
                occurred_at=occurred_at,
                batch_id=context.batch_id,
                payload={name: record.fields.get(name) for name in definition.payload_fields},
            )
        )
    return events


def parse_timestamp(value: object) -> datetime | None:
    """Read a timestamp field; naive values are taken as UTC."""

    if isinstance(value, datetime):
        return _as_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    return _as_utc(parsed)


class MilestoneAccumulator:
    """Record milestones of one process type against a process repository."""

    def __init__(self, repository: ProcessRepository, schema: MilestoneSchema) -> None:
        self._repository = repository
        self._schema = schema

    @property
    def schema(self) -> MilestoneSchema:
        return self._schema

    def record_milestone(
        self,
        process_id: str,
        milestone_name: str,
        timestamp: datetime,
        payload: Mapping[str, object] | None = None,
        *,
        context: BatchContext,
    ) -> MilestoneEffect:
        event = MilestoneEvent(
            process_id=process_id,
            milestone_name=milestone_name,
            occurred_at=timestamp,
            batch_id=context.batch_id,
            payload=dict(payload or {}),
        )
        return self.record(event)

    def record(self, event: MilestoneEvent) -> MilestoneEffect:
        existing = self._repository.get(self._schema.process_type, event.process_id)
        instance, effect = apply_milestone(existing, event, self._schema)
        if existing is None:
            self._repository.add(instance)
        if effect is MilestoneEffect.IGNORED_OUT_OF_ORDER:
            log.info(
                "Ignored out-of-order milestone %s for %s %s",
                event.milestone_name,
                self._schema.process_type,
                event.process_id,
            )
        return effect


def _store(
    instance: ProcessInstance,
    milestone_name: str,
    slot: MilestoneSlot,
    schema: MilestoneSchema,
) -> None:
    # reassign whole mappings; persisted JSON columns only see new objects
    merged = {**instance.slots, milestone_name: slot}
    instance.slots = {name: merged[name] for name in schema.names if name in merged}
    instance.status = derive_status(instance.slots, schema)
    instance.durations = derive_durations(instance.slots, schema)
    instance.is_closed = is_closed(instance.slots, schema)


def _same_content(existing: MilestoneSlot, incoming: MilestoneSlot) -> bool:
    return existing.reached_at == incoming.reached_at and existing.payload == incoming.payload


def _contradicts_order(
    instance: ProcessInstance,
    milestone_name: str,
    slot: MilestoneSlot,
    schema: MilestoneSchema,
) -> bool:
    position = schema.position(milestone_name)
    for other_position, name in enumerate(schema.names):
        other = instance.slot(name)
        if other is None or name == milestone_name:
            continue
        if other_position < position and other.reached_at > slot.reached_at:
            return True
        if other_position > position and other.reached_at < slot.reached_at:
            return True
    return False


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
