"""Read engine configuration (TOML) and source record batches (JSON Lines)."""

from __future__ import annotations

import json
import logging
import tomllib
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

from pydantic import ValidationError

from histomerge.config import ConfigurationError
from histomerge.domain.errors import RecordFormatError
from histomerge.domain.milestones import DurationSpan, MilestoneDefinition, MilestoneSchema
from histomerge.domain.model import EntityKind, SourceRecord
from histomerge.domain.quality import QualityChecklist, QualityRule
from histomerge.domain.reconciliation import PolicySettings, SourceMapping
from histomerge.domain.schema import EntitySchema

from .schema import EngineConfigModel, EntityModel, SourceRecordLine

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SourceRecordBatch:
    records: tuple[SourceRecord, ...]
    rejected: int = 0


def load_engine_config(path: Path) -> tuple[EntitySchema, ...]:
    """Load entity schemas from a TOML file.

    Raises:
        ConfigurationError: the file is missing, unreadable, or invalid.
    """

    try:
        with path.open("rb") as handle:
            document = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Engine configuration not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Engine configuration {path} is not valid TOML: {exc}") from exc
    return parse_engine_config(document)


def parse_engine_config(document: dict[str, object]) -> tuple[EntitySchema, ...]:
    try:
        model = EngineConfigModel.model_validate(document)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid engine configuration: {exc}") from exc
    try:
        return tuple(_entity_schema(entity) for entity in model.entities)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid engine configuration: {exc}") from exc


def parse_source_record(line: str, *, batch_id: str) -> SourceRecord:
    """Translate one JSON line; ``batch_id`` fills lines that carry none.

    Raises:
        RecordFormatError: the line is not a valid source record.
    """

    try:
        parsed = SourceRecordLine.model_validate_json(line)
    except ValidationError as exc:
        raise RecordFormatError(
            f"Invalid source record: {exc.error_count()} validation errors"
        ) from exc
    return SourceRecord(
        entity_type=parsed.entity_type,
        source_id=parsed.source_id,
        business_key=parsed.business_key,
        payload=parsed.payload,
        captured_at=parsed.captured_at,
        batch_id=parsed.batch_id or batch_id,
        record_id=parsed.record_id,
    )


def read_source_records(lines: Iterable[str], *, batch_id: str) -> SourceRecordBatch:
    """Parse JSON lines; invalid lines are logged and skipped."""

    records: list[SourceRecord] = []
    rejected = 0
    for number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            records.append(parse_source_record(line, batch_id=batch_id))
        except RecordFormatError as exc:
            rejected += 1
            log.warning("Skipping line %s: %s", number, exc)
    log.info("Read %s source records (%s rejected)", len(records), rejected)
    return SourceRecordBatch(records=tuple(records), rejected=rejected)


def load_source_records(path: Path, *, batch_id: str) -> SourceRecordBatch:
    try:
        with path.open(encoding="utf-8") as handle:
            return read_source_records(handle, batch_id=batch_id)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Input file not found: {path}") from exc


def dump_source_record(record: SourceRecord) -> str:
    """Inverse of :func:`parse_source_record`, used to land records for replay."""

    return json.dumps(
        {
            "entity": record.entity_type,
            "source": record.source_id,
            "key": record.business_key,
            "fields": dict(record.payload),
            "captured_at": record.captured_at.isoformat(),
            "batch_id": record.batch_id,
            "record_id": record.record_id,
        },
        sort_keys=True,
        default=str,
    )


def _entity_schema(entity: EntityModel) -> EntitySchema:
    milestones: MilestoneSchema | None = None
    if entity.kind is EntityKind.PROCESS:
        milestones = MilestoneSchema(
            process_type=entity.entity_type,
            milestones=tuple(
                MilestoneDefinition(
                    name=milestone.name,
                    status=milestone.status,
                    repeat=milestone.repeat,
                    terminal=milestone.terminal,
                    source_field=milestone.source_field,
                    payload_fields=tuple(milestone.payload_fields),
                )
                for milestone in entity.milestones
            ),
            spans=tuple(
                DurationSpan(name=span.name, start=span.start, end=span.end)
                for span in entity.spans
            ),
        )
    return EntitySchema(
        entity_type=entity.entity_type,
        kind=entity.kind,
        fields=tuple(entity.fields),
        tracked_fields=tuple(entity.tracked_fields),
        policy=PolicySettings(
            entity_type=entity.entity_type,
            primary_source=entity.policy.primary_source,
            fallback_source=entity.policy.fallback_source,
            rule=entity.policy.rule,
            tie_break=entity.policy.tie_break,
            field_sources=MappingProxyType(dict(entity.policy.field_sources)),
            match_fields=tuple(entity.policy.match_fields),
        ),
        checklist=QualityChecklist(
            rules=tuple(
                QualityRule(
                    field_name=rule.field_name,
                    check=rule.check,
                    points=rule.points,
                    penalty=rule.penalty,
                    minimum=rule.minimum,
                    maximum=rule.maximum,
                    pattern=rule.pattern,
                    allowed=tuple(rule.allowed),
                    description=rule.description,
                )
                for rule in entity.quality
            )
        ),
        milestones=milestones,
        source_mappings=MappingProxyType(
            {
                source_id: SourceMapping(
                    source_id=source_id,
                    field_map=MappingProxyType(dict(mapping.fields)),
                    code_map=MappingProxyType(
                        {
                            name: MappingProxyType(dict(codes))
                            for name, codes in mapping.codes.items()
                        }
                    ),
                )
                for source_id, mapping in entity.sources.items()
            }
        ),
    )
