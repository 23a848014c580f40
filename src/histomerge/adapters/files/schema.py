"""Pydantic models describing inbound record lines and the engine config file."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from histomerge.domain.model import EntityKind, QualityCheck, RepeatPolicy


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


def _scalar_to_str(value: object) -> object:
    value = _blank_to_none(value)
    if isinstance(value, int | float) and not isinstance(value, bool):
        return str(value)
    return value


class HistomergeBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# Source records ------------------------------------------------------------------


class SourceRecordLine(HistomergeBaseModel):
    """One JSON line as landed by the upstream extraction."""

    entity_type: str = Field(alias="entity")
    source_id: str = Field(alias="source")
    business_key: str | None = Field(default=None, alias="key")
    payload: dict[str, Any] = Field(default_factory=dict[str, Any], alias="fields")
    captured_at: datetime
    batch_id: str | None = None
    record_id: str | None = None

    _normalize_key = field_validator("business_key", "record_id", mode="before")(_scalar_to_str)
    _normalize_batch = field_validator("batch_id", mode="before")(_blank_to_none)

    @field_validator("entity_type", "source_id", mode="after")
    @classmethod
    def _require_text(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped

    @field_validator("captured_at", mode="after")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


# Engine configuration ------------------------------------------------------------


class PolicyModel(HistomergeBaseModel):
    """Kept as plain strings; validated per entity type when its batch starts."""

    primary_source: str | None = None
    fallback_source: str | None = None
    rule: str = "prefer_primary"
    tie_break: str = "keep_primary"
    field_sources: dict[str, str] = Field(default_factory=dict[str, str])
    match_fields: list[str] = Field(default_factory=list[str])

    _normalize_sources = field_validator("primary_source", "fallback_source", mode="before")(
        _blank_to_none
    )


class QualityRuleModel(HistomergeBaseModel):
    field_name: str = Field(alias="field")
    check: QualityCheck = QualityCheck.REQUIRED
    points: int = Field(default=0, ge=0)
    penalty: int = Field(default=0, ge=0)
    minimum: float | None = None
    maximum: float | None = None
    pattern: str | None = None
    allowed: list[Any] = Field(default_factory=list[Any])
    description: str | None = None

    @field_validator("check", mode="before")
    @classmethod
    def _lower_check(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("pattern", mode="after")
    @classmethod
    def _compile_pattern(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"invalid pattern {value!r}: {exc}") from exc
        return value


class MilestoneModel(HistomergeBaseModel):
    name: str
    status: str | None = None
    repeat: RepeatPolicy = RepeatPolicy.IGNORE
    terminal: bool = False
    source_field: str | None = Field(default=None, alias="field")
    payload_fields: list[str] = Field(default_factory=list[str])

    @field_validator("repeat", mode="before")
    @classmethod
    def _lower_repeat(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value


class DurationSpanModel(HistomergeBaseModel):
    name: str
    start: str
    end: str


class SourceMappingModel(HistomergeBaseModel):
    """Renames (source name to schema name) and code tables keyed by schema field."""

    fields: dict[str, str] = Field(default_factory=dict[str, str])
    codes: dict[str, dict[str, Any]] = Field(default_factory=dict[str, dict[str, Any]])


class EntityModel(HistomergeBaseModel):
    entity_type: str = Field(alias="name")
    kind: EntityKind = EntityKind.REFERENCE
    fields: list[str]
    tracked_fields: list[str] = Field(default_factory=list[str])
    policy: PolicyModel = Field(default_factory=PolicyModel)
    quality: list[QualityRuleModel] = Field(default_factory=list[QualityRuleModel])
    milestones: list[MilestoneModel] = Field(default_factory=list[MilestoneModel])
    spans: list[DurationSpanModel] = Field(default_factory=list[DurationSpanModel])
    sources: dict[str, SourceMappingModel] = Field(default_factory=dict[str, SourceMappingModel])

    @field_validator("kind", mode="before")
    @classmethod
    def _lower_kind(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _milestones_match_kind(self) -> EntityModel:
        if self.kind is EntityKind.PROCESS and not self.milestones:
            raise ValueError(f"process entity {self.entity_type!r} declares no milestones")
        if self.kind is EntityKind.REFERENCE and self.milestones:
            raise ValueError(f"reference entity {self.entity_type!r} cannot declare milestones")
        return self


class EngineConfigModel(HistomergeBaseModel):
    entities: list[EntityModel] = Field(alias="entity")

    @model_validator(mode="after")
    def _unique_names(self) -> EngineConfigModel:
        names = [entity.entity_type for entity in self.entities]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"entity types declared more than once: {duplicates}")
        return self
