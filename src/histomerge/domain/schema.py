"""Per entity type configuration: target schema, checklist, policy."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from histomerge.domain.model import EntityKind
from histomerge.domain.quality import QualityChecklist

if TYPE_CHECKING:
    from collections.abc import Mapping

    from histomerge.domain.milestones.schema import MilestoneSchema
    from histomerge.domain.model import SourceRecord
    from histomerge.domain.reconciliation.mapping import SourceMapping
    from histomerge.domain.reconciliation.policy import PolicySettings


@dataclass(frozen=True, slots=True, kw_only=True)
class EntitySchema:
    """Everything the engine needs to know about one entity type.

    The policy is kept as raw settings; it is validated when the entity
    type's batch starts so that a bad policy fails that entity type only.
    """

    entity_type: str
    kind: EntityKind
    fields: tuple[str, ...]
    policy: PolicySettings
    tracked_fields: tuple[str, ...] = ()
    checklist: QualityChecklist = field(default_factory=QualityChecklist)
    milestones: MilestoneSchema | None = None
    source_mappings: Mapping[str, SourceMapping] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self) -> None:
        if not self.fields:
            raise ValueError(f"Entity type {self.entity_type!r} declares no fields")
        unknown = [name for name in self.tracked_fields if name not in self.fields]
        if unknown:
            raise ValueError(
                f"Entity type {self.entity_type!r} tracks undeclared fields: {unknown}"
            )
        if self.kind is EntityKind.PROCESS and self.milestones is None:
            raise ValueError(f"Process entity type {self.entity_type!r} needs a milestone schema")
        for mapping in self.source_mappings.values():
            undeclared = sorted(mapping.target_fields - set(self.fields))
            if undeclared:
                raise ValueError(
                    f"Entity type {self.entity_type!r} maps {mapping.source_id!r} "
                    f"onto undeclared fields: {undeclared}"
                )

    @property
    def hashed_fields(self) -> tuple[str, ...]:
        return self.tracked_fields or self.fields

    def standard_payload(self, record: SourceRecord) -> Mapping[str, object]:
        """``record``'s payload in the field names and codes of this schema."""

        mapping = self.source_mappings.get(record.source_id)
        if mapping is None:
            return record.payload
        return mapping.standardize(record.payload)
