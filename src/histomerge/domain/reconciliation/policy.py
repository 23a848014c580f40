"""Reconciliation policy: which source wins, and how.

Policies arrive as externally supplied configuration. They are kept in their
raw form until an entity type's batch starts, because an unusable policy is
fatal only for that entity type and must not stop configuration loading for
the others.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from histomerge.domain.errors import PolicyError
from histomerge.domain.model import ReconciliationRule, TieBreak

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True, slots=True, kw_only=True)
class ReconciliationPolicy:
    """Validated, read-only reconciliation policy for one entity type."""

    entity_type: str
    primary_source: str
    fallback_source: str | None
    rule: ReconciliationRule
    tie_break: TieBreak = TieBreak.KEEP_PRIMARY
    field_sources: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    match_fields: tuple[str, ...] = ()

    @property
    def sources(self) -> tuple[str, ...]:
        if self.fallback_source is None:
            return (self.primary_source,)
        return (self.primary_source, self.fallback_source)

    def preferred_sources(self, field_name: str) -> tuple[str, ...]:
        """Return source precedence for ``field_name`` (first wins)."""

        override = self.field_sources.get(field_name)
        if override is None:
            return self.sources
        return (override, *(source for source in self.sources if source != override))

    def describe(self) -> str:
        if self.rule is ReconciliationRule.MERGE_FIELDS:
            return f"{self.rule.value}:{self.tie_break.value}"
        return self.rule.value


@dataclass(frozen=True, slots=True, kw_only=True)
class PolicySettings:
    """Policy exactly as configured, before validation."""

    entity_type: str
    primary_source: str | None
    fallback_source: str | None = None
    rule: str = ReconciliationRule.PREFER_PRIMARY.value
    tie_break: str = TieBreak.KEEP_PRIMARY.value
    field_sources: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    match_fields: tuple[str, ...] = ()


def validate_policy(settings: PolicySettings) -> ReconciliationPolicy:
    """Turn configured settings into a policy or raise :class:`PolicyError`."""

    entity_type = settings.entity_type
    rule = _parse_enum(ReconciliationRule, settings.rule, entity_type, "rule")
    tie_break = _parse_enum(TieBreak, settings.tie_break, entity_type, "tie_break")

    primary = _clean(settings.primary_source)
    fallback = _clean(settings.fallback_source)
    if primary is None:
        raise PolicyError(entity_type, "primary_source is missing")
    if rule is ReconciliationRule.SINGLE_SOURCE:
        fallback = None
    elif fallback is None:
        raise PolicyError(entity_type, f"rule {rule.value} requires a fallback_source")
    elif fallback == primary:
        raise PolicyError(entity_type, "primary_source and fallback_source must differ")

    known_sources = {primary} if fallback is None else {primary, fallback}
    for field_name, source in settings.field_sources.items():
        if source not in known_sources:
            raise PolicyError(
                entity_type,
                f"field {field_name!r} prefers unknown source {source!r}",
            )

    return ReconciliationPolicy(
        entity_type=entity_type,
        primary_source=primary,
        fallback_source=fallback,
        rule=rule,
        tie_break=tie_break,
        field_sources=MappingProxyType(dict(settings.field_sources)),
        match_fields=tuple(settings.match_fields),
    )


def _parse_enum[TEnum: (ReconciliationRule, TieBreak)](
    enum_cls: type[TEnum], raw: str, entity_type: str, name: str
) -> TEnum:
    try:
        return enum_cls(raw.strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise PolicyError(
            entity_type, f"unknown {name} {raw!r} (expected one of: {allowed})"
        ) from None


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
