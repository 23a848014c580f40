"""Merge engine: one canonical record per identity group.

The merge is a pure function of ``(group, policy, schema, context)``. Every
source contributes one representative member (its latest delivery, translated
by the schema's source mapping), values are picked field by field according
to the policy rule, and each field on which two sources disagree produces
exactly one conflict entry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from histomerge.domain.model import (
    CanonicalRecord,
    ConflictLogEntry,
    ReconciliationRule,
    TieBreak,
)
from histomerge.domain.quality import score

from .hashing import canonical_json, content_hash

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from histomerge.domain.model import BatchContext, IdentityGroup, SourceRecord
    from histomerge.domain.quality import QualityChecklist
    from histomerge.domain.schema import EntitySchema

    from .policy import ReconciliationPolicy

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MergeResult:
    record: CanonicalRecord
    conflicts: tuple[ConflictLogEntry, ...]


@dataclass(frozen=True, slots=True)
class _Candidate:
    source_id: str
    member: SourceRecord
    payload: Mapping[str, object]
    value: object


@dataclass(frozen=True, slots=True)
class _Choice:
    candidate: _Candidate | None
    substituted: bool = False


def merge(
    group: IdentityGroup,
    policy: ReconciliationPolicy,
    *,
    schema: EntitySchema,
    context: BatchContext,
) -> MergeResult:
    """Reconcile ``group`` into a canonical record under ``policy``."""

    representatives = _representatives(group, policy)
    payloads = {
        source_id: schema.standard_payload(member)
        for source_id, member in representatives.items()
    }
    candidates_by_field = {
        field_name: _candidates(field_name, representatives, payloads, policy)
        for field_name in schema.fields
    }
    choices = {
        field_name: _choose(candidates, policy, schema.checklist)
        for field_name, candidates in candidates_by_field.items()
    }
    # preferred values only; substitutions are judged against this map
    baseline: dict[str, object] = {
        field_name: (
            None if choice.substituted or choice.candidate is None else choice.candidate.value
        )
        for field_name, choice in choices.items()
    }

    fields: dict[str, object] = {}
    source_of_each_field: dict[str, str | None] = {}
    merge_issues: list[str] = []
    for field_name in schema.fields:
        choice = choices[field_name]
        if choice.substituted and _degrades(
            baseline, field_name, choice.candidate, schema.checklist
        ):
            choice = _guarded(field_name, candidates_by_field[field_name], baseline, schema)
            if choice.candidate is None:
                merge_issues.append(f"Rejected substitution for {field_name}")
        fields[field_name] = None if choice.candidate is None else choice.candidate.value
        source_of_each_field[field_name] = (
            None if choice.candidate is None else choice.candidate.source_id
        )

    conflicts: list[ConflictLogEntry] = []
    if policy.rule is not ReconciliationRule.SINGLE_SOURCE:
        for field_name in schema.fields:
            entry = _conflict(
                group, policy, context, field_name, candidates_by_field[field_name], fields
            )
            if entry is not None:
                conflicts.append(entry)

    quality = score(fields, schema.checklist)
    issues = list(quality.issues)
    issues.extend(issue for issue in merge_issues if issue not in issues)

    record = CanonicalRecord(
        entity_type=group.entity_type,
        master_id=group.master_id,
        fields=fields,
        source_of_each_field=source_of_each_field,
        quality_score=quality.score,
        quality_issues=tuple(issues),
        content_hash=content_hash(fields, schema.hashed_fields),
        batch_id=context.batch_id,
        match_method=group.match_method,
        match_confidence=group.match_confidence,
        captured_at=max(member.captured_at for member in group.members),
    )
    if conflicts:
        log.debug("Merged %s with %s conflicts", group.master_id, len(conflicts))
    return MergeResult(record=record, conflicts=tuple(conflicts))


def _representatives(
    group: IdentityGroup, policy: ReconciliationPolicy
) -> dict[str, SourceRecord]:
    """Latest delivery per source; ``SINGLE_SOURCE`` only sees its own source."""

    latest: dict[str, SourceRecord] = {}
    for member in group.members:
        if policy.rule is ReconciliationRule.SINGLE_SOURCE and (
            member.source_id != policy.primary_source
        ):
            continue
        current = latest.get(member.source_id)
        if current is None or _recency(member) > _recency(current):
            latest[member.source_id] = member
    return latest


def _recency(member: SourceRecord) -> tuple[object, ...]:
    return member.captured_at, member.record_id or "", canonical_json(member.payload)


def _candidates(
    field_name: str,
    representatives: Mapping[str, SourceRecord],
    payloads: Mapping[str, Mapping[str, object]],
    policy: ReconciliationPolicy,
) -> tuple[_Candidate, ...]:
    """Candidates in rule order: the first one is the preferred value."""

    preferred = policy.preferred_sources(field_name)
    order = [source for source in preferred if source in representatives]
    order.extend(sorted(source for source in representatives if source not in preferred))
    candidates = [
        _Candidate(
            source_id=source,
            member=representatives[source],
            payload=payloads[source],
            value=_value(payloads[source], field_name),
        )
        for source in order
    ]
    if policy.rule is ReconciliationRule.MOST_RECENT:
        # stable sort keeps preference order among equal timestamps
        candidates.sort(key=lambda candidate: candidate.member.captured_at, reverse=True)
    return tuple(candidates)


def _value(payload: Mapping[str, object], field_name: str) -> object | None:
    value = payload.get(field_name)
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _choose(
    candidates: Sequence[_Candidate],
    policy: ReconciliationPolicy,
    checklist: QualityChecklist,
) -> _Choice:
    present = [candidate for candidate in candidates if candidate.value is not None]
    if not present:
        return _Choice(None)
    if candidates[0].value is None:
        return _Choice(present[0], substituted=True)

    preferred = candidates[0]
    if policy.rule is not ReconciliationRule.MERGE_FIELDS:
        return _Choice(preferred)
    rivals = [candidate for candidate in present[1:] if candidate.value != preferred.value]
    if not rivals:
        return _Choice(preferred)
    return _Choice(_tie_break(preferred, rivals[0], policy.tie_break, checklist))


def _tie_break(
    preferred: _Candidate,
    rival: _Candidate,
    tie_break: TieBreak,
    checklist: QualityChecklist,
) -> _Candidate:
    match tie_break:
        case TieBreak.KEEP_PRIMARY:
            return preferred
        case TieBreak.KEEP_FALLBACK:
            return rival
        case TieBreak.MOST_RECENT:
            return rival if rival.member.captured_at > preferred.member.captured_at else preferred
        case TieBreak.HIGHER_QUALITY:
            preferred_score = score(preferred.payload, checklist).score
            rival_score = score(rival.payload, checklist).score
            return rival if rival_score > preferred_score else preferred


def _degrades(
    baseline: Mapping[str, object],
    field_name: str,
    candidate: _Candidate | None,
    checklist: QualityChecklist,
) -> bool:
    if candidate is None:
        return False
    without = score(baseline, checklist).score
    with_value = score({**baseline, field_name: candidate.value}, checklist).score
    return with_value < without


def _guarded(
    field_name: str,
    candidates: Sequence[_Candidate],
    baseline: Mapping[str, object],
    schema: EntitySchema,
) -> _Choice:
    """First substitute that does not lower the score, if any."""

    for candidate in candidates:
        if candidate.value is None:
            continue
        if not _degrades(baseline, field_name, candidate, schema.checklist):
            return _Choice(candidate, substituted=True)
        log.debug("Rejected %s substitution for %s", candidate.source_id, field_name)
    return _Choice(None, substituted=True)


def _conflict(
    group: IdentityGroup,
    policy: ReconciliationPolicy,
    context: BatchContext,
    field_name: str,
    candidates: Sequence[_Candidate],
    fields: Mapping[str, object],
) -> ConflictLogEntry | None:
    present = [candidate for candidate in candidates if candidate.value is not None]
    if all(candidate.value == present[0].value for candidate in present[1:]):
        return None
    by_source = {candidate.source_id: candidate.value for candidate in candidates}
    fallback_value = by_source.get(policy.fallback_source) if policy.fallback_source else None
    if fallback_value is None:
        # disagreement with a source outside the policy
        fallback_value = next(
            candidate.value
            for candidate in present
            if candidate.source_id != policy.primary_source
        )
    return ConflictLogEntry(
        entity_type=group.entity_type,
        master_id=group.master_id,
        field_name=field_name,
        primary_value=by_source.get(policy.primary_source),
        fallback_value=fallback_value,
        resolved_value=fields[field_name],
        resolution_rule=policy.describe(),
        batch_id=context.batch_id,
        logged_at=context.batch_time,
    )
