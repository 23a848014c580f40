"""Identity resolution across upstream sources.

Responsibilities of this stage:
- partition one entity type's source records into identity groups
- derive a ``master_id`` that is stable across reruns of the same input
- classify every group by match method and confidence

Out of scope for this stage:
- merging field values
- any persistence lookup

Business keys are trusted as delivered. Two distinct entities sharing a
reused key cannot be told apart here; such groups are flagged for manual
review (``KEY_COLLISION_SUSPECTED``) and otherwise processed unchanged.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Final

from histomerge.domain.model import IdentityGroup, MatchMethod, ReconciliationRule, ReviewReason

from .hashing import canonical_json, stable_id

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from histomerge.domain.model import SourceRecord

    from .policy import ReconciliationPolicy

log = logging.getLogger(__name__)

type RecordIdentity = tuple[str, str]

MATCH_CONFIDENCE: Final[dict[MatchMethod, int]] = {
    MatchMethod.EXACT: 100,
    MatchMethod.ONE_SIDED_PRIMARY: 90,
    MatchMethod.ONE_SIDED_FALLBACK: 85,
    MatchMethod.FUZZY: 70,
    MatchMethod.NONE: 50,
}


def normalize_business_key(value: object) -> str | None:
    """Return the comparable form of a business key, ``None`` if unusable."""

    if value is None:
        return None
    normalized = str(value).strip()
    return normalized or None


def record_identity(record: SourceRecord) -> RecordIdentity:
    """Identity of one upstream row, stable across re-deliveries."""

    if record.record_id is not None:
        return record.source_id, f"id:{record.record_id}"
    return record.source_id, f"payload:{canonical_json(record.payload)}"


def record_sort_key(record: SourceRecord) -> tuple[str, str, str, str]:
    source_id, identity = record_identity(record)
    return source_id, identity, record.captured_at.isoformat(), canonical_json(record.payload)


def resolve_identities(
    records: Iterable[SourceRecord],
    policy: ReconciliationPolicy,
    *,
    payload_of: Callable[[SourceRecord], Mapping[str, object]] | None = None,
) -> tuple[IdentityGroup, ...]:
    """Group ``records`` of one entity type into identity groups.

    The result only depends on the set of records, not on their order, and is
    sorted by ``master_id``. Missing keys never raise; such records degrade to
    ``NONE`` (or ``FUZZY`` when the policy declares secondary match fields).

    ``payload_of`` supplies the payload match fields are read from, by default
    the record's own. Under ``SINGLE_SOURCE`` records of other sources are
    dropped before grouping.
    """

    keyed: dict[str, list[SourceRecord]] = defaultdict(list)
    matched: dict[str, list[SourceRecord]] = defaultdict(list)
    unmatched: dict[RecordIdentity, list[SourceRecord]] = defaultdict(list)

    ignored = 0
    for record in sorted(records, key=record_sort_key):
        if policy.rule is ReconciliationRule.SINGLE_SOURCE and (
            record.source_id != policy.primary_source
        ):
            ignored += 1
            continue
        key = normalize_business_key(record.business_key)
        if key is not None:
            keyed[key].append(record)
            continue
        payload = record.payload if payload_of is None else payload_of(record)
        match_values = _match_values(payload, policy.match_fields)
        if match_values is not None:
            matched[stable_id(policy.entity_type, "match", *match_values)].append(record)
            continue
        unmatched[record_identity(record)].append(record)
    if ignored:
        log.info(
            "Ignored %s records of %s outside single source %s",
            ignored,
            policy.entity_type,
            policy.primary_source,
        )

    groups = [_keyed_group(key, members, policy) for key, members in keyed.items()]
    groups.extend(
        _matched_group(master_id, members, policy) for master_id, members in matched.items()
    )
    groups.extend(
        _unmatched_group(identity, members, policy) for identity, members in unmatched.items()
    )
    groups.sort(key=lambda group: group.master_id)

    flagged = sum(1 for group in groups if group.needs_review)
    log.debug(
        "Resolved %s identity groups for %s (%s flagged for review)",
        len(groups),
        policy.entity_type,
        flagged,
    )
    return tuple(groups)


def _keyed_group(
    key: str,
    members: list[SourceRecord],
    policy: ReconciliationPolicy,
) -> IdentityGroup:
    sources = {member.source_id for member in members}
    has_primary = policy.primary_source in sources
    has_other = bool(sources - {policy.primary_source})
    if has_primary and policy.fallback_source in sources:
        method = MatchMethod.EXACT
    elif has_primary:
        method = MatchMethod.ONE_SIDED_PRIMARY
    else:
        method = MatchMethod.ONE_SIDED_FALLBACK
    if has_primary and has_other and policy.fallback_source not in sources:
        log.debug("Group %s joins primary with undeclared sources %s", key, sorted(sources))

    reasons: tuple[ReviewReason, ...] = ()
    if _has_key_collision(members):
        log.warning(
            "Business key %s of %s is carried by several distinct records of one source",
            key,
            policy.entity_type,
        )
        reasons = (ReviewReason.KEY_COLLISION_SUSPECTED,)

    return IdentityGroup(
        entity_type=policy.entity_type,
        master_id=key,
        members=tuple(members),
        match_confidence=MATCH_CONFIDENCE[method],
        match_method=method,
        review_reasons=reasons,
    )


def _matched_group(
    master_id: str,
    members: list[SourceRecord],
    policy: ReconciliationPolicy,
) -> IdentityGroup:
    distinct = {record_identity(member) for member in members}
    method = MatchMethod.FUZZY if len(distinct) > 1 else MatchMethod.NONE
    reason = ReviewReason.FUZZY_MATCH if method is MatchMethod.FUZZY else ReviewReason.MISSING_KEY
    return IdentityGroup(
        entity_type=policy.entity_type,
        master_id=master_id,
        members=tuple(members),
        match_confidence=MATCH_CONFIDENCE[method],
        match_method=method,
        review_reasons=(reason,),
    )


def _unmatched_group(
    identity: RecordIdentity,
    members: list[SourceRecord],
    policy: ReconciliationPolicy,
) -> IdentityGroup:
    source_id, row_identity = identity
    return IdentityGroup(
        entity_type=policy.entity_type,
        master_id=stable_id(policy.entity_type, source_id, row_identity),
        members=tuple(members),
        match_confidence=MATCH_CONFIDENCE[MatchMethod.NONE],
        match_method=MatchMethod.NONE,
        review_reasons=(ReviewReason.MISSING_KEY,),
    )


def _match_values(
    payload: Mapping[str, object], match_fields: tuple[str, ...]
) -> tuple[str, ...] | None:
    if not match_fields:
        return None
    values: list[str] = []
    for field_name in match_fields:
        value = payload.get(field_name)
        if value is None:
            return None
        normalized = " ".join(str(value).split()).casefold()
        if not normalized:
            return None
        values.append(normalized)
    return tuple(values)


def _has_key_collision(members: list[SourceRecord]) -> bool:
    record_ids: dict[str, set[str]] = defaultdict(set)
    for member in members:
        if member.record_id is not None:
            record_ids[member.source_id].add(member.record_id)
    return any(len(ids) > 1 for ids in record_ids.values())
