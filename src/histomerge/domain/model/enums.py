"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class EntityKind(StrEnum):
    """Which store receives the canonical records of an entity type."""

    REFERENCE = "reference"
    PROCESS = "process"


class MatchMethod(StrEnum):
    EXACT = "exact"
    ONE_SIDED_PRIMARY = "one_sided_primary"
    ONE_SIDED_FALLBACK = "one_sided_fallback"
    FUZZY = "fuzzy"
    NONE = "none"


class ReconciliationRule(StrEnum):
    PREFER_PRIMARY = "prefer_primary"
    MOST_RECENT = "most_recent"
    MERGE_FIELDS = "merge_fields"
    SINGLE_SOURCE = "single_source"


class TieBreak(StrEnum):
    """How ``MERGE_FIELDS`` settles two non-null, differing values."""

    KEEP_PRIMARY = "keep_primary"
    KEEP_FALLBACK = "keep_fallback"
    MOST_RECENT = "most_recent"
    HIGHER_QUALITY = "higher_quality"


class QualityCheck(StrEnum):
    REQUIRED = "required"
    RANGE = "range"
    PATTERN = "pattern"
    ALLOWED_VALUES = "allowed_values"


class VersionEffect(StrEnum):
    NO_CHANGE = "no_change"
    NEW_ENTITY = "new_entity"
    NEW_VERSION = "new_version"


class RepeatPolicy(StrEnum):
    """What happens when a milestone slot is already populated."""

    IGNORE = "ignore"
    OVERWRITE = "overwrite"


class MilestoneEffect(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    IGNORED_DUPLICATE = "ignored_duplicate"
    IGNORED_OUT_OF_ORDER = "ignored_out_of_order"


class ReviewReason(StrEnum):
    MISSING_KEY = "missing_key"
    FUZZY_MATCH = "fuzzy_match"
    KEY_COLLISION_SUSPECTED = "key_collision_suspected"
    HISTORY_CONSISTENCY = "history_consistency"


class BatchStatus(StrEnum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
