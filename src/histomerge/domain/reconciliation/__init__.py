"""Reconciliation core: identity resolution and policy-driven merging.

Layered flow per entity type:
1) score every source record
2) resolve identity groups from business keys
3) merge each group into a canonical record, logging conflicts
"""

from __future__ import annotations

from .hashing import HASHED_ID_PREFIX, canonical_json, content_hash, stable_id
from .mapping import SourceMapping
from .merge import MergeResult, merge
from .policy import PolicySettings, ReconciliationPolicy, validate_policy
from .resolve import MATCH_CONFIDENCE, normalize_business_key, resolve_identities

__all__ = [
    "HASHED_ID_PREFIX",
    "MATCH_CONFIDENCE",
    "MergeResult",
    "PolicySettings",
    "ReconciliationPolicy",
    "SourceMapping",
    "canonical_json",
    "content_hash",
    "merge",
    "normalize_business_key",
    "resolve_identities",
    "stable_id",
    "validate_policy",
]
