"""Deterministic digests for change detection and surrogate identities."""

from __future__ import annotations

import hashlib
import json
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

HASHED_ID_PREFIX = "h:"


def canonical_json(value: object) -> str:
    """Serialize ``value`` so that equal content always yields equal text."""

    return json.dumps(
        value,
        default=_json_default,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def content_hash(fields: Mapping[str, object], tracked_fields: Iterable[str] | None = None) -> str:
    """SHA-256 over the tracked subset of ``fields``.

    When ``tracked_fields`` is empty or ``None`` every field is tracked. Tracked
    fields missing from ``fields`` hash as ``null`` so that adding an untracked
    field never changes the digest.
    """

    tracked = tuple(tracked_fields or ())
    subset = {name: fields.get(name) for name in tracked} if tracked else dict(fields)
    return hashlib.sha256(canonical_json(subset).encode("utf-8")).hexdigest()


def stable_id(*parts: object) -> str:
    digest = hashlib.sha256(canonical_json(list(parts)).encode("utf-8")).hexdigest()
    return f"{HASHED_ID_PREFIX}{digest[:32]}"


def _json_default(value: object) -> object:
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, set | frozenset):
        return sorted(value, key=canonical_json)
    if hasattr(value, "items"):
        return dict(value.items())  # pyright: ignore[reportAttributeAccessIssue, reportUnknownMemberType]
    return str(value)
