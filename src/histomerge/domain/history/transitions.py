"""Version transitions planned per canonical record.

A change of a master entity is never an in-place flag flip. The planner
returns one tagged transition and the store applies it as a unit: closing the
current version and opening its successor always happen together.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from histomerge.domain.errors import HistoryConsistencyError
from histomerge.domain.model import OPEN_END, HistoryVersion, VersionEffect

from .invariants import verify_history

if TYPE_CHECKING:
    from collections.abc import Sequence

    from histomerge.domain.model import BatchContext, CanonicalRecord


@dataclass(frozen=True, slots=True)
class OpenFirstVersion:
    version: HistoryVersion


@dataclass(frozen=True, slots=True)
class SupersedeVersion:
    current: HistoryVersion
    successor: HistoryVersion


@dataclass(frozen=True, slots=True)
class KeepVersion:
    """Nothing to write; ``version`` already carries the incoming content."""

    version: HistoryVersion


type VersionTransition = OpenFirstVersion | SupersedeVersion | KeepVersion


def effect_of(transition: VersionTransition) -> VersionEffect:
    match transition:
        case OpenFirstVersion():
            return VersionEffect.NEW_ENTITY
        case SupersedeVersion():
            return VersionEffect.NEW_VERSION
        case KeepVersion():
            return VersionEffect.NO_CHANGE


def plan_transition(
    canonical: CanonicalRecord,
    history: Sequence[HistoryVersion],
    context: BatchContext,
) -> VersionTransition:
    """Decide how ``canonical`` changes the history of its master id.

    Raises:
        HistoryConsistencyError: the stored history already violates the
            partition invariant, or an older batch is replayed with content
            that disagrees with what was valid at its batch time.
    """

    problems = verify_history(history)
    if problems:
        raise HistoryConsistencyError(
            entity_type=canonical.entity_type,
            master_id=canonical.master_id,
            reason="; ".join(problems),
            versions=tuple(history),
        )
    if not history:
        return OpenFirstVersion(_new_version(canonical, context, version_number=1))

    current = next(version for version in history if version.is_current)
    if current.content_hash == canonical.content_hash:
        return KeepVersion(current)
    if context.batch_time > current.valid_from:
        return SupersedeVersion(
            current=current,
            successor=_new_version(
                canonical,
                context,
                version_number=max(version.version_number for version in history) + 1,
            ),
        )

    covering = next((version for version in history if version.covers(context.batch_time)), None)
    if covering is not None and covering.content_hash == canonical.content_hash:
        return KeepVersion(covering)
    raise HistoryConsistencyError(
        entity_type=canonical.entity_type,
        master_id=canonical.master_id,
        reason=(
            f"batch {context.batch_id} at {context.batch_time.isoformat()} does not follow "
            f"the current version and disagrees with the version valid at that time"
        ),
        versions=tuple(history),
    )


def _new_version(
    canonical: CanonicalRecord, context: BatchContext, *, version_number: int
) -> HistoryVersion:
    return HistoryVersion(
        entity_type=canonical.entity_type,
        master_id=canonical.master_id,
        version_number=version_number,
        version_fields=dict(canonical.fields),
        content_hash=canonical.content_hash,
        valid_from=context.batch_time,
        valid_to=OPEN_END,
        is_current=True,
        opened_batch_id=context.batch_id,
    )
