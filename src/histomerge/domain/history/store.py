"""Temporal versioning store (type-2 history) for reference entity types."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .transitions import (
    KeepVersion,
    OpenFirstVersion,
    SupersedeVersion,
    effect_of,
    plan_transition,
)

if TYPE_CHECKING:
    from datetime import datetime

    from histomerge.domain.model import (
        BatchContext,
        CanonicalRecord,
        HistoryVersion,
        VersionEffect,
    )
    from histomerge.domain.ports import HistoryRepository

log = logging.getLogger(__name__)


class TemporalVersioningStore:
    """Apply canonical records to the history of their master ids."""

    def __init__(self, repository: HistoryRepository) -> None:
        self._repository = repository

    def apply(self, canonical: CanonicalRecord, context: BatchContext) -> VersionEffect:
        """Historize ``canonical``; idempotent for repeated content.

        Raises:
            HistoryConsistencyError: for this master id only; nothing is written.
        """

        history = self._repository.history(canonical.entity_type, canonical.master_id)
        transition = plan_transition(canonical, history, context)
        match transition:
            case OpenFirstVersion(version=version):
                self._repository.add(version)
            case SupersedeVersion(current=current, successor=successor):
                current.supersede(at=context.batch_time, batch_id=context.batch_id)
                # the partial unique index on current rows needs the close first
                self._repository.flush()
                self._repository.add(successor)
            case KeepVersion():
                pass
        effect = effect_of(transition)
        log.debug("%s %s: %s", canonical.entity_type, canonical.master_id, effect)
        return effect

    def as_of(self, entity_type: str, master_id: str, moment: datetime) -> HistoryVersion | None:
        """The unique version with ``valid_from <= moment < valid_to``."""

        return self._repository.at(entity_type, master_id, moment)

    def current_versions(self, entity_type: str) -> list[HistoryVersion]:
        return self._repository.current(entity_type)
