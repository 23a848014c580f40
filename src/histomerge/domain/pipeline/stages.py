"""Stages of the per entity type pipeline.

Policy validation, scoring, resolution and merging are pure and only fill
the :class:`EntityBatch`. Every write goes through the unit of work attached
to the batch and happens in ``publish`` and the store stage that follows it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from histomerge.domain.errors import HistoryConsistencyError
from histomerge.domain.history import TemporalVersioningStore
from histomerge.domain.milestones import MilestoneAccumulator, events_from_canonical
from histomerge.domain.model import (
    EntityKind,
    MilestoneEffect,
    ReviewItem,
    ReviewReason,
    ScoredRecord,
    VersionEffect,
)
from histomerge.domain.quality import score
from histomerge.domain.reconciliation import merge, resolve_identities, validate_policy

from .orchestrator import StagePipeline

if TYPE_CHECKING:
    from .context import EntityBatch

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ValidatePolicyStage:
    name: str = "policy"
    requires: tuple[str, ...] = ()

    def run(self, batch: EntityBatch) -> None:
        batch.policy = validate_policy(batch.schema.policy)


@dataclass(frozen=True, slots=True)
class ScoreStage:
    name: str = "score"
    requires: tuple[str, ...] = ("policy",)

    def run(self, batch: EntityBatch) -> None:
        checklist = batch.schema.checklist
        batch.scored = []
        for record in batch.records:
            quality = score(batch.schema.standard_payload(record), checklist)
            batch.scored.append(
                ScoredRecord(
                    record=record,
                    quality_score=quality.score,
                    quality_issues=quality.issues,
                )
            )
        batch.counters.records_read = len(batch.records)


@dataclass(frozen=True, slots=True)
class ResolveStage:
    name: str = "resolve"
    requires: tuple[str, ...] = ("score",)

    def run(self, batch: EntityBatch) -> None:
        batch.groups = resolve_identities(
            (scored.record for scored in batch.scored),
            batch.require_policy(),
            payload_of=batch.schema.standard_payload,
        )
        batch.counters.groups_resolved = len(batch.groups)
        for group in batch.groups:
            for reason in group.review_reasons:
                batch.reviews.append(
                    ReviewItem(
                        entity_type=group.entity_type,
                        master_id=group.master_id,
                        reason=reason,
                        batch_id=batch.context.batch_id,
                        detail={
                            "match_method": group.match_method.value,
                            "match_confidence": group.match_confidence,
                            "members": [
                                {"source_id": member.source_id, "record_id": member.record_id}
                                for member in group.members
                            ],
                        },
                    )
                )


@dataclass(frozen=True, slots=True)
class MergeStage:
    name: str = "merge"
    requires: tuple[str, ...] = ("resolve",)

    def run(self, batch: EntityBatch) -> None:
        policy = batch.require_policy()
        batch.merged = [
            merge(group, policy, schema=batch.schema, context=batch.context)
            for group in batch.groups
        ]


@dataclass(frozen=True, slots=True)
class PublishStage:
    """Replace the batch's canonical set and append conflicts and reviews."""

    name: str = "publish"
    requires: tuple[str, ...] = ("merge",)

    def run(self, batch: EntityBatch) -> None:
        repositories = batch.require_uow().repositories
        repositories.canonical_records.replace(
            batch.entity_type,
            batch.context.batch_id,
            [result.record for result in batch.merged],
        )
        for result in batch.merged:
            for entry in result.conflicts:
                if repositories.conflicts.add(entry):
                    batch.counters.conflicts_logged += 1
        for item in batch.reviews:
            if repositories.reviews.add(item):
                batch.counters.reviews_queued += 1


@dataclass(frozen=True, slots=True)
class VersionStage:
    name: str = "version"
    requires: tuple[str, ...] = ("publish",)

    def run(self, batch: EntityBatch) -> None:
        repositories = batch.require_uow().repositories
        store = TemporalVersioningStore(repositories.history)
        for result in batch.merged:
            try:
                effect = store.apply(result.record, batch.context)
            except HistoryConsistencyError as exc:
                log.error("%s", exc)  # noqa: TRY400
                batch.counters.rows_rejected += 1
                batch.counters.effects["consistency_error"] += 1
                item = ReviewItem(
                    entity_type=exc.entity_type,
                    master_id=exc.master_id,
                    reason=ReviewReason.HISTORY_CONSISTENCY,
                    batch_id=batch.context.batch_id,
                    detail={"reason": exc.reason, "versions": len(exc.versions)},
                )
                if repositories.reviews.add(item):
                    batch.counters.reviews_queued += 1
                continue
            batch.counters.effects[effect.value] += 1
            if effect is not VersionEffect.NO_CHANGE:
                batch.counters.rows_written += 1


@dataclass(frozen=True, slots=True)
class AccumulateStage:
    name: str = "accumulate"
    requires: tuple[str, ...] = ("publish",)

    def run(self, batch: EntityBatch) -> None:
        milestones = batch.schema.milestones
        if milestones is None:
            raise RuntimeError(f"{batch.entity_type} has no milestone schema")
        accumulator = MilestoneAccumulator(batch.require_uow().repositories.processes, milestones)
        for result in batch.merged:
            for event in events_from_canonical(result.record, milestones, batch.context):
                effect = accumulator.record(event)
                batch.counters.effects[effect.value] += 1
                if effect in (MilestoneEffect.CREATED, MilestoneEffect.UPDATED):
                    batch.counters.rows_written += 1


def pipeline_for(kind: EntityKind) -> StagePipeline:
    """Default stage graph of an entity kind."""

    pipeline = StagePipeline(
        stages=(
            ValidatePolicyStage(),
            ScoreStage(),
            ResolveStage(),
            MergeStage(),
            PublishStage(),
        )
    )
    if kind is EntityKind.PROCESS:
        return pipeline.with_stage(AccumulateStage())
    return pipeline.with_stage(VersionStage())
