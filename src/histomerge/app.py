"""Application orchestration entry points."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from histomerge.adapters.files import load_engine_config, load_source_records
from histomerge.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork, is_started, startup
from histomerge.config import ConfigurationError, get_pipeline_config
from histomerge.domain.history import TemporalVersioningStore, verify_history
from histomerge.domain.milestones import MilestoneAccumulator
from histomerge.domain.model import BatchContext, EntityKind
from histomerge.domain.pipeline import run_batch
from histomerge.domain.ports import ReconciliationUnitOfWork

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from histomerge.domain.model import HistoryVersion, MilestoneEffect, ReviewItem
    from histomerge.domain.pipeline import BatchReport, CancelCheck
    from histomerge.domain.schema import EntitySchema

UnitOfWorkFactory = Callable[[], ReconciliationUnitOfWork]


log = getLogger(__name__)


def _default_uow_factory() -> UnitOfWorkFactory:
    if not is_started():
        startup()
    return SqlAlchemyUnitOfWork


def run_batch_from_files(
    *,
    input_path: Path,
    batch_id: str,
    config_path: Path | None = None,
    batch_time: datetime | None = None,
    max_workers: int | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    should_cancel: CancelCheck | None = None,
) -> BatchReport:
    """Reconcile one landed batch file with the configured entity schemas."""

    pipeline_config = get_pipeline_config()
    schemas = load_engine_config(config_path or pipeline_config.require_engine_config_path())
    context = BatchContext(batch_id=batch_id, batch_time=batch_time or datetime.now(UTC))
    loaded = load_source_records(input_path, batch_id=context.batch_id)
    effective_uow = unit_of_work_factory or _default_uow_factory()
    log.info(
        "Starting batch %s at %s: records=%s, rejected_lines=%s, entity_types=%s",
        context.batch_id,
        context.batch_time.isoformat(),
        len(loaded.records),
        loaded.rejected,
        len(schemas),
    )

    return run_batch(
        records=loaded.records,
        schemas=schemas,
        context=context,
        unit_of_work_factory=effective_uow,
        max_workers=max_workers or pipeline_config.max_workers,
        should_cancel=should_cancel,
    )


def history_as_of(
    *,
    entity_type: str,
    master_id: str,
    at: datetime,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> HistoryVersion | None:
    """Point-in-time lookup of one master entity."""

    effective_uow = unit_of_work_factory or _default_uow_factory()
    with effective_uow() as uow:
        store = TemporalVersioningStore(uow.repositories.history)
        return store.as_of(entity_type, master_id, at)


def verify_entity_history(
    *,
    entity_type: str,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> dict[str, list[str]]:
    """Check the history invariant of every master id; maps master id to problems."""

    effective_uow = unit_of_work_factory or _default_uow_factory()
    with effective_uow() as uow:
        versions = uow.repositories.history.versions(entity_type)
    by_master: dict[str, list[HistoryVersion]] = defaultdict(list)
    for version in versions:
        by_master[version.master_id].append(version)
    problems = {
        master_id: found
        for master_id, history in sorted(by_master.items())
        if (found := verify_history(history))
    }
    log.info(
        "Verified %s master ids of %s: %s inconsistent",
        len(by_master),
        entity_type,
        len(problems),
    )
    return problems


def record_milestone(
    *,
    process_type: str,
    process_id: str,
    milestone_name: str,
    at: datetime,
    batch_id: str,
    payload: Mapping[str, object] | None = None,
    config_path: Path | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> MilestoneEffect:
    """Record a single milestone event outside of a batch file."""

    schema = _process_schema(
        load_engine_config(config_path or get_pipeline_config().require_engine_config_path()),
        process_type,
    )
    if schema.milestones is None:
        raise ConfigurationError(f"{process_type!r} has no milestone schema")
    context = BatchContext(batch_id=batch_id, batch_time=at)
    effective_uow = unit_of_work_factory or _default_uow_factory()
    with effective_uow() as uow:
        accumulator = MilestoneAccumulator(uow.repositories.processes, schema.milestones)
        effect = accumulator.record_milestone(
            process_id, milestone_name, at, payload, context=context
        )
        uow.commit()
    log.info("Milestone %s of %s %s: %s", milestone_name, process_type, process_id, effect)
    return effect


def pending_reviews(
    *,
    batch_id: str | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> list[ReviewItem]:
    effective_uow = unit_of_work_factory or _default_uow_factory()
    with effective_uow() as uow:
        return uow.repositories.reviews.pending(batch_id=batch_id)


def _process_schema(schemas: tuple[EntitySchema, ...], process_type: str) -> EntitySchema:
    for schema in schemas:
        if schema.entity_type == process_type:
            if schema.kind is not EntityKind.PROCESS:
                raise ConfigurationError(f"{process_type!r} is not a process entity type")
            return schema
    raise ConfigurationError(f"Unknown process type {process_type!r}")
