"""Batch entry point: every configured entity type through its stage graph.

Failures are scoped to one entity type. Each entity type runs inside its own
unit of work; a failed or cancelled entity type is rolled back as a whole and
recorded in the batch run log, the others carry on.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from histomerge.domain.errors import BatchCancelledError, PolicyError
from histomerge.domain.model import BatchRun, BatchStatus

from .context import EntityBatch, EntityCounters
from .stages import pipeline_for

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from histomerge.domain.model import BatchContext, SourceRecord
    from histomerge.domain.ports import ReconciliationUnitOfWork
    from histomerge.domain.schema import EntitySchema

    from .orchestrator import CancelCheck

type UnitOfWorkFactory = Callable[[], ReconciliationUnitOfWork]
type Clock = Callable[[], datetime]

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EntityOutcome:
    entity_type: str
    status: BatchStatus
    counters: EntityCounters
    error: str | None = None


@dataclass(slots=True)
class BatchReport:
    batch_id: str
    outcomes: dict[str, EntityOutcome] = field(default_factory=dict[str, EntityOutcome])
    unknown_entity_types: dict[str, int] = field(default_factory=dict[str, int])

    @property
    def succeeded(self) -> bool:
        return all(outcome.status is BatchStatus.SUCCEEDED for outcome in self.outcomes.values())

    @property
    def failed(self) -> tuple[str, ...]:
        return tuple(
            entity_type
            for entity_type, outcome in self.outcomes.items()
            if outcome.status is BatchStatus.FAILED
        )


def run_batch(
    *,
    records: Iterable[SourceRecord],
    schemas: Sequence[EntitySchema],
    context: BatchContext,
    unit_of_work_factory: UnitOfWorkFactory,
    max_workers: int = 1,
    should_cancel: CancelCheck | None = None,
    clock: Clock | None = None,
) -> BatchReport:
    """Reconcile and store ``records`` for every entity type in ``schemas``."""

    if max_workers < 1:
        raise ValueError("max_workers must be at least 1")
    now = clock or _utcnow
    by_type: dict[str, list[SourceRecord]] = defaultdict(list)
    for record in records:
        by_type[record.entity_type].append(record)

    report = BatchReport(batch_id=context.batch_id)
    known = {schema.entity_type for schema in schemas}
    for entity_type in sorted(set(by_type) - known):
        report.unknown_entity_types[entity_type] = len(by_type[entity_type])
        log.warning(
            "Ignoring %s records of unconfigured entity type %s",
            len(by_type[entity_type]),
            entity_type,
        )

    def process(schema: EntitySchema) -> EntityOutcome:
        return process_entity_type(
            schema=schema,
            records=tuple(by_type.get(schema.entity_type, ())),
            context=context,
            unit_of_work_factory=unit_of_work_factory,
            should_cancel=should_cancel,
            clock=now,
        )

    if max_workers == 1 or len(schemas) <= 1:
        outcomes = [process(schema) for schema in schemas]
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            outcomes = list(executor.map(process, schemas))

    for outcome in outcomes:
        report.outcomes[outcome.entity_type] = outcome
    log.info(
        "Finished batch %s: %s",
        context.batch_id,
        ", ".join(f"{outcome.entity_type}={outcome.status}" for outcome in outcomes),
    )
    return report


def process_entity_type(
    *,
    schema: EntitySchema,
    records: Sequence[SourceRecord],
    context: BatchContext,
    unit_of_work_factory: UnitOfWorkFactory,
    should_cancel: CancelCheck | None = None,
    clock: Clock | None = None,
) -> EntityOutcome:
    """Run one entity type of a batch inside a single unit of work.

    A retried batch keeps the batch time of its first run, so reruns replay
    against history instead of superseding later batches.
    """

    now = clock or _utcnow
    entity_type = schema.entity_type
    with unit_of_work_factory() as uow:
        run = _start_run(uow, context, entity_type, started_at=now())
        uow.commit()
        if run.batch_time != context.batch_time:
            context = replace(context, batch_time=run.batch_time)

        batch = EntityBatch(schema=schema, context=context, records=tuple(records), uow=uow)
        error: str | None = None
        try:
            pipeline_for(schema.kind).run(batch, should_cancel=should_cancel)
        except BatchCancelledError as exc:
            uow.rollback()
            status, error = BatchStatus.CANCELLED, str(exc)
            log.warning("%s", exc)
        except PolicyError as exc:
            uow.rollback()
            status, error = BatchStatus.FAILED, str(exc)
            log.exception("Entity type %s failed in batch %s", entity_type, context.batch_id)
        except Exception as exc:
            uow.rollback()
            status, error = BatchStatus.FAILED, f"{type(exc).__name__}: {exc}"
            log.exception("Entity type %s failed in batch %s", entity_type, context.batch_id)
        else:
            status = BatchStatus.SUCCEEDED

        counters = batch.counters
        if status is not BatchStatus.SUCCEEDED:
            counters.rows_written = 0
        _finish_run(run, counters, status, at=now(), error=error)
        uow.commit()

    log.info(
        "%s in batch %s: %s (read=%s, groups=%s, conflicts=%s, written=%s, rejected=%s)",
        entity_type,
        context.batch_id,
        status,
        counters.records_read,
        counters.groups_resolved,
        counters.conflicts_logged,
        counters.rows_written,
        counters.rows_rejected,
    )
    return EntityOutcome(entity_type=entity_type, status=status, counters=counters, error=error)


def _start_run(
    uow: ReconciliationUnitOfWork,
    context: BatchContext,
    entity_type: str,
    *,
    started_at: datetime,
) -> BatchRun:
    batch_runs = uow.repositories.batch_runs
    run = batch_runs.get(context.batch_id, entity_type)
    if run is None:
        run = BatchRun(
            batch_id=context.batch_id,
            entity_type=entity_type,
            batch_time=context.batch_time,
            started_at=started_at,
        )
        batch_runs.add(run)
    else:
        log.info(
            "Re-running %s of batch %s (was %s) at its original batch time %s",
            entity_type,
            context.batch_id,
            run.status,
            run.batch_time.isoformat(),
        )
        run.restart(at=started_at)
    return run


def _finish_run(
    run: BatchRun,
    counters: EntityCounters,
    status: BatchStatus,
    *,
    at: datetime,
    error: str | None,
) -> None:
    run.records_read = counters.records_read
    run.groups_resolved = counters.groups_resolved
    run.conflicts_logged = counters.conflicts_logged
    run.rows_written = counters.rows_written
    run.rows_rejected = counters.rows_rejected
    run.finish(status, at=at, error=error)


def _utcnow() -> datetime:
    return datetime.now(UTC)
