"""Stage dependency graph executed per entity type."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from graphlib import CycleError, TopologicalSorter
from typing import TYPE_CHECKING, Protocol

from histomerge.domain.errors import BatchCancelledError, PipelineDefinitionError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from .context import EntityBatch

log = logging.getLogger(__name__)

type CancelCheck = Callable[[], bool]


class PipelineStage(Protocol):
    """Contract implemented by each stage."""

    name: str
    requires: tuple[str, ...]

    def run(self, batch: EntityBatch) -> None: ...


@dataclass(slots=True)
class StagePipeline:
    """Stages ordered by their declared dependencies, not by list position."""

    stages: Sequence[PipelineStage] = field(default_factory=tuple)

    def with_stage(self, stage: PipelineStage) -> StagePipeline:
        """Return a new pipeline that also contains ``stage``."""

        return StagePipeline(stages=(*self.stages, stage))

    def extend(self, stages: Iterable[PipelineStage]) -> StagePipeline:
        return StagePipeline(stages=(*self.stages, *tuple(stages)))

    def order(self) -> tuple[PipelineStage, ...]:
        """Resolve execution order.

        Raises:
            PipelineDefinitionError: duplicate names, unknown dependencies or cycles.
        """

        by_name: dict[str, PipelineStage] = {}
        for stage in self.stages:
            if stage.name in by_name:
                raise PipelineDefinitionError(f"Stage {stage.name!r} is defined twice")
            by_name[stage.name] = stage

        sorter: TopologicalSorter[str] = TopologicalSorter()
        for stage in self.stages:
            missing = [name for name in stage.requires if name not in by_name]
            if missing:
                raise PipelineDefinitionError(
                    f"Stage {stage.name!r} depends on unknown stages {missing}"
                )
            sorter.add(stage.name, *stage.requires)
        try:
            return tuple(by_name[name] for name in sorter.static_order())
        except CycleError as exc:
            raise PipelineDefinitionError(
                f"Stage dependencies form a cycle: {exc.args[1]}"
            ) from exc

    def run(self, batch: EntityBatch, *, should_cancel: CancelCheck | None = None) -> EntityBatch:
        """Execute every stage once, checking for cancellation before each."""

        for stage in self.order():
            if should_cancel is not None and should_cancel():
                raise BatchCancelledError(
                    f"Batch {batch.context.batch_id} cancelled before stage {stage.name!r} "
                    f"of {batch.entity_type}"
                )
            log.debug("Running stage %s for %s", stage.name, batch.entity_type)
            stage.run(batch)
        return batch
