"""Ordered milestone schemas of process entity types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from histomerge.domain.errors import UnknownMilestoneError
from histomerge.domain.model import RepeatPolicy

if TYPE_CHECKING:
    from collections.abc import Iterator


@dataclass(frozen=True, slots=True, kw_only=True)
class MilestoneDefinition:
    """One named slot of a process.

    ``source_field`` names the canonical field that carries the milestone
    timestamp when the accumulator is fed from merged records;
    ``payload_fields`` are copied into the slot alongside it.
    """

    name: str
    status: str | None = None
    repeat: RepeatPolicy = RepeatPolicy.IGNORE
    terminal: bool = False
    source_field: str | None = None
    payload_fields: tuple[str, ...] = ()

    @property
    def label(self) -> str:
        return self.status or self.name


@dataclass(frozen=True, slots=True, kw_only=True)
class DurationSpan:
    """Named duration between two (not necessarily adjacent) milestones."""

    name: str
    start: str
    end: str


@dataclass(frozen=True, slots=True, kw_only=True)
class MilestoneSchema:
    process_type: str
    milestones: tuple[MilestoneDefinition, ...]
    spans: tuple[DurationSpan, ...] = ()

    def __post_init__(self) -> None:
        if not self.milestones:
            raise ValueError(f"Milestone schema of {self.process_type!r} is empty")
        names = [definition.name for definition in self.milestones]
        if len(set(names)) != len(names):
            raise ValueError(f"Milestone schema of {self.process_type!r} repeats a name")
        for span in self.spans:
            for endpoint in (span.start, span.end):
                if endpoint not in names:
                    raise ValueError(
                        f"Duration span {span.name!r} references unknown milestone {endpoint!r}"
                    )

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(definition.name for definition in self.milestones)

    def definition(self, milestone_name: str) -> MilestoneDefinition:
        for definition in self.milestones:
            if definition.name == milestone_name:
                return definition
        raise UnknownMilestoneError(self.process_type, milestone_name)

    def position(self, milestone_name: str) -> int:
        return self.names.index(self.definition(milestone_name).name)

    def duration_spans(self) -> Iterator[DurationSpan]:
        """Consecutive pairs in schema order, then the declared spans."""

        for start, end in zip(self.milestones, self.milestones[1:], strict=False):
            yield DurationSpan(name=f"{start.name}_to_{end.name}", start=start.name, end=end.name)
        yield from self.spans
