"""Exception hierarchy of the reconciliation engine.

Input errors (malformed or missing fields) deliberately have no exception in
the scoring, resolution and merge stages: they degrade to lower scores, issue
strings and lower match confidence instead.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from histomerge.domain.model import HistoryVersion


class HistomergeError(Exception):
    """Base class for engine errors."""


class PolicyError(HistomergeError):
    """Reconciliation policy is unusable. Fatal for one entity type's batch."""

    def __init__(self, entity_type: str, message: str) -> None:
        self.entity_type = entity_type
        super().__init__(f"Invalid reconciliation policy for {entity_type!r}: {message}")


class HistoryConsistencyError(HistomergeError):
    """Applying a record would break the history partition of one master id."""

    def __init__(
        self,
        *,
        entity_type: str,
        master_id: str,
        reason: str,
        versions: tuple[HistoryVersion, ...] = (),
    ) -> None:
        self.entity_type = entity_type
        self.master_id = master_id
        self.reason = reason
        self.versions = versions
        super().__init__(
            f"History of {entity_type}:{master_id} is inconsistent: {reason} "
            f"(versions={[_describe(version) for version in versions]})"
        )


class UnknownMilestoneError(HistomergeError, ValueError):
    """Milestone name is not part of the process schema."""

    def __init__(self, process_type: str, milestone_name: str) -> None:
        self.process_type = process_type
        self.milestone_name = milestone_name
        super().__init__(f"Unknown milestone {milestone_name!r} for process {process_type!r}")


class RecordFormatError(HistomergeError, ValueError):
    """An inbound line could not be turned into a source record."""


class PipelineDefinitionError(HistomergeError):
    """Stage dependency graph is cyclic or references unknown stages."""


class BatchCancelledError(HistomergeError):
    """Batch was aborted before its write stage."""


def _describe(version: HistoryVersion) -> str:
    return (
        f"v{version.version_number}[{version.valid_from.isoformat()}, "
        f"{version.valid_to.isoformat()}) current={version.is_current}"
    )
