"""Partition invariant of one master id's history."""

from __future__ import annotations

from typing import TYPE_CHECKING

from histomerge.domain.model import OPEN_END

if TYPE_CHECKING:
    from collections.abc import Iterable

    from histomerge.domain.model import HistoryVersion


def verify_history(versions: Iterable[HistoryVersion]) -> list[str]:
    """Return every violation of the history invariant, empty when sound.

    For one master id the ``[valid_from, valid_to)`` intervals must cover
    ``[first valid_from, OPEN_END)`` with no gap and no overlap, and exactly one
    version (the last one) is current and open.
    """

    ordered = sorted(versions, key=lambda version: (version.valid_from, version.version_number))
    if not ordered:
        return []

    problems: list[str] = []
    current = [version for version in ordered if version.is_current]
    if len(current) != 1:
        problems.append(f"expected exactly one current version, found {len(current)}")
    for version in current:
        if version.valid_to != OPEN_END:
            problems.append(
                f"current version {version.version_number} is closed at "
                f"{version.valid_to.isoformat()}"
            )
    for version in ordered:
        if version.valid_from >= version.valid_to:
            problems.append(f"version {version.version_number} has an empty interval")
        if not version.is_current and version.valid_to == OPEN_END:
            problems.append(f"superseded version {version.version_number} is still open")

    for previous, following in zip(ordered, ordered[1:], strict=False):
        if previous.valid_to < following.valid_from:
            problems.append(
                f"gap between version {previous.version_number} and {following.version_number}"
            )
        elif previous.valid_to > following.valid_from:
            problems.append(
                f"version {previous.version_number} overlaps {following.version_number}"
            )
    if ordered[-1].valid_to != OPEN_END:
        problems.append("history does not extend to the open end")
    return problems
