from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from histomerge.domain.history import verify_history
from histomerge.domain.model import OPEN_END, HistoryVersion
from tests.helpers.records import at

if TYPE_CHECKING:
    from datetime import datetime


def _version(
    number: int,
    valid_from: datetime,
    valid_to: datetime = OPEN_END,
    *,
    is_current: bool | None = None,
) -> HistoryVersion:
    return HistoryVersion(
        entity_type="customer",
        master_id="K1",
        version_number=number,
        version_fields={"rating": number},
        content_hash=f"hash-{number}",
        valid_from=valid_from,
        valid_to=valid_to,
        is_current=valid_to == OPEN_END if is_current is None else is_current,
        opened_batch_id=f"b{number}",
    )


def test_contiguous_history_is_sound() -> None:
    history = [_version(1, at(0), at(10)), _version(2, at(10), at(20)), _version(3, at(20))]

    assert verify_history(history) == []
    assert verify_history([]) == []


def test_problems_are_reported_regardless_of_row_order() -> None:
    history = [_version(2, at(10)), _version(1, at(0), at(10))]

    assert verify_history(history) == []


@pytest.mark.parametrize(
    ("history", "problem"),
    [
        (
            [_version(1, at(0), at(5)), _version(2, at(10))],
            "gap between version 1 and 2",
        ),
        (
            [_version(1, at(0), at(15)), _version(2, at(10))],
            "version 1 overlaps 2",
        ),
        (
            [_version(1, at(0), is_current=True), _version(2, at(10))],
            "expected exactly one current version, found 2",
        ),
        (
            [_version(1, at(0), at(10)), _version(2, at(10), at(20), is_current=True)],
            "current version 2 is closed",
        ),
        (
            [_version(1, at(0), at(10))],
            "history does not extend to the open end",
        ),
        (
            [_version(1, at(0), at(0), is_current=False), _version(2, at(0))],
            "version 1 has an empty interval",
        ),
        (
            [_version(1, at(0), is_current=False)],
            "superseded version 1 is still open",
        ),
    ],
)
def test_violations_are_named(history: list[HistoryVersion], problem: str) -> None:
    problems = verify_history(history)

    assert any(problem in found for found in problems), problems
