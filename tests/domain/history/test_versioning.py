from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from histomerge.domain.errors import HistoryConsistencyError
from histomerge.domain.history import (
    KeepVersion,
    OpenFirstVersion,
    SupersedeVersion,
    TemporalVersioningStore,
    plan_transition,
    verify_history,
)
from histomerge.domain.model import OPEN_END, CanonicalRecord, MatchMethod, VersionEffect
from histomerge.domain.reconciliation import content_hash
from tests.helpers.fakes import InMemoryHistoryRepository
from tests.helpers.records import at, make_context

if TYPE_CHECKING:
    from histomerge.domain.model import HistoryVersion


def _canonical(rating: int, *, master_id: str = "K1", batch_id: str = "b1") -> CanonicalRecord:
    fields: dict[str, object] = {"name": "Ada", "rating": rating}
    return CanonicalRecord(
        entity_type="customer",
        master_id=master_id,
        fields=fields,
        source_of_each_field={"name": "crm", "rating": "crm"},
        quality_score=50,
        quality_issues=(),
        content_hash=content_hash(fields),
        batch_id=batch_id,
        match_method=MatchMethod.EXACT,
        match_confidence=100,
    )


@pytest.fixture
def repository() -> InMemoryHistoryRepository:
    return InMemoryHistoryRepository()


@pytest.fixture
def store(repository: InMemoryHistoryRepository) -> TemporalVersioningStore:
    return TemporalVersioningStore(repository)


def test_first_sighting_opens_version_one(
    store: TemporalVersioningStore, repository: InMemoryHistoryRepository
) -> None:
    effect = store.apply(_canonical(30), make_context("b1"))

    assert effect is VersionEffect.NEW_ENTITY
    (version,) = repository.rows
    assert version.version_number == 1
    assert version.valid_from == at(0)
    assert version.valid_to == OPEN_END
    assert version.is_current
    assert version.opened_batch_id == "b1"
    assert version.version_fields == {"name": "Ada", "rating": 30}


def test_changed_content_supersedes_current_version(
    store: TemporalVersioningStore, repository: InMemoryHistoryRepository
) -> None:
    store.apply(_canonical(30), make_context("b1"))

    effect = store.apply(_canonical(50, batch_id="b2"), make_context("b2", hours=24))

    assert effect is VersionEffect.NEW_VERSION
    first, second = repository.history("customer", "K1")
    assert first.valid_to == at(24)
    assert not first.is_current
    assert first.closed_batch_id == "b2"
    assert second.version_number == 2
    assert second.valid_from == at(24)
    assert second.is_current
    assert second.version_fields["rating"] == 50
    assert [version.version_number for version in store.current_versions("customer")] == [2]
    assert verify_history(repository.rows) == []
    assert repository.flushes == 1


def test_unchanged_content_is_a_no_op(
    store: TemporalVersioningStore, repository: InMemoryHistoryRepository
) -> None:
    store.apply(_canonical(30), make_context("b1"))

    effect = store.apply(_canonical(30, batch_id="b2"), make_context("b2", hours=24))

    assert effect is VersionEffect.NO_CHANGE
    assert len(repository.rows) == 1
    assert repository.rows[0].is_current


def test_as_of_returns_the_version_valid_at_that_moment(store: TemporalVersioningStore) -> None:
    store.apply(_canonical(30), make_context("b1"))
    store.apply(_canonical(50, batch_id="b2"), make_context("b2", hours=24))

    before = store.as_of("customer", "K1", at(-1))
    first = store.as_of("customer", "K1", at(23))
    boundary = store.as_of("customer", "K1", at(24))

    assert before is None
    assert first is not None
    assert first.version_number == 1
    assert boundary is not None
    assert boundary.version_number == 2


def test_replaying_an_older_batch_with_matching_content_changes_nothing(
    store: TemporalVersioningStore, repository: InMemoryHistoryRepository
) -> None:
    store.apply(_canonical(30), make_context("b1"))
    store.apply(_canonical(50, batch_id="b2"), make_context("b2", hours=24))

    effect = store.apply(_canonical(30), make_context("b1"))

    assert effect is VersionEffect.NO_CHANGE
    assert len(repository.rows) == 2


def test_replaying_an_older_batch_with_other_content_is_rejected(
    store: TemporalVersioningStore, repository: InMemoryHistoryRepository
) -> None:
    store.apply(_canonical(30), make_context("b1"))
    store.apply(_canonical(50, batch_id="b2"), make_context("b2", hours=24))

    with pytest.raises(HistoryConsistencyError) as excinfo:
        store.apply(_canonical(99), make_context("b1"))

    assert excinfo.value.master_id == "K1"
    assert len(repository.rows) == 2
    assert verify_history(repository.rows) == []


def test_planner_refuses_to_extend_a_broken_history(
    store: TemporalVersioningStore, repository: InMemoryHistoryRepository
) -> None:
    store.apply(_canonical(30), make_context("b1"))
    store.apply(_canonical(50, batch_id="b2"), make_context("b2", hours=24))
    repository.rows[0].is_current = True

    with pytest.raises(HistoryConsistencyError, match="exactly one current version"):
        store.apply(_canonical(70, batch_id="b3"), make_context("b3", hours=48))


def test_planned_transitions_are_tagged() -> None:
    history: list[HistoryVersion] = []
    first = plan_transition(_canonical(30), history, make_context("b1"))
    assert isinstance(first, OpenFirstVersion)

    history = [first.version]
    unchanged = plan_transition(_canonical(30), history, make_context("b2", hours=1))
    assert isinstance(unchanged, KeepVersion)

    change = plan_transition(_canonical(31), history, make_context("b2", hours=1))
    assert isinstance(change, SupersedeVersion)
    assert change.current is first.version
    assert change.successor.version_number == 2
    # planning alone never closes the current version
    assert first.version.is_current
    assert first.version.valid_to == OPEN_END
