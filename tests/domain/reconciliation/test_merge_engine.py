from __future__ import annotations

from dataclasses import replace
from types import MappingProxyType
from typing import TYPE_CHECKING

import pytest

from histomerge.domain.model import MatchMethod
from histomerge.domain.reconciliation import (
    SourceMapping,
    content_hash,
    merge,
    resolve_identities,
    validate_policy,
)
from tests.helpers.records import at, customer_schema, make_context, make_record

if TYPE_CHECKING:
    from histomerge.domain.model import SourceRecord
    from histomerge.domain.reconciliation import MergeResult
    from histomerge.domain.schema import EntitySchema


def _merge_one(records: list[SourceRecord], schema: EntitySchema) -> MergeResult:
    policy = validate_policy(schema.policy)
    (group,) = resolve_identities(records, policy)
    return merge(group, policy, schema=schema, context=make_context())


def test_agreeing_sources_produce_no_conflict() -> None:
    schema = customer_schema()
    result = _merge_one(
        [make_record("crm", "K1", rating=30), make_record("erp", "K1", rating=30)], schema
    )

    assert result.conflicts == ()
    assert result.record.fields["rating"] == 30
    assert result.record.match_method is MatchMethod.EXACT


def test_merge_fields_keeps_primary_and_logs_the_disagreement() -> None:
    schema = customer_schema(rule="merge_fields")
    result = _merge_one(
        [make_record("crm", "K2", rating=40), make_record("erp", "K2", rating=60)], schema
    )

    assert result.record.fields["rating"] == 40
    assert result.record.source_of_each_field["rating"] == "crm"
    (conflict,) = result.conflicts
    assert conflict.field_name == "rating"
    assert conflict.primary_value == 40
    assert conflict.fallback_value == 60
    assert conflict.resolved_value == 40
    assert conflict.resolution_rule == "merge_fields:keep_primary"
    assert conflict.batch_id == "b1"
    assert conflict.logged_at == make_context().batch_time


@pytest.mark.parametrize(
    ("tie_break", "expected"),
    [
        ("keep_primary", 40),
        ("keep_fallback", 60),
        ("most_recent", 60),
        ("higher_quality", 60),
    ],
)
def test_merge_fields_tie_breaks(tie_break: str, expected: int) -> None:
    schema = customer_schema(rule="merge_fields", tie_break=tie_break)
    records = [
        make_record("crm", "K2", rating=40, captured_at=at(0)),
        make_record("erp", "K2", rating=60, name="Ada", captured_at=at(1)),
    ]

    result = _merge_one(records, schema)

    assert result.record.fields["rating"] == expected
    assert len(result.conflicts) == 1


def test_prefer_primary_fills_gaps_from_fallback() -> None:
    schema = customer_schema()
    result = _merge_one(
        [
            make_record("crm", "K1", name="Ada", email=""),
            make_record("erp", "K1", name="Ada Lovelace", email="ada@example.com"),
        ],
        schema,
    )

    assert result.record.fields["name"] == "Ada"
    assert result.record.fields["email"] == "ada@example.com"
    assert result.record.source_of_each_field == {
        "name": "crm",
        "email": "erp",
        "rating": None,
        "country": None,
    }
    assert [conflict.field_name for conflict in result.conflicts] == ["name"]


def test_substitution_that_lowers_quality_is_rejected() -> None:
    schema = customer_schema()
    result = _merge_one(
        [
            make_record("crm", "K1", name="Ada"),
            make_record("erp", "K1", email="not-an-email"),
        ],
        schema,
    )

    assert result.record.fields["email"] is None
    assert result.record.source_of_each_field["email"] is None
    assert "Rejected substitution for email" in result.record.quality_issues
    assert result.record.quality_score == 30


def test_field_source_override_prefers_fallback_for_that_field() -> None:
    schema = customer_schema(field_sources={"email": "erp"})
    result = _merge_one(
        [
            make_record("crm", "K1", name="Ada", email="old@example.com"),
            make_record("erp", "K1", name="Ada L.", email="new@example.com"),
        ],
        schema,
    )

    assert result.record.fields["name"] == "Ada"
    assert result.record.fields["email"] == "new@example.com"
    conflicts = {conflict.field_name: conflict for conflict in result.conflicts}
    assert conflicts["email"].primary_value == "old@example.com"
    assert conflicts["email"].resolved_value == "new@example.com"


def test_most_recent_rule_takes_latest_delivery() -> None:
    schema = customer_schema(rule="most_recent")
    result = _merge_one(
        [
            make_record("crm", "K1", name="Ada", rating=10, captured_at=at(5)),
            make_record("erp", "K1", name="Ada L.", captured_at=at(9)),
        ],
        schema,
    )

    assert result.record.fields["name"] == "Ada L."
    # erp has no rating, the older crm value still fills the gap
    assert result.record.fields["rating"] == 10
    assert result.record.captured_at == at(9)


def test_single_source_ignores_other_sources_and_logs_nothing() -> None:
    schema = customer_schema(rule="single_source")
    result = _merge_one(
        [
            make_record("crm", "K1", name="Ada"),
            make_record("erp", "K1", name="Someone else", email="x@example.com"),
        ],
        schema,
    )

    assert result.record.fields == {"name": "Ada", "email": None, "rating": None, "country": None}
    assert result.conflicts == ()


def test_latest_delivery_per_source_represents_that_source() -> None:
    schema = customer_schema(rule="merge_fields")
    result = _merge_one(
        [
            make_record("crm", "K1", rating=10, captured_at=at(0)),
            make_record("crm", "K1", rating=20, captured_at=at(3)),
            make_record("erp", "K1", rating=20, captured_at=at(1)),
        ],
        schema,
    )

    assert result.record.fields["rating"] == 20
    assert result.conflicts == ()


def test_three_sources_disagreeing_give_one_entry_per_field() -> None:
    schema = customer_schema(rule="merge_fields")
    result = _merge_one(
        [
            make_record("crm", "K1", rating=1, name="A"),
            make_record("erp", "K1", rating=2, name="B"),
            make_record("web", "K1", rating=3, name="C"),
        ],
        schema,
    )

    assert sorted(conflict.field_name for conflict in result.conflicts) == ["name", "rating"]


def test_merge_is_deterministic_and_hashes_tracked_fields() -> None:
    schema = customer_schema(rule="merge_fields")
    records = [
        make_record("crm", "K1", name="Ada", rating=40, country="DE"),
        make_record("erp", "K1", name="Ada", rating=60, country="FR"),
    ]

    first = _merge_one(records, schema)
    second = _merge_one(list(reversed(records)), schema)

    assert first == second
    assert first.record.content_hash == content_hash(
        first.record.fields, ("name", "email", "rating")
    )

    untracked_change = _merge_one(
        [
            make_record("crm", "K1", name="Ada", rating=40, country="US"),
            make_record("erp", "K1", name="Ada", rating=60, country="FR"),
        ],
        schema,
    )
    assert untracked_change.record.content_hash == first.record.content_hash


def _erp_mapped(schema: EntitySchema) -> EntitySchema:
    erp = SourceMapping(
        source_id="erp",
        field_map=MappingProxyType({"score": "rating", "land": "country"}),
        code_map=MappingProxyType({"country": MappingProxyType({"276": "DE", "250": "FR"})}),
    )
    return replace(schema, source_mappings=MappingProxyType({"erp": erp}))


def test_renamed_source_fields_take_part_in_the_merge() -> None:
    schema = _erp_mapped(customer_schema(rule="merge_fields"))
    result = _merge_one(
        [
            make_record("crm", "K1", name="Ada", rating=40),
            make_record("erp", "K1", name="Ada", score=60, rating="stale"),
        ],
        schema,
    )

    assert result.record.fields["rating"] == 40
    (conflict,) = result.conflicts
    assert conflict.field_name == "rating"
    assert conflict.fallback_value == 60


def test_translated_codes_agree_with_the_primary_value() -> None:
    schema = _erp_mapped(customer_schema(rule="merge_fields"))
    result = _merge_one(
        [
            make_record("crm", "K1", name="Ada", country="DE"),
            make_record("erp", "K1", name="Ada", land=276),
        ],
        schema,
    )

    assert result.record.fields["country"] == "DE"
    assert result.conflicts == ()


def test_unknown_codes_pass_through_untranslated() -> None:
    schema = _erp_mapped(customer_schema())
    result = _merge_one(
        [make_record("crm", "K1", name="Ada"), make_record("erp", "K1", land="999")],
        schema,
    )

    assert result.record.fields["country"] == "999"
    assert result.record.source_of_each_field["country"] == "erp"


def test_mapping_onto_undeclared_fields_is_rejected() -> None:
    erp = SourceMapping(source_id="erp", field_map=MappingProxyType({"score": "points"}))

    with pytest.raises(ValueError, match="onto undeclared fields"):
        replace(customer_schema(), source_mappings=MappingProxyType({"erp": erp}))
