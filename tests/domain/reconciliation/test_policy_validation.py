from __future__ import annotations

import pytest

from histomerge.domain.errors import PolicyError
from histomerge.domain.model import ReconciliationRule, TieBreak
from histomerge.domain.reconciliation import validate_policy
from tests.helpers.records import customer_policy, customer_settings


def test_valid_policy_is_parsed_case_insensitively() -> None:
    policy = customer_policy(rule=" MERGE_FIELDS ", tie_break="Most_Recent")

    assert policy.rule is ReconciliationRule.MERGE_FIELDS
    assert policy.tie_break is TieBreak.MOST_RECENT
    assert policy.sources == ("crm", "erp")
    assert policy.describe() == "merge_fields:most_recent"


def test_unknown_rule_is_a_policy_error() -> None:
    with pytest.raises(PolicyError) as excinfo:
        validate_policy(customer_settings(rule="coin_flip"))

    assert excinfo.value.entity_type == "customer"
    assert "coin_flip" in str(excinfo.value)
    assert "prefer_primary" in str(excinfo.value)


def test_unknown_tie_break_is_a_policy_error() -> None:
    with pytest.raises(PolicyError, match="tie_break"):
        validate_policy(customer_settings(rule="merge_fields", tie_break="loudest"))


@pytest.mark.parametrize(
    ("primary", "fallback", "message"),
    [
        (None, "erp", "primary_source is missing"),
        ("  ", "erp", "primary_source is missing"),
        ("crm", None, "requires a fallback_source"),
        ("crm", "crm", "must differ"),
    ],
)
def test_source_configuration_errors(
    primary: str | None, fallback: str | None, message: str
) -> None:
    with pytest.raises(PolicyError, match=message):
        validate_policy(customer_settings(primary=primary, fallback=fallback))


def test_single_source_ignores_fallback() -> None:
    policy = customer_policy(rule="single_source", fallback="erp")

    assert policy.fallback_source is None
    assert policy.sources == ("crm",)
    assert policy.describe() == "single_source"


def test_field_sources_must_reference_policy_sources() -> None:
    with pytest.raises(PolicyError, match="unknown source 'billing'"):
        validate_policy(customer_settings(field_sources={"email": "billing"}))


def test_field_source_override_changes_precedence_for_that_field_only() -> None:
    policy = customer_policy(field_sources={"email": "erp"})

    assert policy.preferred_sources("email") == ("erp", "crm")
    assert policy.preferred_sources("name") == ("crm", "erp")
