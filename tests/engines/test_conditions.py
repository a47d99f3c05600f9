"""
Tests for the condition evaluator.

Covers:
- dotted field resolution, missing fields fail closed
- strict equality (numbers by value, booleans and strings by type)
- ordering operators: numbers and numeric strings, NaN never matches
- in / nin membership
- malformed conditions: ConfigurationError from evaluate_condition,
  logged no-match from matches
"""

from decimal import Decimal

import pytest

from quote_engines.conditions import (
    evaluate_condition,
    matches,
    matches_all,
    resolve_field,
)
from quote_engines.workflow_selector import select_workflow
from quote_kernel.domain.approval import (
    ApprovalCondition,
    ApprovalLevel,
    ApprovalWorkflow,
    ConditionOperator,
)
from quote_kernel.exceptions import ConfigurationError


def cond(field, operator, value=None) -> ApprovalCondition:
    return ApprovalCondition(field, operator, value)


QUOTATION = {
    "id": "Q-1",
    "totalAmount": 150000,
    "discount": Decimal("12.5"),
    "customerType": "DISTRIBUTOR",
    "customer": {"customerType": "END_USER", "country": "DE"},
    "urgent": False,
    "notes": None,
}


class TestResolveField:

    def test_top_level_field(self):
        assert resolve_field(QUOTATION, "totalAmount") == 150000

    def test_dotted_path(self):
        assert resolve_field(QUOTATION, "customer.customerType") == "END_USER"

    def test_explicit_none_is_returned(self):
        assert resolve_field(QUOTATION, "notes") is None

    def test_missing_segment_does_not_match_anything(self):
        assert matches(cond("customer.segment", "eq", "X"), QUOTATION) is False
        assert matches(cond("nothing.here", "ne", "X"), QUOTATION) is False


class TestEquality:

    def test_eq_number_by_value(self):
        assert matches(cond("totalAmount", "eq", 150000.0), QUOTATION)
        assert matches(cond("discount", "eq", 12.5), QUOTATION)

    def test_eq_no_coercion_between_string_and_number(self):
        assert not matches(cond("totalAmount", "eq", "150000"), QUOTATION)

    def test_bool_never_equals_number(self):
        assert not matches(cond("urgent", "eq", 0), QUOTATION)
        assert matches(cond("urgent", "eq", False), QUOTATION)

    def test_ne(self):
        assert matches(cond("customerType", "ne", "END_USER"), QUOTATION)
        assert not matches(cond("customerType", "ne", "DISTRIBUTOR"), QUOTATION)

    def test_eq_none_matches_explicit_none(self):
        assert matches(cond("notes", "eq", None), QUOTATION)


class TestOrdering:

    @pytest.mark.parametrize(
        "operator, value, expected",
        [
            ("gt", 149999, True),
            ("gt", 150000, False),
            ("gte", 150000, True),
            ("lt", 150001, True),
            ("lt", 150000, False),
            ("lte", 150000, True),
        ],
    )
    def test_numeric_boundaries(self, operator, value, expected):
        assert matches(cond("totalAmount", operator, value), QUOTATION) is expected

    def test_decimal_against_float(self):
        assert matches(cond("discount", "gt", 12.49), QUOTATION)

    def test_non_numeric_actual_does_not_match(self):
        assert not matches(cond("customerType", "gt", 1), QUOTATION)

    def test_non_numeric_expected_does_not_match(self):
        assert not matches(cond("totalAmount", "gte", "a lot"), QUOTATION)

    def test_numeric_string_total_is_compared_by_value(self):
        snapshot = {"totalAmount": "150000.00"}

        assert matches(cond("totalAmount", "gte", 100000), snapshot)
        assert not matches(cond("totalAmount", "lt", 100000), snapshot)
        assert matches(cond("totalAmount", "gte", "100000"), QUOTATION)

    @pytest.mark.parametrize("total", ["", "150k", "NaN", "Infinity", True])
    def test_non_numeric_or_infinite_total_does_not_match(self, total):
        snapshot = {"totalAmount": total}

        assert not matches(cond("totalAmount", "gte", 0), snapshot)
        assert not matches(cond("totalAmount", "lt", 10**9), snapshot)

    def test_bool_is_not_numeric(self):
        assert not matches(cond("urgent", "lt", 1), QUOTATION)

    def test_nan_never_matches(self):
        snapshot = {"totalAmount": float("nan")}
        assert not matches(cond("totalAmount", "gt", 0), snapshot)
        assert not matches(cond("totalAmount", "lte", 0), snapshot)


class TestMembership:

    def test_in(self):
        assert matches(cond("customerType", "in", ["DISTRIBUTOR", "WHOLESALE"]), QUOTATION)
        assert not matches(cond("customerType", "in", ["END_USER"]), QUOTATION)

    def test_nin(self):
        assert matches(cond("customer.country", "nin", ["US", "CA"]), QUOTATION)
        assert not matches(cond("customer.country", "nin", ["DE"]), QUOTATION)

    def test_in_uses_strict_equality(self):
        assert matches(cond("totalAmount", "in", [150000.0]), QUOTATION)
        assert not matches(cond("totalAmount", "in", ["150000"]), QUOTATION)


class TestMalformedConditions:

    def test_unknown_operator_raises_from_evaluate(self):
        with pytest.raises(ConfigurationError):
            evaluate_condition(cond("totalAmount", "between", [1, 2]), QUOTATION)

    def test_in_with_scalar_value_raises_from_evaluate(self):
        with pytest.raises(ConfigurationError):
            evaluate_condition(cond("customerType", "in", "DISTRIBUTOR"), QUOTATION)

    def test_malformed_condition_is_logged_and_does_not_match(self, captured_logs):
        assert matches(cond("totalAmount", "~=", 1), QUOTATION, workflow_id="wf-bad") is False

        records = [
            r for r in captured_logs.records
            if r["message"] == "condition_configuration_error"
        ]
        assert len(records) == 1
        assert records[0]["workflow_id"] == "wf-bad"
        assert records[0]["level"] == "WARNING"

    @pytest.mark.parametrize("field", [123, None, "", "  "])
    def test_non_string_field_raises_from_evaluate(self, field):
        with pytest.raises(ConfigurationError):
            evaluate_condition(cond(field, "gte", 100000), QUOTATION)

    def test_non_string_field_does_not_break_selection(self, captured_logs):
        workflow = ApprovalWorkflow(
            id="wf-bad-field",
            name="Bad field",
            conditions=(cond(123, "gte", 100000),),
            levels=(ApprovalLevel(level=1, name="L1", approver_user_ids=("alice",)),),
        )

        assert select_workflow(QUOTATION, [workflow]) is None
        assert "condition_configuration_error" in captured_logs.messages()

    def test_operator_is_case_insensitive(self):
        assert matches(cond("totalAmount", "GTE", 100000), QUOTATION)
        assert matches(cond("totalAmount", ConditionOperator.GTE, 100000), QUOTATION)


class TestMatchesAll:

    def test_empty_conditions_match(self):
        assert matches_all((), QUOTATION)

    def test_and_semantics(self):
        both = (
            cond("totalAmount", "gte", 100000),
            cond("customerType", "eq", "DISTRIBUTOR"),
        )
        one_fails = (
            cond("totalAmount", "gte", 100000),
            cond("customerType", "eq", "END_USER"),
        )
        assert matches_all(both, QUOTATION)
        assert not matches_all(one_fails, QUOTATION)
