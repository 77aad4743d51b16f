"""Tests for ConditionEvaluator"""
from datetime import date, datetime, timezone

import pytest

from approval_engine.domain.context import build_context
from approval_engine.domain.models import ABSENT, Condition, StepDefinition
from approval_engine.engine.condition_evaluator import ConditionEvaluator
from approval_engine.engine.step_resolver import StepResolver
from approval_engine.services.directory_service import StaticDirectory


@pytest.fixture
def evaluator():
    return ConditionEvaluator()


@pytest.fixture
def context():
    return build_context({
        "amount": 1500,
        "currency": "EUR",
        "urgent": True,
        "tags": ["travel", "client"],
        "submitted": datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc),
        "department": {"name": "Legal", "code": 42},
        "notes": None,
    })


def cond(field, operator, value):
    return Condition(field=field, operator=operator, value=value)


class TestEquality:

    def test_numbers_compare_numerically(self, evaluator, context):
        assert evaluator.evaluate(cond("amount", "equals", 1500.0), context)
        assert not evaluator.evaluate(cond("amount", "equals", "1500"), context)

    def test_strings_and_booleans(self, evaluator, context):
        assert evaluator.evaluate(cond("currency", "equals", "EUR"), context)
        assert evaluator.evaluate(cond("currency", "not_equals", "USD"), context)
        assert evaluator.evaluate(cond("urgent", "equals", True), context)
        assert not evaluator.evaluate(cond("urgent", "equals", 1), context)

    def test_lists_compare_element_wise(self, evaluator, context):
        assert evaluator.evaluate(cond("tags", "equals", ["travel", "client"]), context)
        assert not evaluator.evaluate(cond("tags", "equals", ["client", "travel"]), context)

    def test_iso_literal_matches_date(self, evaluator, context):
        assert evaluator.evaluate(cond("submitted", "equals", "2024-03-01T12:00:00Z"), context)

    def test_nested_path(self, evaluator, context):
        assert evaluator.evaluate(cond("department.name", "equals", "Legal"), context)

    def test_null_value(self, evaluator, context):
        assert evaluator.evaluate(cond("notes", "equals", None), context)
        assert not evaluator.evaluate(cond("notes", "equals", ABSENT), context)


class TestMissingFields:

    def test_missing_field_never_matches(self, evaluator, context):
        for operator, value in [
            ("equals", 1), ("not_equals", 1), ("greater_than", 1),
            ("less_than", 1), ("contains", "a"), ("in", [1]),
        ]:
            assert not evaluator.evaluate(cond("missing", operator, value), context)

    def test_absent_sentinel(self, evaluator, context):
        assert evaluator.evaluate(cond("missing", "equals", ABSENT), context)
        assert not evaluator.evaluate(cond("missing", "not_equals", ABSENT), context)
        assert evaluator.evaluate(cond("amount", "not_equals", ABSENT), context)
        assert not evaluator.evaluate(cond("amount", "equals", ABSENT), context)


class TestOrdering:

    def test_numbers(self, evaluator, context):
        assert evaluator.evaluate(cond("amount", "greater_than", 1000), context)
        assert not evaluator.evaluate(cond("amount", "less_than", 1000), context)
        assert evaluator.evaluate(cond("amount", "less_than", 1500.5), context)

    def test_dates(self, evaluator, context):
        assert evaluator.evaluate(cond("submitted", "greater_than", "2024-01-01"), context)
        assert evaluator.evaluate(cond("submitted", "less_than", "2024-12-31T00:00:00+00:00"), context)

    def test_iso_date_strings_compare_as_dates(self, evaluator):
        context = build_context({"due": "2024-06-01", "closed": "2024-06-01T10:00:00+02:00"})

        assert evaluator.evaluate(cond("due", "greater_than", "2024-01-01"), context)
        assert not evaluator.evaluate(cond("due", "less_than", "2024-01-01"), context)
        assert evaluator.evaluate(cond("closed", "less_than", "2024-06-01T09:00:00Z"), context)
        assert evaluator.evaluate(cond("due", "less_than", date(2024, 7, 1)), context)
        assert not evaluator.evaluate(cond("due", "greater_than", 5), context)

    def test_json_context_date_condition_selects_step(self, evaluator):
        steps = [
            StepDefinition(
                step_number=0, name="late", approver_ids=["a"],
                conditions=[{"field": "due", "operator": "greater_than", "value": "2024-01-01"}]
            ),
            StepDefinition(step_number=1, name="always", approver_ids=["a"]),
        ]
        resolver = StepResolver(StaticDirectory(), condition_evaluator=evaluator)

        applicable = resolver.resolve_applicable_steps(steps, build_context({"due": "2024-06-01"}))

        assert [s.step_number for s in applicable] == [0, 1]

    def test_incomparable_operands_fail_closed(self, evaluator, context):
        assert not evaluator.evaluate(cond("currency", "greater_than", "A"), context)
        assert not evaluator.evaluate(cond("urgent", "greater_than", False), context)
        assert not evaluator.evaluate(cond("amount", "greater_than", "lots"), context)
        assert not evaluator.evaluate(cond("submitted", "greater_than", "not a date"), context)
        assert not evaluator.evaluate(cond("amount", "greater_than", {"x": 1}), context)


class TestMembership:

    def test_contains_substring(self, evaluator, context):
        assert evaluator.evaluate(cond("currency", "contains", "UR"), context)
        assert not evaluator.evaluate(cond("currency", "contains", 5), context)

    def test_contains_list_member(self, evaluator, context):
        assert evaluator.evaluate(cond("tags", "contains", "client"), context)
        assert not evaluator.evaluate(cond("tags", "contains", "internal"), context)

    def test_contains_on_number_is_false(self, evaluator, context):
        assert not evaluator.evaluate(cond("amount", "contains", 1), context)

    def test_in(self, evaluator, context):
        assert evaluator.evaluate(cond("currency", "in", ["USD", "EUR"]), context)
        assert evaluator.evaluate(cond("amount", "in", [1500, 2000]), context)
        assert not evaluator.evaluate(cond("currency", "in", ["USD"]), context)

    def test_in_requires_list(self):
        with pytest.raises(ValueError):
            Condition(field="currency", operator="in", value="EUR")


class TestEvaluateAll:

    def test_empty_conditions_hold(self, evaluator, context):
        assert evaluator.evaluate_all([], context)

    def test_conditions_are_anded(self, evaluator, context):
        conditions = [cond("amount", "greater_than", 1000), cond("currency", "equals", "EUR")]
        assert evaluator.evaluate_all(conditions, context)

        conditions.append(cond("urgent", "equals", False))
        assert not evaluator.evaluate_all(conditions, context)

    def test_explain_returns_seen_value(self, evaluator, context):
        holds, seen = evaluator.explain(cond("department.code", "equals", 42), context)
        assert holds
        assert seen == 42

    def test_date_values_are_tagged(self, evaluator):
        context = build_context({"due": date(2024, 5, 1)})
        assert evaluator.evaluate(cond("due", "equals", "2024-05-01"), context)
