"""Tests for request context tagging"""
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from approval_engine.domain.context import ContextValue, build_context
from approval_engine.domain.enums import ValueKind
from approval_engine.domain.errors import ValidationError


def test_nested_mappings_are_flattened():
    context = build_context({"expense": {"amount": 5, "currency": "EUR"}, "urgent": True})

    assert set(context) == {"expense.amount", "expense.currency", "urgent"}
    assert context["expense.amount"].kind == ValueKind.NUMBER
    assert context["urgent"].kind == ValueKind.BOOLEAN


def test_value_kinds():
    assert ContextValue.of(None).kind == ValueKind.NULL
    assert ContextValue.of(Decimal("1.5")).value == 1.5
    assert ContextValue.of(date(2024, 1, 1)).value == datetime(2024, 1, 1, tzinfo=timezone.utc)
    tags = ContextValue.of(["a", 1])
    assert tags.kind == ValueKind.LIST
    assert tags.to_python() == ["a", 1]


def test_stored_dates_are_restored_from_iso_strings():
    value = ContextValue.model_validate({"kind": "DATE", "value": "2024-01-01T00:00:00Z"})

    assert value.value == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_unsupported_leaf_type():
    with pytest.raises(ValidationError) as exc_info:
        build_context({"blob": object()})
    assert exc_info.value.details["field"] == "blob"


def test_non_string_key():
    with pytest.raises(ValidationError):
        build_context({1: "x"})


def test_empty_context():
    assert build_context(None) == {}
