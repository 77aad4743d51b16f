"""Tests for time utilities"""
from datetime import datetime, timedelta, timezone

from approval_engine.utils.time import add_hours, ensure_utc, format_iso, is_overdue, parse_iso

T = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


def test_naive_datetimes_are_treated_as_utc():
    assert ensure_utc(datetime(2024, 1, 1, 9, 0)) == T


def test_iso_round_trip():
    assert format_iso(T) == "2024-01-01T09:00:00Z"
    assert parse_iso("2024-01-01T09:00:00Z") == T
    assert parse_iso("2024-01-01T10:00:00+01:00") == T


def test_fractional_hours():
    assert add_hours(T, 0.5) == T + timedelta(minutes=30)


def test_is_overdue_is_strict():
    assert not is_overdue(None, T)
    assert not is_overdue(T, T)
    assert is_overdue(T, T + timedelta(seconds=1))
