"""Tests for structured logging"""
import json
import logging

from approval_engine.utils.logger import JsonFormatter, set_correlation_id


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("approval_engine.engine", logging.INFO, __file__, 1, "Step 0 resolved", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_known_extras():
    set_correlation_id("COR-test")

    payload = json.loads(JsonFormatter().format(make_record(instance_id="APR-1", step_number=0, secret="x")))

    assert payload["message"] == "Step 0 resolved"
    assert payload["level"] == "INFO"
    assert payload["correlation_id"] == "COR-test"
    assert payload["instance_id"] == "APR-1"
    assert payload["step_number"] == 0
    assert "secret" not in payload
    assert payload["timestamp"].endswith("Z")


def test_record_correlation_id_wins():
    set_correlation_id("COR-context")

    payload = json.loads(JsonFormatter().format(make_record(correlation_id="COR-record")))

    assert payload["correlation_id"] == "COR-record"
