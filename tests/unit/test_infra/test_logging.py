"""Tests for JSON log formatting and the request context filter."""

from __future__ import annotations

import json
import logging

import pytest

from edu_gateway.infra.logging import (
    ContextInjectingFilter,
    JSONFormatter,
    clear_log_context,
    mask_identity,
    set_log_context,
)


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "edu_gateway.test", logging.WARNING, __file__, 1, "Rate limit %s", ("exceeded",), None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.parametrize(
    ("identity", "expected"),
    [
        ("auth:ada@example.com:10.0.0.1", "auth:a***@example.com:10.0.0.1"),
        ("auth:ada@example.com:::1", "auth:a***@example.com:::1"),
        ("auth::10.0.0.1", "auth::10.0.0.1"),
        ("ip:10.0.0.1", "ip:10.0.0.1"),
        (42, 42),
    ],
)
def test_mask_identity(identity, expected) -> None:
    assert mask_identity(identity) == expected


def test_json_formatter_output() -> None:
    formatter = JSONFormatter(static={"service": "edu-gateway"})

    line = formatter.format(make_record(key="auth:ada@example.com:10.0.0.1", policy="auth"))

    data = json.loads(line)
    assert "\n" not in line
    assert data["level"] == "WARNING"
    assert data["message"] == "Rate limit exceeded"
    assert data["service"] == "edu-gateway"
    assert data["policy"] == "auth"
    assert data["key"] == "auth:a***@example.com:10.0.0.1"
    assert data["timestamp"].endswith("Z")
    assert "trace_id" not in data
    assert "lineno" not in data


def test_context_filter_injects_without_overriding() -> None:
    set_log_context(request_id="abc-123", path="/api/users")
    try:
        record = make_record(path="/explicit")
        assert ContextInjectingFilter().filter(record) is True
    finally:
        clear_log_context()

    assert record.request_id == "abc-123"
    assert record.path == "/explicit"
