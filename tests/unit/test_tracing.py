"""
Unit tests for trace id binding and its appearance in JSON logs.
"""

import json
import logging

from telemetry_service.common.tracing import (
    TRACE_ID_HEADER,
    TraceIdFilter,
    get_trace_id,
    trace_context,
    with_trace_header,
)
from telemetry_service.config.logging_config import ProductionFormatter


def make_record(message="hello"):
    return logging.LogRecord("telemetry.test", logging.INFO, __file__, 1, message, None, None)


def test_context_binds_and_restores():
    assert get_trace_id() is None

    with trace_context("abc123") as trace_id:
        assert trace_id == "abc123"
        assert get_trace_id() == "abc123"

        with trace_context("inner"):
            assert get_trace_id() == "inner"

        assert get_trace_id() == "abc123"

    assert get_trace_id() is None


def test_missing_trace_id_gets_a_fresh_one():
    with trace_context(None) as first, trace_context("") as second:
        assert len(first) == 32
        assert second != first


def test_header_added_only_when_bound():
    assert with_trace_header({"retry-count": "1"}) == {"retry-count": "1"}

    with trace_context("abc123"):
        assert with_trace_header() == {TRACE_ID_HEADER: "abc123"}
        # An id already on the message wins
        assert with_trace_header({TRACE_ID_HEADER: "upstream"}) == {TRACE_ID_HEADER: "upstream"}


def test_json_log_carries_trace_id():
    record = make_record()

    with trace_context("abc123"):
        TraceIdFilter().filter(record)

    body = json.loads(ProductionFormatter().format(record))
    assert body["trace_id"] == "abc123"
    assert body["message"] == "hello"


def test_json_log_without_trace():
    record = make_record()
    TraceIdFilter().filter(record)

    assert "trace_id" not in json.loads(ProductionFormatter().format(record))
