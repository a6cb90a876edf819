# =============================================================================
# File: telemetry_service/common/tracing.py
# Description: Trace id carried from the HTTP request through the event stream
# =============================================================================
"""
Trace id propagation.

A trace id is bound to the current task while a request or a stream record is
being handled. Outgoing stream records carry it as the `trace-id` header, the
consumer binds it again before handling the record, and dead letters keep it,
so one reading can be followed through every log line it produced.
"""

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Dict, Iterator, Optional

TRACE_ID_HEADER = "trace-id"
HTTP_TRACE_ID_HEADER = "X-Trace-Id"

_trace_id: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)


def new_trace_id() -> str:
    return uuid.uuid4().hex


def get_trace_id() -> Optional[str]:
    return _trace_id.get()


@contextmanager
def trace_context(trace_id: Optional[str] = None) -> Iterator[str]:
    """Bind `trace_id` (a fresh one when empty) for the enclosed block."""
    trace_id = trace_id or new_trace_id()
    token = _trace_id.set(trace_id)
    try:
        yield trace_id
    finally:
        _trace_id.reset(token)


def with_trace_header(headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Copy of `headers` with the bound trace id added, unless one is already set."""
    merged = dict(headers or {})
    trace_id = get_trace_id()
    if trace_id and TRACE_ID_HEADER not in merged:
        merged[TRACE_ID_HEADER] = trace_id
    return merged


class TraceIdFilter(logging.Filter):
    """Copies the bound trace id onto each record as `trace_id`."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "trace_id", None) is None:
            record.trace_id = get_trace_id()
        return True
