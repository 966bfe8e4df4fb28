"""
Tracing support (OpenTelemetry API).

Without an SDK configured the tracer is a no-op, so spans cost nothing in
development and tests.
"""
from contextlib import contextmanager
from typing import Any, Dict, Optional

from opentelemetry import trace
from opentelemetry.trace import SpanKind, Status, StatusCode

tracer = trace.get_tracer('apps.ledger')

_SPAN_KINDS = {
    'server': SpanKind.SERVER,
    'client': SpanKind.CLIENT,
    'internal': SpanKind.INTERNAL,
}


def _attribute_value(value):
    if isinstance(value, (str, bool, int, float)):
        return value
    return str(value)


@contextmanager
def trace_span(
    name: str,
    kind: Optional[str] = None,
    attributes: Optional[Dict[str, Any]] = None
):
    """
    Context manager for creating trace spans.

    Usage:
        with trace_span('invoice.create', attributes={'patient_id': str(patient_id)}):
            ...
    """
    with tracer.start_as_current_span(
        name, kind=_SPAN_KINDS.get(kind, SpanKind.INTERNAL)
    ) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, _attribute_value(value))
        try:
            yield span
        except Exception as e:
            span.set_attribute('error', True)
            span.set_attribute('error.type', e.__class__.__name__)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise


def add_span_attribute(key: str, value: Any):
    """Add attribute to the current span if it is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attribute(key, _attribute_value(value))
