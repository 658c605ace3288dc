"""
Tracing primitives layered on the OpenTelemetry API.

    from storefront_telemetry.core.tracing import record_completed_span, start_view

    span = start_view(tracer, "ProductList")
    ...
    span.end()

    record_completed_span(tracer, "add_to_cart", start_ms, end_ms, {"product.id": "p1"})
"""

from .primitives import (
    VIEW_SPAN_NAME,
    VIEW_SPAN_TYPE,
    end_span,
    record_completed_span,
    start_view,
    status_for,
)
from .session_span_processor import SESSION_ID_ATTRIBUTE, SessionSpanProcessor

__all__ = [
    "VIEW_SPAN_NAME",
    "VIEW_SPAN_TYPE",
    "SESSION_ID_ATTRIBUTE",
    "SessionSpanProcessor",
    "end_span",
    "record_completed_span",
    "start_view",
    "status_for",
]
