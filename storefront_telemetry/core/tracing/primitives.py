from typing import Any, Dict, Optional

from opentelemetry.trace import Span, SpanKind, Status, StatusCode, Tracer
from storefront_telemetry.core.utils.clock import millis_to_nanos

VIEW_SPAN_NAME = "emb-screen-view"
VIEW_SPAN_TYPE = "ux.view"


def status_for(success: bool) -> Status:
    return Status(StatusCode.OK) if success else Status(StatusCode.ERROR)


def start_view(tracer: Tracer, view_name: str) -> Span:
    """Open a span covering the time a screen is visible."""
    return tracer.start_span(
        VIEW_SPAN_NAME,
        kind=SpanKind.INTERNAL,
        attributes={"emb.type": VIEW_SPAN_TYPE, "view.name": view_name},
    )


def end_span(span: Span, success: bool = True, end_time_ms: Optional[int] = None) -> None:
    span.set_status(status_for(success))
    span.end(end_time=millis_to_nanos(end_time_ms) if end_time_ms is not None else None)


def record_completed_span(
    tracer: Tracer,
    name: str,
    start_time_ms: int,
    end_time_ms: int,
    attributes: Optional[Dict[str, Any]] = None,
    success: bool = True,
    kind: SpanKind = SpanKind.INTERNAL,
) -> None:
    """Emit an already-finished span with explicit timestamps."""
    span = tracer.start_span(
        name,
        kind=kind,
        attributes=dict(attributes or {}),
        start_time=millis_to_nanos(start_time_ms),
    )
    end_span(span, success, end_time_ms)
