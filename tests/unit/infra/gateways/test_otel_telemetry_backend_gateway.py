from unittest.mock import Mock

import pytest
from opentelemetry.sdk._logs.export import LogExporter
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import SpanKind, StatusCode
from storefront_telemetry.common.constants import CI_CRASH_GRACE_PERIOD_MS, CI_CRASH_MIN_DELAY_MS
from storefront_telemetry.common.dtos.telemetry import (
    HttpMethod,
    LogSeverity,
    NetworkErrorRecord,
    NetworkRequestRecord,
)
from storefront_telemetry.domain.exceptions import SimulatedCrashError
from storefront_telemetry.domain.services import TelemetryService
from storefront_telemetry.infra.gateways import OtelTelemetryBackendGateway
from storefront_telemetry.infra.gateways.otel_telemetry_backend_gateway import (
    BREADCRUMB_EVENT_NAME,
    PROPERTY_REMOVED_EVENT_NAME,
    SESSION_SPAN_NAME,
)


@pytest.fixture
def span_exporter():
    return InMemorySpanExporter()


@pytest.fixture
def log_exporter():
    return Mock(spec=LogExporter)


@pytest.fixture
def otel_gateway(telemetry_config, span_exporter, log_exporter) -> OtelTelemetryBackendGateway:
    return OtelTelemetryBackendGateway(
        telemetry_config,
        span_exporter=span_exporter,
        log_exporter=log_exporter,
        batch_export=False,
    )


def _spans_named(span_exporter, name):
    return [s for s in span_exporter.get_finished_spans() if s.name == name]


@pytest.mark.asyncio
@pytest.mark.parametrize("app_id", [None, "", "YOUR_IOS_APP_ID"])
async def test_initialize_requires_real_app_id(otel_gateway, app_id):
    assert await otel_gateway.initialize(app_id) is False
    assert otel_gateway.tracer_provider is None


@pytest.mark.asyncio
async def test_initialize_requires_endpoint_without_exporters(telemetry_config):
    gateway = OtelTelemetryBackendGateway(telemetry_config)
    assert await gateway.initialize("abc12") is False


@pytest.mark.asyncio
async def test_sends_before_initialize_fail(otel_gateway):
    result = otel_gateway.add_breadcrumb("EARLY")
    assert not result.ok
    assert result.error == "backend session not started"
    assert not otel_gateway.flush(1000).ok
    assert await otel_gateway.get_current_session_id() is None


@pytest.mark.asyncio
async def test_initialize_starts_session_and_persists_device_id(
    otel_gateway, telemetry_config, span_exporter, log_exporter, tmp_path
):
    assert await otel_gateway.initialize("abc12") is True
    assert otel_gateway.tracer_provider is not None

    session_id = await otel_gateway.get_current_session_id()
    device_id = await otel_gateway.get_device_id()
    assert session_id
    assert (tmp_path / "device_id").read_text() == device_id

    # A second run on the same machine reuses the device id
    next_run = OtelTelemetryBackendGateway(
        telemetry_config, span_exporter=span_exporter, log_exporter=log_exporter
    )
    assert await next_run.get_device_id() == device_id


@pytest.mark.asyncio
async def test_session_span_carries_breadcrumbs_properties_and_user(otel_gateway, span_exporter):
    await otel_gateway.initialize("abc12")
    session_id = await otel_gateway.get_current_session_id()

    assert otel_gateway.add_breadcrumb("APP_INITIALIZED").ok
    assert otel_gateway.add_session_property("app_version", "1.0.0", True).ok
    assert otel_gateway.add_session_property("cart_item_count", "2", False).ok
    assert otel_gateway.remove_session_property("cart_item_count").ok
    assert otel_gateway.set_user_identifier("user-1").ok
    assert otel_gateway.end_session().ok

    (session_span,) = _spans_named(span_exporter, SESSION_SPAN_NAME)
    assert session_span.attributes["session.id"] == session_id
    assert session_span.attributes["emb.properties.app_version"] == "1.0.0"
    assert session_span.attributes["user.id"] == "user-1"
    assert "emb.properties.cart_item_count" not in session_span.attributes
    events = [(e.name, dict(e.attributes)) for e in session_span.events]
    assert (BREADCRUMB_EVENT_NAME, {"message": "APP_INITIALIZED"}) in events
    assert (PROPERTY_REMOVED_EVENT_NAME, {"key": "cart_item_count"}) in events
    assert session_span.status.status_code == StatusCode.OK


@pytest.mark.asyncio
async def test_end_session_rolls_over_and_keeps_permanent_properties(
    otel_gateway, span_exporter
):
    await otel_gateway.initialize("abc12")
    first_session_id = await otel_gateway.get_current_session_id()
    otel_gateway.add_session_property("last_successful_order", "order-1", True)
    otel_gateway.add_session_property("cart_item_count", "2", False)

    otel_gateway.end_session()
    second_session_id = await otel_gateway.get_current_session_id()
    assert second_session_id != first_session_id

    assert otel_gateway.shutdown().ok
    first, second = _spans_named(span_exporter, SESSION_SPAN_NAME)
    assert second.attributes["session.id"] == second_session_id
    assert second.attributes["emb.properties.last_successful_order"] == "order-1"
    assert "emb.properties.cart_item_count" not in second.attributes


@pytest.mark.asyncio
async def test_network_records_become_client_spans(otel_gateway, span_exporter):
    await otel_gateway.initialize("abc12")

    otel_gateway.record_network_request(
        NetworkRequestRecord(
            url="https://api.test-storefront.com/v1/products",
            method=HttpMethod.GET,
            start_time=1_000,
            end_time=1_500,
            status_code=200,
            bytes_sent=0,
            bytes_received=512,
        )
    )
    otel_gateway.log_network_client_error(
        NetworkErrorRecord(
            url="https://api.test-storefront.com/v1/payments/process",
            method=HttpMethod.POST,
            start_time=2_000,
            end_time=3_500,
            error_type="api_error",
            error_message="Payment declined",
        )
    )

    (request_span,) = _spans_named(span_exporter, "emb-GET /v1/products")
    assert request_span.kind == SpanKind.CLIENT
    assert request_span.start_time == 1_000_000_000
    assert request_span.end_time == 1_500_000_000
    assert request_span.attributes["http.response.status_code"] == 200
    assert request_span.attributes["http.response.body.size"] == 512
    assert request_span.status.status_code == StatusCode.OK

    (error_span,) = _spans_named(span_exporter, "emb-POST /v1/payments/process")
    assert error_span.attributes["error.type"] == "api_error"
    assert error_span.attributes["error.message"] == "Payment declined"
    assert error_span.status.status_code == StatusCode.ERROR


@pytest.mark.asyncio
async def test_logs_are_exported(otel_gateway, log_exporter):
    await otel_gateway.initialize("abc12")

    assert otel_gateway.log_message("Purchase failed", LogSeverity.ERROR, {"a": "b"}, True).ok
    assert otel_gateway.log_handled_error(ValueError("bad card"), {}).ok
    assert log_exporter.export.call_count == 2


@pytest.mark.asyncio
async def test_flush_and_shutdown(otel_gateway, log_exporter):
    await otel_gateway.initialize("abc12")
    assert otel_gateway.flush(1000).ok
    assert otel_gateway.shutdown().ok
    log_exporter.shutdown.assert_called_once()

    assert not otel_gateway.add_breadcrumb("AFTER_SHUTDOWN").ok
    assert await otel_gateway.get_current_session_id() is None


@pytest.mark.asyncio
async def test_removed_property_is_not_exported(otel_gateway, span_exporter):
    await otel_gateway.initialize("abc12")
    otel_gateway.add_session_property("current_order_id", "order-9", False)
    otel_gateway.add_session_property("current_order_id", "order-10", False)
    otel_gateway.remove_session_property("current_order_id")
    otel_gateway.add_session_property("last_successful_order", "order-10", True)
    otel_gateway.end_session()

    (session_span,) = _spans_named(span_exporter, SESSION_SPAN_NAME)
    assert "emb.properties.current_order_id" not in session_span.attributes
    assert session_span.attributes["emb.properties.last_successful_order"] == "order-10"


@pytest.mark.asyncio
async def test_log_properties_may_reuse_reserved_names(otel_gateway, log_exporter):
    await otel_gateway.initialize("abc12")
    session_span_id = otel_gateway._session_span.get_span_context().span_id

    result = otel_gateway.log_message(
        "Screen viewed: Home", LogSeverity.INFO, {"name": "Home", "message": "hi"}, False
    )

    assert result.ok
    ((batch,), _) = log_exporter.export.call_args
    log_record = batch[0].log_record
    assert log_record.body == "Screen viewed: Home"
    assert log_record.severity_text == "INFO"
    assert log_record.span_id == session_span_id
    assert log_record.attributes["name"] == "Home"
    assert log_record.attributes["message"] == "hi"
    assert log_record.attributes["emb.escalated"] is False


@pytest.mark.asyncio
async def test_handled_error_carries_exception_attributes(otel_gateway, log_exporter):
    await otel_gateway.initialize("abc12")
    try:
        raise ValueError("bad card")
    except ValueError as e:
        assert otel_gateway.log_handled_error(e, {"order.id": "order-1"}).ok

    ((batch,), _) = log_exporter.export.call_args
    log_record = batch[0].log_record
    assert log_record.severity_text == "ERROR"
    assert log_record.attributes["exception.type"] == "ValueError"
    assert log_record.attributes["order.id"] == "order-1"
    assert "bad card" in log_record.attributes["exception.stacktrace"]


@pytest.mark.asyncio
async def test_scheduled_crash_exports_session_before_fault(
    ci_telemetry_config, span_exporter, log_exporter, fake_task_scheduler, make_fixed_rng
):
    gateway = OtelTelemetryBackendGateway(
        ci_telemetry_config,
        span_exporter=span_exporter,
        log_exporter=log_exporter,
        batch_export=False,
    )
    telemetry_service = TelemetryService(
        backend_gateway=gateway,
        config=ci_telemetry_config,
        scheduler=fake_task_scheduler,
        rng=make_fixed_rng(95, 0),
    )
    assert await telemetry_service.initialize()
    assert _spans_named(span_exporter, SESSION_SPAN_NAME) == []

    fake_task_scheduler.advance(CI_CRASH_MIN_DELAY_MS)

    (session_span,) = _spans_named(span_exporter, SESSION_SPAN_NAME)
    assert session_span.attributes["emb.crashed"] is True
    assert session_span.attributes["emb.crash_reason"] == "scheduled_crash_simulation"
    assert session_span.attributes["emb.properties.ci_crash_scheduled"] == "true"
    assert session_span.attributes["emb.properties.ci_mode"] == "enabled"
    assert session_span.status.status_code == StatusCode.ERROR
    breadcrumbs = [
        e.attributes["message"] for e in session_span.events if e.name == BREADCRUMB_EVENT_NAME
    ]
    assert breadcrumbs[0] == "APP_INITIALIZED"
    assert breadcrumbs[-1] == "CI_CRASH_TRIGGERED"
    ((batch,), _) = log_exporter.export.call_args
    assert batch[0].log_record.body == "CI automated crash test"

    with pytest.raises(SimulatedCrashError):
        fake_task_scheduler.advance(CI_CRASH_GRACE_PERIOD_MS)
