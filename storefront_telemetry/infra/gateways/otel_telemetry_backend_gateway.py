import functools
import os
import time
import traceback
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlsplit

from opentelemetry._logs import SeverityNumber
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk._logs import LoggerProvider, LogRecord
from opentelemetry.sdk._logs.export import (
    BatchLogRecordProcessor,
    LogExporter,
    SimpleLogRecordProcessor,
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor, SpanExporter
from opentelemetry.trace import Span, SpanKind, Tracer
from storefront_telemetry.common.constants import SDK_PLATFORM, TRACER_NAME
from storefront_telemetry.common.dtos.telemetry import (
    LogSeverity,
    NetworkErrorRecord,
    NetworkRequestRecord,
    Properties,
    SessionProperty,
    TransportResult,
)
from storefront_telemetry.core.config import TelemetryConfig
from storefront_telemetry.core.domain_exceptions import TelemetryNotInitializedException
from storefront_telemetry.core.loggers import (
    LoggerTagKey,
    LoggerTagManager,
    logger_name,
    make_logger,
)
from storefront_telemetry.core.tracing import (
    SessionSpanProcessor,
    record_completed_span,
    status_for,
)
from storefront_telemetry.domain.gateways import TelemetryBackendGateway

logger = make_logger(logger_name())

SESSION_SPAN_NAME = "emb-session"
BREADCRUMB_EVENT_NAME = "emb-breadcrumb"
PROPERTY_REMOVED_EVENT_NAME = "emb-session-property-removed"
SESSION_PROPERTY_PREFIX = "emb.properties."

_SEVERITIES: Dict[LogSeverity, Tuple[SeverityNumber, str]] = {
    LogSeverity.INFO: (SeverityNumber.INFO, "INFO"),
    LogSeverity.WARNING: (SeverityNumber.WARN, "WARN"),
    LogSeverity.ERROR: (SeverityNumber.ERROR, "ERROR"),
}


def _requires_session(fn: Callable[..., TransportResult]) -> Callable[..., TransportResult]:
    """Rejects sends outside a live session and maps exporter exceptions to failed results."""

    @functools.wraps(fn)
    def wrapper(self: "OtelTelemetryBackendGateway", *args, **kwargs) -> TransportResult:
        if self._session_span is None or self._tracer is None:
            return TransportResult.failure("backend session not started")
        try:
            return fn(self, *args, **kwargs)
        except Exception as e:
            return TransportResult.failure(f"{type(e).__name__}: {e}")

    return wrapper


class OtelTelemetryBackendGateway(TelemetryBackendGateway):
    """
    Ships telemetry to an OTLP collector through the OpenTelemetry SDK.

    A long-lived ``emb-session`` span represents the session: breadcrumbs are span events on it,
    user identifiers are attributes on it, and the session properties still held when it closes
    are written onto it just before it ends. Logs are emitted through the OTel logs API, linked
    to the session span, and network records are emitted as completed CLIENT spans.
    """

    def __init__(
        self,
        config: TelemetryConfig,
        span_exporter: Optional[SpanExporter] = None,
        log_exporter: Optional[LogExporter] = None,
        batch_export: bool = True,
    ):
        self._config = config
        self._span_exporter = span_exporter
        self._log_exporter = log_exporter
        self._batch_export = batch_export
        self._tracer_provider: Optional[TracerProvider] = None
        self._logger_provider: Optional[LoggerProvider] = None
        self._resource: Optional[Resource] = None
        self._tracer: Optional[Tracer] = None
        self._session_span: Optional[Span] = None
        self._session_id: Optional[str] = None
        self._device_id: Optional[str] = None
        self._properties: Dict[str, SessionProperty] = {}

    async def initialize(self, app_id: Optional[str]) -> bool:
        if not app_id or app_id.startswith("YOUR_"):
            logger.warning("Skipping backend init - app id not configured")
            return False

        span_exporter, log_exporter = self._span_exporter, self._log_exporter
        if span_exporter is None or log_exporter is None:
            endpoint = self._config.otlp_endpoint
            if not endpoint:
                logger.warning("Skipping backend init - OTEL_EXPORTER_OTLP_ENDPOINT not set")
                return False
            use_insecure = endpoint.startswith("http://")
            if span_exporter is None:
                span_exporter = OTLPSpanExporter(endpoint=endpoint, insecure=use_insecure)
            if log_exporter is None:
                log_exporter = OTLPLogExporter(endpoint=endpoint, insecure=use_insecure)

        resource_attributes: Dict[str, Any] = {
            "service.name": self._config.service_name,
            "service.version": self._config.service_version,
            "deployment.environment": self._config.environment,
            "emb.app_id": app_id,
            "os.type": self._config.platform,
            "telemetry.sdk.platform": SDK_PLATFORM,
        }
        device_id = self._load_device_id()
        if device_id:
            resource_attributes["device.id"] = device_id
        resource = Resource.create(resource_attributes)
        self._resource = resource

        self._tracer_provider = TracerProvider(resource=resource)
        # Registered first so the session id is on the span before any exporter sees it
        self._tracer_provider.add_span_processor(SessionSpanProcessor(lambda: self._session_id))
        if self._batch_export:
            self._tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))
        else:
            self._tracer_provider.add_span_processor(SimpleSpanProcessor(span_exporter))
        self._tracer = self._tracer_provider.get_tracer(TRACER_NAME, self._config.service_version)

        self._logger_provider = LoggerProvider(resource=resource)
        if self._batch_export:
            self._logger_provider.add_log_record_processor(BatchLogRecordProcessor(log_exporter))
        else:
            self._logger_provider.add_log_record_processor(SimpleLogRecordProcessor(log_exporter))

        self._start_session()
        return True

    @property
    def tracer_provider(self) -> Optional[TracerProvider]:
        return self._tracer_provider

    def _start_session(self) -> None:
        if self._tracer is None:
            raise TelemetryNotInitializedException("Cannot start a session before initialize()")
        self._session_id = uuid.uuid4().hex
        LoggerTagManager.set(LoggerTagKey.SESSION_ID, self._session_id)
        self._session_span = self._tracer.start_span(
            SESSION_SPAN_NAME, kind=SpanKind.INTERNAL, attributes={"emb.type": "ux.session"}
        )
        logger.info(f"Started telemetry session {self._session_id}")

    def _close_session(self, crash_reason: Optional[str] = None) -> None:
        if self._session_span is None:
            return
        # Only the properties still held at close are exported
        for prop in self._properties.values():
            self._session_span.set_attribute(SESSION_PROPERTY_PREFIX + prop.key, prop.value)
        if crash_reason is not None:
            self._session_span.set_attribute("emb.crashed", True)
            self._session_span.set_attribute("emb.crash_reason", crash_reason)
        self._session_span.set_status(status_for(crash_reason is None))
        self._session_span.end()
        self._session_span = None
        # Permanent properties carry over to the next session
        self._properties = {k: p for k, p in self._properties.items() if p.permanent}

    def _load_device_id(self) -> Optional[str]:
        if self._device_id is not None:
            return self._device_id
        path = Path(os.path.expanduser(self._config.device_id_path))
        try:
            if path.exists():
                self._device_id = path.read_text().strip() or None
            if self._device_id is None:
                self._device_id = uuid.uuid4().hex
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(self._device_id)
        except OSError as e:
            logger.warning(f"Could not persist device id at {path}: {e}")
        if self._device_id:
            LoggerTagManager.set(LoggerTagKey.DEVICE_ID, self._device_id)
        return self._device_id

    @_requires_session
    def add_breadcrumb(self, message: str) -> TransportResult:
        assert self._session_span is not None
        self._session_span.add_event(BREADCRUMB_EVENT_NAME, {"message": message})
        return TransportResult.success()

    def _emit_log(self, body: str, severity: LogSeverity, attributes: Dict[str, Any]) -> None:
        assert self._logger_provider is not None and self._session_span is not None
        severity_number, severity_text = _SEVERITIES[severity]
        span_context = self._session_span.get_span_context()
        now = time.time_ns()
        self._logger_provider.get_logger(TRACER_NAME, self._config.service_version).emit(
            LogRecord(
                timestamp=now,
                observed_timestamp=now,
                trace_id=span_context.trace_id,
                span_id=span_context.span_id,
                trace_flags=span_context.trace_flags,
                severity_text=severity_text,
                severity_number=severity_number,
                body=body,
                resource=self._resource,
                attributes=attributes,
            )
        )

    @_requires_session
    def log_message(
        self,
        message: str,
        severity: LogSeverity,
        properties: Properties,
        escalated: bool,
    ) -> TransportResult:
        attributes = {**properties, "emb.type": "sys.log", "emb.escalated": escalated}
        self._emit_log(message, severity, attributes)
        return TransportResult.success()

    @_requires_session
    def log_handled_error(self, error: BaseException, properties: Properties) -> TransportResult:
        attributes = {
            **properties,
            "emb.type": "sys.exception",
            "exception.handled": True,
            "exception.type": type(error).__name__,
            "exception.message": str(error),
            "exception.stacktrace": "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ),
        }
        self._emit_log(str(error) or type(error).__name__, LogSeverity.ERROR, attributes)
        return TransportResult.success()

    def _set_session_attribute(self, key: str, value: str) -> TransportResult:
        assert self._session_span is not None
        self._session_span.set_attribute(key, value)
        return TransportResult.success()

    @_requires_session
    def set_user_identifier(self, user_id: str) -> TransportResult:
        return self._set_session_attribute("user.id", user_id)

    @_requires_session
    def set_user_email(self, email: str) -> TransportResult:
        return self._set_session_attribute("user.email", email)

    @_requires_session
    def set_username(self, username: str) -> TransportResult:
        return self._set_session_attribute("user.name", username)

    @_requires_session
    def clear_user_identifier(self) -> TransportResult:
        return self._set_session_attribute("user.id", "")

    @_requires_session
    def clear_user_email(self) -> TransportResult:
        return self._set_session_attribute("user.email", "")

    @_requires_session
    def clear_username(self) -> TransportResult:
        return self._set_session_attribute("user.name", "")

    @_requires_session
    def add_session_property(self, key: str, value: str, permanent: bool) -> TransportResult:
        self._properties[key] = SessionProperty(key=key, value=value, permanent=permanent)
        return TransportResult.success()

    @_requires_session
    def remove_session_property(self, key: str) -> TransportResult:
        assert self._session_span is not None
        if self._properties.pop(key, None) is not None:
            self._session_span.add_event(PROPERTY_REMOVED_EVENT_NAME, {"key": key})
        return TransportResult.success()

    async def get_current_session_id(self) -> Optional[str]:
        return self._session_id if self._session_span is not None else None

    async def get_device_id(self) -> Optional[str]:
        return self._load_device_id()

    @_requires_session
    def end_session(self) -> TransportResult:
        ended = self._session_id
        self._close_session()
        self._start_session()
        logger.info(f"Ended telemetry session {ended}")
        return TransportResult.success()

    @_requires_session
    def record_crash(self, reason: str) -> TransportResult:
        crashed = self._session_id
        self._close_session(crash_reason=reason)
        logger.warning(f"Closed telemetry session {crashed} as crashed: {reason}")
        return TransportResult.success()

    def _record_network_span(
        self,
        url: str,
        method: str,
        start_time: int,
        end_time: int,
        attributes: Dict[str, Any],
        success: bool,
    ) -> TransportResult:
        assert self._tracer is not None
        path = urlsplit(url).path or "/"
        record_completed_span(
            self._tracer,
            f"emb-{method} {path}",
            start_time,
            end_time,
            {
                "emb.type": "perf.network_request",
                "url.full": url,
                "http.request.method": method,
                **attributes,
            },
            success=success,
            kind=SpanKind.CLIENT,
        )
        return TransportResult.success()

    @_requires_session
    def record_network_request(self, record: NetworkRequestRecord) -> TransportResult:
        attributes: Dict[str, Any] = {}
        if record.status_code is not None:
            attributes["http.response.status_code"] = record.status_code
        if record.bytes_sent is not None:
            attributes["http.request.body.size"] = record.bytes_sent
        if record.bytes_received is not None:
            attributes["http.response.body.size"] = record.bytes_received
        success = record.status_code is None or record.status_code < 400
        return self._record_network_span(
            record.url, record.method.value, record.start_time, record.end_time, attributes, success
        )

    @_requires_session
    def log_network_client_error(self, record: NetworkErrorRecord) -> TransportResult:
        attributes = {"error.type": record.error_type, "error.message": record.error_message}
        return self._record_network_span(
            record.url, record.method.value, record.start_time, record.end_time, attributes, False
        )

    def flush(self, timeout_ms: int) -> TransportResult:
        if self._tracer_provider is None or self._logger_provider is None:
            return TransportResult.failure("backend not started")
        try:
            spans_flushed = self._tracer_provider.force_flush(timeout_millis=timeout_ms)
            logs_flushed = self._logger_provider.force_flush(timeout_millis=timeout_ms)
        except Exception as e:
            return TransportResult.failure(f"{type(e).__name__}: {e}")
        if not (spans_flushed and logs_flushed):
            return TransportResult.failure(f"flush timed out after {timeout_ms}ms")
        return TransportResult.success()

    def shutdown(self) -> TransportResult:
        if self._tracer_provider is None or self._logger_provider is None:
            return TransportResult.success()
        try:
            self._close_session()
            self._tracer_provider.shutdown()
            self._logger_provider.shutdown()
        except Exception as e:
            return TransportResult.failure(f"{type(e).__name__}: {e}")
        finally:
            self._session_id = None
            self._tracer = None
        return TransportResult.success()
