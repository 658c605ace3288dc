from collections import defaultdict
from typing import DefaultDict, Dict, List, Optional, Tuple

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from storefront_telemetry.common.dtos.telemetry import (
    LogSeverity,
    NetworkErrorRecord,
    NetworkRequestRecord,
    Properties,
    SessionProperty,
    TransportResult,
)
from storefront_telemetry.core.domain_exceptions import TelemetryTransportException
from storefront_telemetry.domain.gateways import TelemetryBackendGateway

LogEntry = Tuple[str, LogSeverity, Properties, bool]


class FakeTelemetryBackendGateway(TelemetryBackendGateway):
    def __init__(
        self,
        started: bool = True,
        session_id: Optional[str] = "fake-session-id",
        device_id: Optional[str] = "fake-device-id",
    ):
        self.started = started
        self.session_id = session_id
        self.device_id = device_id
        self.span_exporter = InMemorySpanExporter()
        self._tracer_provider = TracerProvider()
        self._tracer_provider.add_span_processor(SimpleSpanProcessor(self.span_exporter))
        self.fail_sends = False
        self.raise_on_send = False
        self.reset()

    def reset(self):
        self.app_ids: List[Optional[str]] = []
        self.initialized = False
        self.breadcrumbs: List[str] = []
        self.logs: List[LogEntry] = []
        self.handled_errors: List[Tuple[BaseException, Properties]] = []
        self.user: Dict[str, str] = {}
        self.properties: Dict[str, SessionProperty] = {}
        self.removed_properties: List[str] = []
        self.network_requests: List[NetworkRequestRecord] = []
        self.network_errors: List[NetworkErrorRecord] = []
        self.sessions_ended = 0
        self.crash_reasons: List[str] = []
        self.flushes = 0
        self.calls: DefaultDict[str, int] = defaultdict(int)
        self.span_exporter.clear()

    def _send(self, call: str) -> Optional[TransportResult]:
        self.calls[call] += 1
        if self.raise_on_send:
            raise TelemetryTransportException(f"{call} exploded")
        if self.fail_sends:
            return TransportResult.failure(f"{call} rejected by collector")
        return None

    async def initialize(self, app_id: Optional[str]) -> bool:
        self.app_ids.append(app_id)
        self.initialized = self.started
        return self.started

    @property
    def tracer_provider(self) -> Optional[TracerProvider]:
        return self._tracer_provider if self.initialized else None

    def finished_spans(self):
        return self.span_exporter.get_finished_spans()

    def add_breadcrumb(self, message: str) -> TransportResult:
        failure = self._send("add_breadcrumb")
        if failure is not None:
            return failure
        self.breadcrumbs.append(message)
        return TransportResult.success()

    def log_message(
        self,
        message: str,
        severity: LogSeverity,
        properties: Properties,
        escalated: bool,
    ) -> TransportResult:
        failure = self._send("log_message")
        if failure is not None:
            return failure
        self.logs.append((message, severity, dict(properties), escalated))
        return TransportResult.success()

    def log_handled_error(self, error: BaseException, properties: Properties) -> TransportResult:
        failure = self._send("log_handled_error")
        if failure is not None:
            return failure
        self.handled_errors.append((error, dict(properties)))
        return TransportResult.success()

    def _set_user_field(self, call: str, field: str, value: Optional[str]) -> TransportResult:
        failure = self._send(call)
        if failure is not None:
            return failure
        if value is None:
            self.user.pop(field, None)
        else:
            self.user[field] = value
        return TransportResult.success()

    def set_user_identifier(self, user_id: str) -> TransportResult:
        return self._set_user_field("set_user_identifier", "id", user_id)

    def set_user_email(self, email: str) -> TransportResult:
        return self._set_user_field("set_user_email", "email", email)

    def set_username(self, username: str) -> TransportResult:
        return self._set_user_field("set_username", "name", username)

    def clear_user_identifier(self) -> TransportResult:
        return self._set_user_field("clear_user_identifier", "id", None)

    def clear_user_email(self) -> TransportResult:
        return self._set_user_field("clear_user_email", "email", None)

    def clear_username(self) -> TransportResult:
        return self._set_user_field("clear_username", "name", None)

    def add_session_property(self, key: str, value: str, permanent: bool) -> TransportResult:
        failure = self._send("add_session_property")
        if failure is not None:
            return failure
        self.properties[key] = SessionProperty(key=key, value=value, permanent=permanent)
        return TransportResult.success()

    def remove_session_property(self, key: str) -> TransportResult:
        failure = self._send("remove_session_property")
        if failure is not None:
            return failure
        self.properties.pop(key, None)
        self.removed_properties.append(key)
        return TransportResult.success()

    def property_values(self) -> Dict[str, str]:
        return {key: prop.value for key, prop in self.properties.items()}

    async def get_current_session_id(self) -> Optional[str]:
        self._send("get_current_session_id")
        return self.session_id

    async def get_device_id(self) -> Optional[str]:
        self._send("get_device_id")
        return self.device_id

    def end_session(self) -> TransportResult:
        failure = self._send("end_session")
        if failure is not None:
            return failure
        self.sessions_ended += 1
        self.properties = {k: p for k, p in self.properties.items() if p.permanent}
        return TransportResult.success()

    def record_crash(self, reason: str) -> TransportResult:
        failure = self._send("record_crash")
        if failure is not None:
            return failure
        self.crash_reasons.append(reason)
        return TransportResult.success()

    def record_network_request(self, record: NetworkRequestRecord) -> TransportResult:
        failure = self._send("record_network_request")
        if failure is not None:
            return failure
        self.network_requests.append(record)
        return TransportResult.success()

    def log_network_client_error(self, record: NetworkErrorRecord) -> TransportResult:
        failure = self._send("log_network_client_error")
        if failure is not None:
            return failure
        self.network_errors.append(record)
        return TransportResult.success()

    def flush(self, timeout_ms: int) -> TransportResult:
        failure = self._send("flush")
        if failure is not None:
            return failure
        self.flushes += 1
        return TransportResult.success()

    def shutdown(self) -> TransportResult:
        self.calls["shutdown"] += 1
        self.initialized = False
        return TransportResult.success()
