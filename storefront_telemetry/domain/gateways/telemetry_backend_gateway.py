"""
For sending telemetry (breadcrumbs, logs, spans, session properties, network records) to an
observability backend. Every send returns a TransportResult instead of raising so callers can
keep telemetry failures away from the features being observed.
"""

from abc import ABC, abstractmethod
from typing import Optional

from opentelemetry.trace import TracerProvider
from storefront_telemetry.common.dtos.telemetry import (
    LogSeverity,
    NetworkErrorRecord,
    NetworkRequestRecord,
    Properties,
    TransportResult,
)


class TelemetryBackendGateway(ABC):
    @abstractmethod
    async def initialize(self, app_id: Optional[str]) -> bool:
        """
        Starts the backend SDK and opens a session. Returns whether the SDK started.
        """

    @property
    @abstractmethod
    def tracer_provider(self) -> Optional[TracerProvider]:
        """
        Tracer provider for spans, or None before the SDK started.
        """

    @abstractmethod
    def add_breadcrumb(self, message: str) -> TransportResult:
        """
        Appends a breadcrumb to the current session.
        """

    @abstractmethod
    def log_message(
        self,
        message: str,
        severity: LogSeverity,
        properties: Properties,
        escalated: bool,
    ) -> TransportResult:
        """
        Sends a structured log. Escalated logs are delivered ahead of the regular batch.
        """

    @abstractmethod
    def log_handled_error(self, error: BaseException, properties: Properties) -> TransportResult:
        """
        Sends a handled exception with its stack trace.
        """

    @abstractmethod
    def set_user_identifier(self, user_id: str) -> TransportResult:
        pass

    @abstractmethod
    def set_user_email(self, email: str) -> TransportResult:
        pass

    @abstractmethod
    def set_username(self, username: str) -> TransportResult:
        pass

    @abstractmethod
    def clear_user_identifier(self) -> TransportResult:
        pass

    @abstractmethod
    def clear_user_email(self) -> TransportResult:
        pass

    @abstractmethod
    def clear_username(self) -> TransportResult:
        pass

    @abstractmethod
    def add_session_property(self, key: str, value: str, permanent: bool) -> TransportResult:
        """
        Adds or overwrites a session property. Permanent properties carry over to later sessions.
        """

    @abstractmethod
    def remove_session_property(self, key: str) -> TransportResult:
        pass

    @abstractmethod
    async def get_current_session_id(self) -> Optional[str]:
        pass

    @abstractmethod
    async def get_device_id(self) -> Optional[str]:
        pass

    @abstractmethod
    def end_session(self) -> TransportResult:
        """
        Closes the current session and starts a new one.
        """

    @abstractmethod
    def record_crash(self, reason: str) -> TransportResult:
        """
        Closes the current session marked as crashed, without starting a new one, so it can be
        flushed before the process goes down.
        """

    @abstractmethod
    def record_network_request(self, record: NetworkRequestRecord) -> TransportResult:
        pass

    @abstractmethod
    def log_network_client_error(self, record: NetworkErrorRecord) -> TransportResult:
        pass

    @abstractmethod
    def flush(self, timeout_ms: int) -> TransportResult:
        """
        Forces pending telemetry out to the collector.
        """

    @abstractmethod
    def shutdown(self) -> TransportResult:
        """
        Ends the current session and releases exporters. No sends are accepted afterwards.
        """
