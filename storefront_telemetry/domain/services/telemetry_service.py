"""
The instrumentation layer every storefront action funnels through.

Owns the telemetry session, the registry of live spans and the session properties, and arms the
CI crash simulation at startup. Failures while sending telemetry are logged locally and never
reach the caller; the only exception that leaves this service on purpose is SimulatedCrashError.
"""

import random
from typing import Dict, Optional

from opentelemetry.trace import Tracer
from storefront_telemetry.common.constants import SDK_PLATFORM, TRACER_NAME
from storefront_telemetry.common.dtos.telemetry import (
    LogSeverity,
    NetworkErrorRecord,
    NetworkRequestRecord,
)
from storefront_telemetry.core.config import TelemetryConfig
from storefront_telemetry.core.loggers import logger_name, make_logger
from storefront_telemetry.core.tracing import end_span, record_completed_span, start_view
from storefront_telemetry.core.utils.clock import Clock, epoch_millis
from storefront_telemetry.domain.entities import SpanRegistry
from storefront_telemetry.domain.exceptions import SimulatedCrashError
from storefront_telemetry.domain.gateways import TaskScheduler, TelemetryBackendGateway
from storefront_telemetry.domain.services.crash_simulation_service import CrashSimulationService
from storefront_telemetry.domain.services.session_property_store import SessionPropertyStore
from storefront_telemetry.domain.services.transport import dispatch

logger = make_logger(logger_name())


class TelemetryService:
    def __init__(
        self,
        backend_gateway: TelemetryBackendGateway,
        config: TelemetryConfig,
        scheduler: TaskScheduler,
        clock: Clock = epoch_millis,
        rng: Optional[random.Random] = None,
    ):
        self._backend_gateway = backend_gateway
        self._config = config
        self._clock = clock
        self._initialized = False
        self._tracer: Optional[Tracer] = None
        self._spans = SpanRegistry(clock)
        self.session_properties = SessionPropertyStore(backend_gateway, lambda: self._initialized)
        self.crash_simulation = CrashSimulationService(
            self, scheduler, ci_mode=config.ci_mode, rng=rng or random.Random()
        )

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def active_span_count(self) -> int:
        return len(self._spans)

    async def initialize(self) -> bool:
        if self._initialized:
            logger.warning("Telemetry already initialized, ignoring repeated initialize()")
            return True
        try:
            started = await self._backend_gateway.initialize(self._config.app_id)
        except Exception as e:
            logger.error(f"Error initializing telemetry backend: {e}")
            return False

        self._initialized = started
        if not started:
            logger.warning("Telemetry backend failed to initialize")
            return False

        logger.info("Telemetry backend initialized successfully")
        tracer_provider = self._backend_gateway.tracer_provider
        if tracer_provider is not None:
            self._tracer = tracer_provider.get_tracer(TRACER_NAME, self._config.service_version)

        self.add_breadcrumb("APP_INITIALIZED")

        self.add_session_property("app_version", self._config.service_version, permanent=True)
        self.add_session_property("platform", SDK_PLATFORM, permanent=True)
        self.add_session_property("app_type", self._config.app_type, permanent=True)
        self.add_session_property("sdk_test_mode", "enabled")
        self.add_session_property("environment", self._config.environment)
        self.add_session_property("session_run_source", self._config.session_run_source)

        self.crash_simulation.evaluate()
        return True

    # Breadcrumbs & logs

    def add_breadcrumb(self, message: str) -> None:
        if not self._initialized:
            return
        dispatch("add breadcrumb", lambda: self._backend_gateway.add_breadcrumb(message))

    def log(
        self,
        severity: LogSeverity,
        message: str,
        properties: Optional[Dict[str, str]] = None,
    ) -> None:
        """Send a structured log. Warnings and errors are escalated, info is not."""
        if not self._initialized:
            return
        escalated = severity != LogSeverity.INFO
        dispatch(
            f"log {severity.value}",
            lambda: self._backend_gateway.log_message(
                message, severity, dict(properties or {}), escalated
            ),
        )

    def log_info(self, message: str, properties: Optional[Dict[str, str]] = None) -> None:
        self.log(LogSeverity.INFO, message, properties)

    def log_warning(self, message: str, properties: Optional[Dict[str, str]] = None) -> None:
        self.log(LogSeverity.WARNING, message, properties)

    def log_error(self, message: str, properties: Optional[Dict[str, str]] = None) -> None:
        self.log(LogSeverity.ERROR, message, properties)

    def log_debug(self, message: str, properties: Optional[Dict[str, str]] = None) -> None:
        # The backend has no debug level
        self.log(LogSeverity.INFO, f"[DEBUG] {message}", properties)

    def log_handled_error(
        self, error: BaseException, properties: Optional[Dict[str, str]] = None
    ) -> None:
        if not self._initialized:
            return
        dispatch(
            "log handled error",
            lambda: self._backend_gateway.log_handled_error(error, dict(properties or {})),
        )

    # Spans

    def start_span(self, name: str, attributes: Optional[Dict[str, str]] = None) -> Optional[str]:
        if not self._initialized or self._tracer is None:
            return None
        try:
            span = self._tracer.start_span(name, attributes=dict(attributes or {}))
        except Exception as e:
            logger.warning(f"Failed to start span: {e}")
            return None
        handle = self._spans.new_handle(name)
        self._spans.add(handle, span)
        return handle

    def start_screen_view_span(self, screen_name: str) -> Optional[str]:
        if not self._initialized or self._tracer is None:
            return None
        try:
            span = start_view(self._tracer, screen_name)
        except Exception as e:
            logger.warning(f"Failed to start screen view span: {e}")
            return None
        handle = self._spans.new_handle(f"screen_{screen_name}")
        self._spans.add(handle, span)
        return handle

    def add_span_attribute(self, handle: str, key: str, value: str) -> None:
        span = self._spans.get(handle)
        if span is None:
            return
        try:
            span.set_attribute(key, value)
        except Exception as e:
            logger.warning(f"Failed to add span attribute: {e}")

    def end_span(self, handle: str, success: bool = True) -> None:
        """End a live span. Unknown or already-ended handles are ignored."""
        span = self._spans.pop(handle)
        if span is None:
            return
        try:
            end_span(span, success)
        except Exception as e:
            logger.warning(f"Failed to end span: {e}")

    def record_completed_span(
        self,
        name: str,
        start_time: int,
        end_time: int,
        attributes: Optional[Dict[str, str]] = None,
        success: bool = True,
    ) -> None:
        """Emit a span for work that already finished. Times are epoch milliseconds."""
        if not self._initialized or self._tracer is None:
            return
        try:
            record_completed_span(self._tracer, name, start_time, end_time, attributes, success)
        except Exception as e:
            logger.warning(f"Failed to record completed span: {e}")

    # Network

    def record_network_request(self, record: NetworkRequestRecord) -> None:
        if not self._initialized:
            return
        dispatch(
            "record network request",
            lambda: self._backend_gateway.record_network_request(record),
        )

    def record_network_error(self, record: NetworkErrorRecord) -> None:
        if not self._initialized:
            return
        dispatch(
            "record network error",
            lambda: self._backend_gateway.log_network_client_error(record),
        )

    # User identification

    def set_user_identifier(self, user_id: str) -> None:
        if not self._initialized:
            return
        dispatch(
            "set user identifier", lambda: self._backend_gateway.set_user_identifier(user_id)
        )
        self.add_session_property("user_id", user_id, permanent=True)

    def set_user_email(self, email: str) -> None:
        if not self._initialized:
            return
        dispatch("set user email", lambda: self._backend_gateway.set_user_email(email))

    def set_username(self, username: str) -> None:
        if not self._initialized:
            return
        dispatch("set username", lambda: self._backend_gateway.set_username(username))

    def clear_user_data(self) -> None:
        if not self._initialized:
            return
        dispatch("clear user identifier", self._backend_gateway.clear_user_identifier)
        dispatch("clear user email", self._backend_gateway.clear_user_email)
        dispatch("clear username", self._backend_gateway.clear_username)
        self.remove_session_property("user_id")
        self.remove_session_property("auth_method")

    # Session

    def add_session_property(self, key: str, value: str, permanent: bool = False) -> None:
        self.session_properties.set(key, value, permanent)

    def remove_session_property(self, key: str) -> None:
        self.session_properties.remove(key)

    async def get_session_id(self) -> Optional[str]:
        if not self._initialized:
            return None
        try:
            return await self._backend_gateway.get_current_session_id()
        except Exception as e:
            logger.warning(f"Failed to get session ID: {e}")
            return None

    async def get_device_id(self) -> Optional[str]:
        if not self._initialized:
            return None
        try:
            return await self._backend_gateway.get_device_id()
        except Exception as e:
            logger.warning(f"Failed to get device ID: {e}")
            return None

    def end_session(self) -> None:
        if not self._initialized:
            return
        dispatch("end session", self._backend_gateway.end_session)

    def flush(self) -> None:
        if not self._initialized:
            return
        timeout_ms = self._config.export_timeout_ms
        dispatch("flush telemetry", lambda: self._backend_gateway.flush(timeout_ms))

    def shutdown(self) -> None:
        """Flush and release the backend. The service accepts no telemetry afterwards."""
        if not self._initialized:
            return
        if len(self._spans) > 0:
            logger.warning(f"{len(self._spans)} span(s) still open at shutdown")
        self.flush()
        dispatch("shut down telemetry backend", self._backend_gateway.shutdown)
        self._initialized = False
        self._tracer = None

    # Crash testing

    def record_crash(self, reason: str) -> None:
        """Close the session as crashed and push everything out before the process goes down."""
        if not self._initialized:
            return
        dispatch("record crash", lambda: self._backend_gateway.record_crash(reason))
        self.flush()

    def force_crash(self) -> None:
        """Manual crash test. Raises SimulatedCrashError, which is meant to go uncaught."""
        self.add_breadcrumb("CRASH_TEST_TRIGGERED")
        self.log_error("Crash test triggered", {"test_type": "manual_crash"})
        self.record_crash("manual_crash")
        raise SimulatedCrashError("Crash test - this is intentional")
