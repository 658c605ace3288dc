from .asyncio_task_scheduler import AsyncioScheduledTask, AsyncioTaskScheduler, terminate_process
from .fake_task_scheduler import FakeScheduledTask, FakeTaskScheduler
from .fake_telemetry_backend_gateway import FakeTelemetryBackendGateway
from .otel_telemetry_backend_gateway import OtelTelemetryBackendGateway

__all__ = (
    "AsyncioScheduledTask",
    "AsyncioTaskScheduler",
    "FakeScheduledTask",
    "FakeTaskScheduler",
    "FakeTelemetryBackendGateway",
    "OtelTelemetryBackendGateway",
    "terminate_process",
)
