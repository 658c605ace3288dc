from .task_scheduler import ScheduledTask, TaskScheduler
from .telemetry_backend_gateway import TelemetryBackendGateway

__all__ = (
    "ScheduledTask",
    "TaskScheduler",
    "TelemetryBackendGateway",
)
