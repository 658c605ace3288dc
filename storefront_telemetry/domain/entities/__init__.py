from .crash_schedule import CrashSchedule, CrashSchedulerState
from .span_registry import SpanRegistry

__all__ = (
    "CrashSchedule",
    "CrashSchedulerState",
    "SpanRegistry",
)
