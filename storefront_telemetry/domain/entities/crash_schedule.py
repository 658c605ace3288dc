from enum import Enum
from typing import Optional

from storefront_telemetry.common.pydantic_types import BaseModel


class CrashSchedulerState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    DISARMED = "disarmed"


class CrashSchedule(BaseModel):
    """The once-per-session crash decision. Never persisted."""

    will_crash: bool
    roll: int
    delay_ms: Optional[int] = None
