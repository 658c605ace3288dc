"""
CI crash simulation.

When CI mode is on, roughly 20% of sessions crash on purpose 20-35 seconds after startup, late
enough for the session to have produced telemetry. The decision is made once per session.
"""

import random
from typing import TYPE_CHECKING, Optional

from storefront_telemetry.common.constants import (
    CI_CRASH_DELAY_SPREAD_MS,
    CI_CRASH_GRACE_PERIOD_MS,
    CI_CRASH_MIN_DELAY_MS,
    CI_CRASH_PROBABILITY_THRESHOLD,
)
from storefront_telemetry.core.loggers import logger_name, make_logger
from storefront_telemetry.domain.entities import CrashSchedule, CrashSchedulerState
from storefront_telemetry.domain.exceptions import SimulatedCrashError
from storefront_telemetry.domain.gateways import ScheduledTask, TaskScheduler

if TYPE_CHECKING:
    from storefront_telemetry.domain.services.telemetry_service import TelemetryService

logger = make_logger(logger_name())


class CrashSimulationService:
    def __init__(
        self,
        telemetry: "TelemetryService",
        scheduler: TaskScheduler,
        ci_mode: bool,
        rng: random.Random,
    ):
        self._telemetry = telemetry
        self._scheduler = scheduler
        self._ci_mode = ci_mode
        self._rng = rng
        self._evaluated = False
        self.state = CrashSchedulerState.IDLE
        self.schedule: Optional[CrashSchedule] = None
        self.crash_task: Optional[ScheduledTask] = None

    def evaluate(self) -> CrashSchedulerState:
        """Decide whether this session crashes. Later calls return the first decision."""
        if self._evaluated:
            return self.state
        self._evaluated = True

        if not self._ci_mode:
            return self.state

        logger.info("[CI Mode] Crash simulation enabled")
        roll = self._rng.randrange(100)
        logger.info(
            f"[CI Mode] Crash probability roll: {roll} "
            f"(threshold: >{CI_CRASH_PROBABILITY_THRESHOLD} to crash)"
        )

        if roll <= CI_CRASH_PROBABILITY_THRESHOLD:
            self.schedule = CrashSchedule(will_crash=False, roll=roll)
            self.state = CrashSchedulerState.DISARMED
            self._telemetry.add_session_property("ci_crash_scheduled", "false")
            logger.info("[CI Mode] No crash scheduled for this session")
            return self.state

        delay_ms = CI_CRASH_MIN_DELAY_MS + self._rng.randrange(CI_CRASH_DELAY_SPREAD_MS)
        self.schedule = CrashSchedule(will_crash=True, roll=roll, delay_ms=delay_ms)
        self.state = CrashSchedulerState.ARMED
        self._telemetry.add_session_property("ci_crash_scheduled", "true")
        self._telemetry.add_session_property("ci_mode", "enabled")
        logger.info(f"[CI Mode] Crash will occur in {delay_ms / 1000} seconds")
        self.crash_task = self._scheduler.call_later(delay_ms, self._trigger_crash)
        return self.state

    def _trigger_crash(self) -> None:
        logger.warning("[CI Mode] Triggering intentional crash now")
        self._telemetry.add_breadcrumb("CI_CRASH_TRIGGERED")
        self._telemetry.log_error(
            "CI automated crash test",
            {
                "test_type": "ci_automated_crash",
                "crash_reason": "scheduled_crash_simulation",
            },
        )
        self._telemetry.record_crash("scheduled_crash_simulation")
        self._scheduler.call_later(CI_CRASH_GRACE_PERIOD_MS, self._raise_fault)

    def _raise_fault(self) -> None:
        raise SimulatedCrashError("CI automated crash - 20% probability crash simulation")
