import asyncio
import os
import sys
from typing import Callable, Optional

from storefront_telemetry.common.constants import CRASH_EXIT_CODE
from storefront_telemetry.domain.exceptions import SimulatedCrashError
from storefront_telemetry.domain.gateways import ScheduledTask, TaskScheduler

FatalFaultHandler = Callable[[SimulatedCrashError], None]


def terminate_process(fault: SimulatedCrashError) -> None:
    """Report the fault as an uncaught exception, then kill the process without cleanup."""
    sys.excepthook(type(fault), fault, fault.__traceback__)
    sys.stderr.flush()
    os._exit(CRASH_EXIT_CODE)


class AsyncioScheduledTask(ScheduledTask):
    def __init__(self, handle: asyncio.TimerHandle, delay_ms: int):
        self._handle = handle
        self._delay_ms = delay_ms

    def cancel(self) -> None:
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._handle.cancelled()

    @property
    def delay_ms(self) -> int:
        return self._delay_ms


class AsyncioTaskScheduler(TaskScheduler):
    """
    Schedules timers on the running asyncio loop.

    asyncio hands exceptions raised by timer callbacks to the loop's exception handler and keeps
    running, so a SimulatedCrashError is routed to `fatal_fault_handler` instead, which by default
    terminates the process.
    """

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        fatal_fault_handler: FatalFaultHandler = terminate_process,
    ):
        self._loop = loop
        self._fatal_fault_handler = fatal_fault_handler

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> ScheduledTask:
        loop = self._loop or asyncio.get_running_loop()
        handle = loop.call_later(delay_ms / 1000, self._run, callback)
        return AsyncioScheduledTask(handle, delay_ms)

    def _run(self, callback: Callable[[], None]) -> None:
        try:
            callback()
        except SimulatedCrashError as fault:
            self._fatal_fault_handler(fault)
