from abc import ABC, abstractmethod
from typing import Callable


class ScheduledTask(ABC):
    """A single-shot timer that has been handed to a scheduler."""

    @abstractmethod
    def cancel(self) -> None:
        pass

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        pass

    @property
    @abstractmethod
    def delay_ms(self) -> int:
        pass


class TaskScheduler(ABC):
    @abstractmethod
    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> ScheduledTask:
        """
        Runs `callback` once, `delay_ms` milliseconds from now, on the event loop.
        """
