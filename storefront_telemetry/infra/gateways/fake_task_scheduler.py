from typing import Callable, List

from storefront_telemetry.domain.gateways import ScheduledTask, TaskScheduler


class FakeScheduledTask(ScheduledTask):
    def __init__(self, due_ms: int, delay_ms: int, callback: Callable[[], None]):
        self.due_ms = due_ms
        self.callback = callback
        self.fired = False
        self._delay_ms = delay_ms
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def delay_ms(self) -> int:
        return self._delay_ms


class FakeTaskScheduler(TaskScheduler):
    """Virtual-time scheduler. Nothing runs until `advance` is called."""

    def __init__(self):
        self.now_ms = 0
        self.tasks: List[FakeScheduledTask] = []

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> ScheduledTask:
        task = FakeScheduledTask(self.now_ms + delay_ms, delay_ms, callback)
        self.tasks.append(task)
        return task

    def pending(self) -> List[FakeScheduledTask]:
        return [t for t in self.tasks if not t.fired and not t.cancelled]

    def advance(self, delta_ms: int) -> None:
        """Fire every timer due within `delta_ms`, in due order. Callback exceptions propagate."""
        target_ms = self.now_ms + delta_ms
        while True:
            due = sorted(
                (t for t in self.pending() if t.due_ms <= target_ms), key=lambda t: t.due_ms
            )
            if not due:
                break
            task = due[0]
            self.now_ms = task.due_ms
            task.fired = True
            task.callback()
        self.now_ms = target_ms
