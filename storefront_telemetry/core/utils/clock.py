import time
from typing import Callable

Clock = Callable[[], int]
"""Returns the current wall-clock time in epoch milliseconds."""


def epoch_millis() -> int:
    return time.time_ns() // 1_000_000


def millis_to_nanos(millis: int) -> int:
    return millis * 1_000_000
