import itertools
from typing import Dict, Optional

from opentelemetry.trace import Span
from storefront_telemetry.core.utils.clock import Clock, epoch_millis


class SpanRegistry:
    """
    Live spans keyed by an opaque handle. A handle is present from the moment it is handed out
    until the matching end, so the registry drains back to empty once every span is ended.

    Handles are ``<name>_<epoch ms>``. If that handle is already live (two starts of the same
    name within one millisecond) a ``_<n>`` suffix from a process-wide counter is appended.
    """

    def __init__(self, clock: Clock = epoch_millis):
        self._clock = clock
        self._spans: Dict[str, Span] = {}
        self._collisions = itertools.count(1)

    def new_handle(self, name: str) -> str:
        base = f"{name}_{self._clock()}"
        handle = base
        while handle in self._spans:
            handle = f"{base}_{next(self._collisions)}"
        return handle

    def add(self, handle: str, span: Span) -> None:
        self._spans[handle] = span

    def get(self, handle: str) -> Optional[Span]:
        return self._spans.get(handle)

    def pop(self, handle: str) -> Optional[Span]:
        return self._spans.pop(handle, None)

    def __contains__(self, handle: object) -> bool:
        return handle in self._spans

    def __len__(self) -> int:
        return len(self._spans)
