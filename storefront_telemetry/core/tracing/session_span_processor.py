from typing import Callable, Optional

from opentelemetry.context import Context
from opentelemetry.sdk.trace import Span, SpanProcessor

SESSION_ID_ATTRIBUTE = "session.id"


class SessionSpanProcessor(SpanProcessor):
    """Stamps the current telemetry session id onto every span as it starts."""

    def __init__(self, session_id_getter: Callable[[], Optional[str]]):
        self._session_id_getter = session_id_getter

    def on_start(self, span: Span, parent_context: Optional[Context] = None) -> None:
        session_id = self._session_id_getter()
        if session_id:
            span.set_attribute(SESSION_ID_ATTRIBUTE, session_id)
