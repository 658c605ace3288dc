from typing import Callable

from storefront_telemetry.domain.gateways import TelemetryBackendGateway
from storefront_telemetry.domain.services.transport import dispatch


class SessionPropertyStore:
    """Write-through key/value properties attached to the backend session."""

    def __init__(
        self, backend_gateway: TelemetryBackendGateway, is_initialized: Callable[[], bool]
    ):
        self._backend_gateway = backend_gateway
        self._is_initialized = is_initialized

    def set(self, key: str, value: str, permanent: bool = False) -> None:
        if not self._is_initialized():
            return
        dispatch(
            "add session property",
            lambda: self._backend_gateway.add_session_property(key, value, permanent),
        )

    def remove(self, key: str) -> None:
        if not self._is_initialized():
            return
        dispatch(
            "remove session property",
            lambda: self._backend_gateway.remove_session_property(key),
        )
