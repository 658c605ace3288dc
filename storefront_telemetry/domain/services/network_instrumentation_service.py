import asyncio
import itertools
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import TypeAdapter
from storefront_telemetry.common.constants import NETWORK_ERROR_TYPE
from storefront_telemetry.common.dtos.telemetry import (
    NetworkErrorRecord,
    NetworkRequestOptions,
    NetworkRequestRecord,
)
from storefront_telemetry.core.loggers import LoggerTagKey, LoggerTagManager
from storefront_telemetry.core.utils.clock import Clock, epoch_millis
from storefront_telemetry.domain.services.telemetry_service import TelemetryService

T = TypeVar("T")

# The mock transport never answers with anything else
MOCK_STATUS_CODE = 200

_any_adapter: TypeAdapter = TypeAdapter(Any)


def serialized_size(value: Any) -> int:
    """Size in bytes of the compact JSON encoding of `value`."""
    try:
        return len(_any_adapter.dump_json(value))
    except (TypeError, ValueError):
        return len(str(value).encode())


class NetworkInstrumentationService:
    """
    Brackets outbound calls with a span and a network request or error record.

    The span opens before the wrapped operation starts and closes after it settles, on both the
    success and the failure path. The operation's result or exception reaches the caller unchanged.
    """

    def __init__(self, telemetry: TelemetryService, base_url: str, clock: Clock = epoch_millis):
        self._telemetry = telemetry
        self._base_url = base_url
        self._clock = clock
        self._request_ids = itertools.count(1)

    def generate_request_id(self) -> str:
        return f"req_{next(self._request_ids)}_{self._clock()}"

    async def execute_request(
        self,
        options: NetworkRequestOptions,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        url = f"{self._base_url}{options.endpoint}"
        request_id = self.generate_request_id()
        LoggerTagManager.set(LoggerTagKey.REQUEST_ID, request_id)
        start_time = self._clock()

        span_handle = self._telemetry.start_span(
            f"api_{options.endpoint}",
            {
                "http.url": url,
                "http.method": options.method.value,
                "request.id": request_id,
            },
        )

        try:
            result = await operation()
        except asyncio.CancelledError:
            if span_handle:
                self._telemetry.add_span_attribute(span_handle, "request.cancelled", "true")
            raise
        except Exception as e:
            end_time = self._clock()
            error_message = str(e) or "Unknown error"

            self._telemetry.record_network_error(
                NetworkErrorRecord(
                    url=url,
                    method=options.method,
                    start_time=start_time,
                    end_time=end_time,
                    error_type=NETWORK_ERROR_TYPE,
                    error_message=error_message,
                )
            )

            if span_handle:
                self._telemetry.add_span_attribute(span_handle, "error.message", error_message)
                self._telemetry.end_span(span_handle, success=False)

            raise
        else:
            end_time = self._clock()
            self._telemetry.record_network_request(
                NetworkRequestRecord(
                    url=url,
                    method=options.method,
                    start_time=start_time,
                    end_time=end_time,
                    status_code=MOCK_STATUS_CODE,
                    bytes_sent=serialized_size(options.body) if options.body is not None else 0,
                    bytes_received=serialized_size(result),
                )
            )

            if span_handle:
                self._telemetry.add_span_attribute(
                    span_handle, "http.status_code", str(MOCK_STATUS_CODE)
                )
                self._telemetry.add_span_attribute(
                    span_handle, "duration_ms", str(end_time - start_time)
                )
                self._telemetry.end_span(span_handle, success=True)

            return result
        finally:
            # Still registered only after cancellation or another BaseException
            if span_handle:
                self._telemetry.end_span(span_handle, success=False)
