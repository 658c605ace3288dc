"""
DTOs describing telemetry records sent to the backend collector.
"""

from enum import Enum
from typing import Any, Dict, Optional

from storefront_telemetry.common.pydantic_types import BaseModel, Field


class LogSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


class SessionProperty(BaseModel):
    key: str
    value: str
    permanent: bool = False


class NetworkRequestRecord(BaseModel):
    url: str
    method: HttpMethod
    start_time: int = Field(..., description="Epoch milliseconds")
    end_time: int = Field(..., description="Epoch milliseconds")
    bytes_sent: Optional[int] = None
    bytes_received: Optional[int] = None
    status_code: Optional[int] = None


class NetworkErrorRecord(BaseModel):
    url: str
    method: HttpMethod
    start_time: int = Field(..., description="Epoch milliseconds")
    end_time: int = Field(..., description="Epoch milliseconds")
    error_type: str
    error_message: str


class NetworkRequestOptions(BaseModel):
    endpoint: str
    method: HttpMethod
    body: Optional[Any] = None


class TransportResult(BaseModel):
    """Outcome of a single send to the backend collector."""

    ok: bool
    error: Optional[str] = None

    @classmethod
    def success(cls) -> "TransportResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, error: str) -> "TransportResult":
        return cls(ok=False, error=error)


Properties = Dict[str, str]
