"""
GeoServices Gateway Errors

Error taxonomy for the gateway:

- RequestTooLarge: GET was mandated but the encoded URL exceeds the limit.
  Recoverable by the caller re-issuing the call as POST.
- TransportError: network or HTTP-level failure from the transport.
- ProtocolError: response body is malformed or structurally inconsistent
  (including edit result count mismatches).

Service-level errors (a well-formed response with a top-level "error" object)
are NOT raised by the gateway. They come back as data on
PortalResponse.error; ServiceError exists for callers that opt in via
PortalResponse.raise_for_error().

Cancellation of an async call is asyncio.CancelledError, re-exported here as
Cancelled. It is never converted into TransportError.
"""

from asyncio import CancelledError as Cancelled
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Tag carried by every gateway failure."""
    REQUEST_TOO_LARGE = "request_too_large"
    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    SERVICE = "service"


class GatewayError(Exception):
    """Base class for all gateway failures."""

    kind: ErrorKind = ErrorKind.PROTOCOL

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class RequestTooLarge(GatewayError):
    """Encoded GET URL exceeds the configured maximum length."""

    kind = ErrorKind.REQUEST_TOO_LARGE

    def __init__(self, url_length: int, max_url_length: int):
        super().__init__(
            f"Encoded GET url is {url_length} characters, "
            f"limit is {max_url_length}; send the request as POST instead",
            details={"url_length": url_length, "max_url_length": max_url_length}
        )
        self.url_length = url_length
        self.max_url_length = max_url_length


class TransportError(GatewayError):
    """Connection, timeout, DNS or HTTP status failure."""

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, *, status_code: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)
        self.status_code = status_code


class ProtocolError(GatewayError):
    """Response body does not parse or violates the response contract."""

    kind = ErrorKind.PROTOCOL


class ServiceError(GatewayError):
    """Top-level error object reported by the service."""

    kind = ErrorKind.SERVICE

    def __init__(self, message: str, *, code: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)
        self.code = code


__all__ = [
    "Cancelled",
    "ErrorKind",
    "GatewayError",
    "RequestTooLarge",
    "TransportError",
    "ProtocolError",
    "ServiceError",
]
