"""
HTTP Transport Adapters

The gateway consumes a raw transport with two operations:

    get(url) -> TransportResponse(status_code, body)
    post(url, form) -> TransportResponse(status_code, body)

Both raise TransportError for connection, DNS and timeout failures. HTTP
status handling is left to the dispatcher.

HttpxTransport / AsyncHttpxTransport are the default adapters. Connection
pooling belongs to the wrapped httpx client; pass your own client to share a
pool or to inject httpx.MockTransport in tests.
"""

from dataclasses import dataclass
from typing import Mapping, Optional, Protocol

import httpx

from .errors import TransportError


@dataclass(frozen=True)
class TransportResponse:
    """Raw result of one HTTP exchange."""
    status_code: int
    body: str
    content_type: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


class Transport(Protocol):
    def get(self, url: str) -> TransportResponse: ...

    def post(self, url: str, form: Mapping[str, str]) -> TransportResponse: ...


class AsyncTransport(Protocol):
    async def get(self, url: str) -> TransportResponse: ...

    async def post(self, url: str, form: Mapping[str, str]) -> TransportResponse: ...


def _to_transport_response(response: httpx.Response) -> TransportResponse:
    return TransportResponse(
        status_code=response.status_code,
        body=response.text,
        content_type=response.headers.get("content-type")
    )


def _transport_error(e: httpx.HTTPError, method: str, url: str, timeout: float) -> TransportError:
    if isinstance(e, httpx.TimeoutException):
        message = f"{method} timed out after {timeout}s"
    else:
        message = f"{method} failed: {type(e).__name__}: {e}"
    return TransportError(message, details={"url": url.split("?", 1)[0]})


class HttpxTransport:
    """
    Sync transport backed by httpx.Client.

    Usage:
        transport = HttpxTransport(timeout=30.0)
        response = transport.get("https://host/arcgis/rest/services?f=json")
        transport.close()
    """

    def __init__(
        self,
        timeout: float = 60.0,
        user_agent: Optional[str] = None,
        client: Optional[httpx.Client] = None
    ):
        self.timeout = timeout
        self.user_agent = user_agent
        self._client = client

    def _get_client(self) -> httpx.Client:
        """Get or create sync HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"User-Agent": self.user_agent} if self.user_agent else None
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                headers=headers
            )
        return self._client

    def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            self._client.close()

    def __enter__(self) -> "HttpxTransport":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def get(self, url: str) -> TransportResponse:
        try:
            response = self._get_client().get(url)
        except httpx.HTTPError as e:
            raise _transport_error(e, "GET", url, self.timeout) from e
        return _to_transport_response(response)

    def post(self, url: str, form: Mapping[str, str]) -> TransportResponse:
        try:
            response = self._get_client().post(url, data=dict(form))
        except httpx.HTTPError as e:
            raise _transport_error(e, "POST", url, self.timeout) from e
        return _to_transport_response(response)


class AsyncHttpxTransport:
    """
    Async transport backed by httpx.AsyncClient.

    Cancellation (asyncio.CancelledError) passes through untouched.
    """

    def __init__(
        self,
        timeout: float = 60.0,
        user_agent: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.timeout = timeout
        self.user_agent = user_agent
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"User-Agent": self.user_agent} if self.user_agent else None
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                headers=headers
            )
        return self._client

    async def aclose(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "AsyncHttpxTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def get(self, url: str) -> TransportResponse:
        try:
            response = await self._get_client().get(url)
        except httpx.HTTPError as e:
            raise _transport_error(e, "GET", url, self.timeout) from e
        return _to_transport_response(response)

    async def post(self, url: str, form: Mapping[str, str]) -> TransportResponse:
        try:
            response = await self._get_client().post(url, data=dict(form))
        except httpx.HTTPError as e:
            raise _transport_error(e, "POST", url, self.timeout) from e
        return _to_transport_response(response)
