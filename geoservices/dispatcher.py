"""
Request Dispatcher

Decides GET vs POST for one serialized request, enforces the URL-length
contract and performs exactly one transport call.

GET is only used when the caller asks for it. If the fully encoded GET url
(path + query string) is longer than max_url_length, the dispatcher does not
touch the network and does not fall back to POST; it returns a result tagged
ErrorKind.REQUEST_TOO_LARGE so the caller can decide to re-issue as POST.

The dispatcher never raises for the error kinds it knows about. It returns a
DispatchResult whose error_kind callers branch on, or converts to the typed
exception with raise_for_error().
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional

import httpx

from util_logger import ComponentType, LoggerFactory

from .errors import ErrorKind, RequestTooLarge, TransportError
from .transport import AsyncTransport, Transport, TransportResponse

logger = LoggerFactory.create_logger(ComponentType.ADAPTER, "RequestDispatcher")

GET = "GET"
POST = "POST"


@dataclass
class DispatchResult:
    """Outcome of one dispatch: a response body or a tagged failure."""
    success: bool
    method: str
    url: str
    status_code: Optional[int] = None
    body: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    url_length: Optional[int] = None
    max_url_length: Optional[int] = None

    def raise_for_error(self) -> None:
        """
        Raise the typed exception matching error_kind.

        Raises:
            RequestTooLarge: GET url exceeded the limit
            TransportError: Network failure or non-2xx HTTP status
        """
        if self.success:
            return
        if self.error_kind is ErrorKind.REQUEST_TOO_LARGE:
            raise RequestTooLarge(self.url_length, self.max_url_length)
        raise TransportError(
            self.error or "Transport failure",
            status_code=self.status_code,
            details={"method": self.method, "url": self.url}
        )


@dataclass(frozen=True)
class _RequestPlan:
    method: str
    url: str
    form: Dict[str, str]
    get_url: Optional[str] = None


class RequestDispatcher:
    """
    Chooses the HTTP method and sends one request through a transport.

    Usage:
        dispatcher = RequestDispatcher(transport=HttpxTransport(), max_url_length=2047)
        result = dispatcher.send(url, {"f": "json", "where": "1=1"}, prefer_get=True)
        if result.error_kind is ErrorKind.REQUEST_TOO_LARGE:
            result = dispatcher.send(url, form, prefer_get=False)
        result.raise_for_error()
    """

    def __init__(
        self,
        transport: Optional[Transport] = None,
        async_transport: Optional[AsyncTransport] = None,
        max_url_length: int = 2047
    ):
        self.transport = transport
        self.async_transport = async_transport
        self.max_url_length = max_url_length

    @staticmethod
    def build_get_url(url: str, form: Mapping[str, str]) -> str:
        """
        Fully encoded GET url for a form, path included.

        This exact string is both measured and sent, so non-ASCII or spaced
        path segments count at their percent-encoded length.
        """
        return str(httpx.URL(url, params=dict(form)))

    def _plan(self, url: str, form: Mapping[str, str], prefer_get: bool):
        """Return a _RequestPlan, or a failed DispatchResult when GET overflows."""
        form = dict(form)
        if not prefer_get:
            return _RequestPlan(method=POST, url=url, form=form)

        get_url = self.build_get_url(url, form)
        if len(get_url) > self.max_url_length:
            logger.warning(
                f"GET url too long ({len(get_url)} > {self.max_url_length}): {url}",
                extra={'custom_dimensions': {
                    'url_length': len(get_url),
                    'max_url_length': self.max_url_length
                }}
            )
            return DispatchResult(
                success=False,
                method=GET,
                url=url,
                error_kind=ErrorKind.REQUEST_TOO_LARGE,
                error=f"Encoded GET url is {len(get_url)} characters, limit is {self.max_url_length}",
                url_length=len(get_url),
                max_url_length=self.max_url_length
            )
        return _RequestPlan(method=GET, url=url, form=form, get_url=get_url)

    @staticmethod
    def _complete(plan: _RequestPlan, response: TransportResponse) -> DispatchResult:
        if not response.is_success:
            logger.warning(f"{plan.method} {plan.url} returned HTTP {response.status_code}")
            return DispatchResult(
                success=False,
                method=plan.method,
                url=plan.url,
                status_code=response.status_code,
                body=response.body,
                error_kind=ErrorKind.TRANSPORT,
                error=f"HTTP {response.status_code} from {plan.method} {plan.url}"
            )
        return DispatchResult(
            success=True,
            method=plan.method,
            url=plan.url,
            status_code=response.status_code,
            body=response.body
        )

    @staticmethod
    def _failed(plan: _RequestPlan, e: TransportError) -> DispatchResult:
        logger.warning(f"{plan.method} {plan.url} failed: {e}")
        return DispatchResult(
            success=False,
            method=plan.method,
            url=plan.url,
            status_code=e.status_code,
            error_kind=ErrorKind.TRANSPORT,
            error=str(e)
        )

    def send(self, url: str, form: Mapping[str, str], prefer_get: bool = False) -> DispatchResult:
        """
        Send one request synchronously.

        Args:
            url: Absolute operation url (no query string)
            form: Serialized parameters
            prefer_get: Send as GET (subject to max_url_length); POST otherwise

        Returns:
            DispatchResult with body or tagged failure
        """
        if self.transport is None:
            raise RuntimeError("RequestDispatcher has no sync transport")

        plan = self._plan(url, form, prefer_get)
        if isinstance(plan, DispatchResult):
            return plan

        logger.debug(f"{plan.method} {plan.url}")
        try:
            if plan.method == GET:
                response = self.transport.get(plan.get_url)
            else:
                response = self.transport.post(plan.url, plan.form)
        except TransportError as e:
            return self._failed(plan, e)
        return self._complete(plan, response)

    async def send_async(self, url: str, form: Mapping[str, str], prefer_get: bool = False) -> DispatchResult:
        """Async counterpart of send(); cancellation propagates unchanged."""
        if self.async_transport is None:
            raise RuntimeError("RequestDispatcher has no async transport")

        plan = self._plan(url, form, prefer_get)
        if isinstance(plan, DispatchResult):
            return plan

        logger.debug(f"{plan.method} {plan.url}")
        try:
            if plan.method == GET:
                response = await self.async_transport.get(plan.get_url)
            else:
                response = await self.async_transport.post(plan.url, plan.form)
        except TransportError as e:
            return self._failed(plan, e)
        return self._complete(plan, response)
