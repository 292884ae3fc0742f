"""
Portal Gateway - Query and Edit Executors

Composes Serializer -> RequestDispatcher -> decoder for each call:

    query(query, Point)          POST, QueryResponse of Points
    query_as_get(query, Point)   GET, same serialization and decoding
    query_for_count(query)       POST, QueryForCountResponse
    query_for_ids(query)         POST, QueryForIdsResponse
    apply_edits(edits)           POST always, results reconciled by position
    ping(endpoint)               GET, PortalResponse (service error as data)

PortalGateway is synchronous; AsyncPortalGateway exposes the same operations
as coroutines. Both hold only immutable configuration plus a transport, so a
single gateway may serve concurrent calls.

Usage:
    gateway = PortalGateway("https://sampleserver6.arcgisonline.com/arcgis/")
    query = Query(endpoint="Hydrography/Watershed173811/MapServer/1",
                  out_fields="lengthkm", return_geometry=False)
    result = gateway.query(query, Polyline)
    for feature in result.features:
        print(feature.attributes["lengthkm"])
"""

from typing import Dict, Optional, Tuple, Type, TypeVar, Union

from config import DEFAULT_MAX_URL_LENGTH, GatewaySettings, normalize_root_url
from util_logger import ComponentType, LoggerFactory, log_exceptions

from .dispatcher import DispatchResult, RequestDispatcher
from .errors import ProtocolError
from .geometry import Geometry, GeometryType, resolve_geometry_type
from .models import (
    ApplyEdits,
    ApplyEditsResponse,
    CommonParameters,
    Endpoint,
    PortalResponse,
    Query,
    QueryForCount,
    QueryForCountResponse,
    QueryForIds,
    QueryForIdsResponse,
    QueryResponse,
    as_endpoint,
)
from .serializer import Serializer
from .transport import AsyncHttpxTransport, AsyncTransport, HttpxTransport, Transport

logger = LoggerFactory.create_logger(ComponentType.SERVICE, "PortalGateway")

T = TypeVar("T", bound=PortalResponse)
GeometryBinding = Union[Type[Geometry], GeometryType, str]


class _GatewayBase:
    """Shared configuration, request preparation and response checks."""

    def __init__(
        self,
        root_url: Optional[str] = None,
        token: Optional[str] = None,
        *,
        settings: Optional[GatewaySettings] = None,
        serializer: Optional[Serializer] = None,
        max_url_length: Optional[int] = None
    ):
        if root_url is None and settings is None:
            raise ValueError("Gateway requires root_url or settings")

        self._root_url = normalize_root_url(root_url if root_url is not None else settings.root_url)
        self._token = token if token is not None else (settings.token if settings else None)
        if max_url_length is None:
            max_url_length = settings.max_url_length if settings else DEFAULT_MAX_URL_LENGTH
        if max_url_length < 1:
            raise ValueError(f"max_url_length must be at least 1, got {max_url_length}")
        self._max_url_length = max_url_length
        self._timeout = settings.timeout_seconds if settings else 60.0
        self._user_agent = settings.user_agent if settings else None
        self.serializer = serializer or Serializer()

    @property
    def root_url(self) -> str:
        return self._root_url

    @property
    def max_url_length(self) -> int:
        return self._max_url_length

    # =========================================================================
    # Request preparation
    # =========================================================================

    def _prepare(
        self,
        endpoint: Endpoint,
        parameters: Optional[CommonParameters] = None
    ) -> Tuple[str, Dict[str, str]]:
        """Absolute url and serialized form for one call."""
        url = endpoint.build_absolute_url(self._root_url)
        form = {"f": "json"}
        form.update(self.serializer.as_dictionary(parameters))
        if self._token:
            form["token"] = self._token
        return url, form

    def _decode(
        self,
        result: DispatchResult,
        response_type: Type[T],
        geometry: Optional[Type[Geometry]] = None
    ) -> Optional[T]:
        result.raise_for_error()
        return self.serializer.as_portal_response(result.body, response_type, geometry)

    # =========================================================================
    # Response contracts
    # =========================================================================

    @staticmethod
    def _check_query_response(query: Query, response: Optional[QueryResponse]) -> Optional[QueryResponse]:
        """
        Enforce the feature invariants the query asked for.

        Raises:
            ProtocolError: Geometry returned when returnGeometry=false, or an
                attribute count that differs from the requested field list
        """
        if response is None or response.error is not None:
            return response

        if query.return_geometry is False:
            with_geometry = [i for i, f in enumerate(response.features) if f.geometry is not None]
            if with_geometry:
                raise ProtocolError(
                    f"Service returned geometry for {len(with_geometry)} feature(s) "
                    f"although returnGeometry=false",
                    details={"positions": with_geometry[:20]}
                )

        fields = query.requested_fields()
        if fields is not None:
            expected = len(fields)
            mismatched = [
                i for i, f in enumerate(response.features) if len(f.attributes) != expected
            ]
            if mismatched:
                raise ProtocolError(
                    f"Requested {expected} field(s) but {len(mismatched)} feature(s) "
                    f"carry a different attribute count",
                    details={"out_fields": fields, "positions": mismatched[:20]}
                )
        return response

    @staticmethod
    def _reconcile_edits(edits: ApplyEdits, response: Optional[ApplyEditsResponse]) -> ApplyEditsResponse:
        """
        Check that every result list matches its input list position by position.

        Raises:
            ProtocolError: Missing response for a non-empty batch, or a result
                count that differs from the input count
        """
        if response is None:
            if edits.is_empty:
                return ApplyEditsResponse()
            raise ProtocolError("Service returned an empty body for a non-empty edit batch")

        if response.error is not None:
            return response

        pairs = (
            ("adds", edits.adds, response.addResults),
            ("updates", edits.updates, response.updateResults),
            ("deletes", edits.deletes, response.deleteResults),
        )
        for name, inputs, results in pairs:
            if len(inputs) != len(results):
                raise ProtocolError(
                    f"Edit result count mismatch for {name}: sent {len(inputs)}, "
                    f"received {len(results)}",
                    details={"operation": name, "sent": len(inputs), "received": len(results)}
                )

        failures = response.failures
        if failures:
            logger.warning(
                f"applyEdits completed with {len(failures)} failed item(s)",
                extra={'custom_dimensions': {
                    'failed': len(failures),
                    'adds': len(edits.adds),
                    'updates': len(edits.updates),
                    'deletes': len(edits.deletes)
                }}
            )
        return response

    @staticmethod
    def _log_query(query: Query, response: Optional[QueryResponse], method: str) -> None:
        count = len(response.features) if response is not None else 0
        logger.info(
            f"Query {query.endpoint.relative_url} via {method} returned {count} feature(s)",
            extra={'custom_dimensions': {
                'endpoint': query.endpoint.relative_url,
                'method': method,
                'feature_count': count,
                'service_error': response.error.code if response is not None and response.error else None
            }}
        )


class PortalGateway(_GatewayBase):
    """
    Synchronous gateway to a GeoServices REST server.

    Args:
        root_url: Server root (e.g. https://host/arcgis/); validated and
            normalized to end with "/". Defaults to settings.root_url.
        token: Optional access token sent with every request
        settings: GatewaySettings supplying any value not passed explicitly
        transport: Sync transport; defaults to HttpxTransport
        serializer: Serializer; defaults to Serializer()
        max_url_length: GET url limit; defaults to settings or 2047
    """

    def __init__(
        self,
        root_url: Optional[str] = None,
        token: Optional[str] = None,
        *,
        settings: Optional[GatewaySettings] = None,
        transport: Optional[Transport] = None,
        serializer: Optional[Serializer] = None,
        max_url_length: Optional[int] = None
    ):
        super().__init__(
            root_url, token,
            settings=settings, serializer=serializer, max_url_length=max_url_length
        )
        self.transport = transport or HttpxTransport(timeout=self._timeout, user_agent=self._user_agent)
        self.dispatcher = RequestDispatcher(transport=self.transport, max_url_length=self._max_url_length)

    def close(self):
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "PortalGateway":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def ping(self, endpoint: Union[str, Endpoint] = "") -> Optional[PortalResponse]:
        """
        Liveness check against an endpoint (the services root by default).

        A reachable server that reports an error comes back with
        response.error set; an unreachable one raises TransportError.
        """
        url, form = self._prepare(as_endpoint(endpoint))
        return self._decode(self.dispatcher.send(url, form, prefer_get=True), PortalResponse)

    def query(self, query: Query, geometry: GeometryBinding) -> Optional[QueryResponse]:
        """Query features, sent as POST."""
        return self._query(query, geometry, prefer_get=False)

    def query_as_get(self, query: Query, geometry: GeometryBinding) -> Optional[QueryResponse]:
        """
        Query features, sent as GET.

        Raises:
            RequestTooLarge: Encoded url exceeds max_url_length; nothing was sent
        """
        return self._query(query, geometry, prefer_get=True)

    def _query(self, query: Query, geometry: GeometryBinding, prefer_get: bool) -> Optional[QueryResponse]:
        geometry_cls = resolve_geometry_type(geometry)
        query = query.with_defaults()
        url, form = self._prepare(query.request_endpoint(), query)
        result = self.dispatcher.send(url, form, prefer_get=prefer_get)
        response = self._decode(result, QueryResponse, geometry_cls)
        self._log_query(query, response, result.method)
        return self._check_query_response(query, response)

    def query_for_count(self, query: Query) -> Optional[QueryForCountResponse]:
        """Number of features matching the query."""
        query = query.with_defaults().as_variant(QueryForCount)
        url, form = self._prepare(query.request_endpoint(), query)
        return self._decode(self.dispatcher.send(url, form), QueryForCountResponse)

    def query_for_ids(self, query: Query) -> Optional[QueryForIdsResponse]:
        """Object IDs of features matching the query."""
        query = query.with_defaults().as_variant(QueryForIds)
        url, form = self._prepare(query.request_endpoint(), query)
        return self._decode(self.dispatcher.send(url, form), QueryForIdsResponse)

    @log_exceptions(logger=logger)
    def apply_edits(self, edits: ApplyEdits) -> ApplyEditsResponse:
        """
        Apply a batch of adds, updates and deletes (always POST).

        Individual item failures are reported through EditResult.success and
        never raise.

        Raises:
            ProtocolError: Result counts do not match the inputs
            TransportError: Network or HTTP failure
        """
        url, form = self._prepare(edits.request_endpoint(), edits)
        response = self._decode(self.dispatcher.send(url, form, prefer_get=False), ApplyEditsResponse)
        return self._reconcile_edits(edits, response)


class AsyncPortalGateway(_GatewayBase):
    """
    Async gateway; same operations as PortalGateway, awaited.

    Cancelling a call raises asyncio.CancelledError (geoservices.Cancelled),
    never TransportError.
    """

    def __init__(
        self,
        root_url: Optional[str] = None,
        token: Optional[str] = None,
        *,
        settings: Optional[GatewaySettings] = None,
        transport: Optional[AsyncTransport] = None,
        serializer: Optional[Serializer] = None,
        max_url_length: Optional[int] = None
    ):
        super().__init__(
            root_url, token,
            settings=settings, serializer=serializer, max_url_length=max_url_length
        )
        self.transport = transport or AsyncHttpxTransport(timeout=self._timeout, user_agent=self._user_agent)
        self.dispatcher = RequestDispatcher(async_transport=self.transport, max_url_length=self._max_url_length)

    async def aclose(self):
        aclose = getattr(self.transport, "aclose", None)
        if aclose is not None:
            await aclose()

    async def __aenter__(self) -> "AsyncPortalGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def ping(self, endpoint: Union[str, Endpoint] = "") -> Optional[PortalResponse]:
        url, form = self._prepare(as_endpoint(endpoint))
        result = await self.dispatcher.send_async(url, form, prefer_get=True)
        return self._decode(result, PortalResponse)

    async def query(self, query: Query, geometry: GeometryBinding) -> Optional[QueryResponse]:
        return await self._query(query, geometry, prefer_get=False)

    async def query_as_get(self, query: Query, geometry: GeometryBinding) -> Optional[QueryResponse]:
        return await self._query(query, geometry, prefer_get=True)

    async def _query(self, query: Query, geometry: GeometryBinding, prefer_get: bool) -> Optional[QueryResponse]:
        geometry_cls = resolve_geometry_type(geometry)
        query = query.with_defaults()
        url, form = self._prepare(query.request_endpoint(), query)
        result = await self.dispatcher.send_async(url, form, prefer_get=prefer_get)
        response = self._decode(result, QueryResponse, geometry_cls)
        self._log_query(query, response, result.method)
        return self._check_query_response(query, response)

    async def query_for_count(self, query: Query) -> Optional[QueryForCountResponse]:
        query = query.with_defaults().as_variant(QueryForCount)
        url, form = self._prepare(query.request_endpoint(), query)
        return self._decode(await self.dispatcher.send_async(url, form), QueryForCountResponse)

    async def query_for_ids(self, query: Query) -> Optional[QueryForIdsResponse]:
        query = query.with_defaults().as_variant(QueryForIds)
        url, form = self._prepare(query.request_endpoint(), query)
        return self._decode(await self.dispatcher.send_async(url, form), QueryForIdsResponse)

    @log_exceptions(logger=logger)
    async def apply_edits(self, edits: ApplyEdits) -> ApplyEditsResponse:
        url, form = self._prepare(edits.request_endpoint(), edits)
        result = await self.dispatcher.send_async(url, form, prefer_get=False)
        return self._reconcile_edits(edits, self._decode(result, ApplyEditsResponse))
