"""
GeoServices REST Gateway

Typed client protocol layer for ArcGIS-style feature services: query layers
as GET or POST, apply edit batches and reconcile their per-item results,
with explicit URL-length handling and a closed set of geometry variants.

Architecture:
    geoservices/
    ├── errors.py      # RequestTooLarge, TransportError, ProtocolError, ...
    ├── geometry.py    # Point, Polyline, Polygon, SpatialReference
    ├── models.py      # Query / ApplyEdits parameters, response models
    ├── serializer.py  # Parameters -> wire dict, body -> typed response
    ├── transport.py   # httpx-backed sync and async transports
    ├── dispatcher.py  # GET/POST choice and URL-length contract
    └── gateway.py     # PortalGateway / AsyncPortalGateway executors

Usage:
    from geoservices import PortalGateway, Query, Polyline

    with PortalGateway("https://sampleserver6.arcgisonline.com/arcgis/") as gateway:
        result = gateway.query(
            Query(endpoint="Hydrography/Watershed173811/MapServer/1", out_fields="lengthkm"),
            Polyline
        )
"""

from .dispatcher import DispatchResult, RequestDispatcher
from .errors import (
    Cancelled,
    ErrorKind,
    GatewayError,
    ProtocolError,
    RequestTooLarge,
    ServiceError,
    TransportError,
)
from .gateway import AsyncPortalGateway, PortalGateway
from .geometry import (
    WEB_MERCATOR,
    WGS84,
    Geometry,
    GeometryType,
    Point,
    Polygon,
    Polyline,
    SpatialReference,
    resolve_geometry_type,
)
from .models import (
    ApplyEdits,
    ApplyEditsResponse,
    CommonParameters,
    EditErrorInfo,
    EditResult,
    Endpoint,
    Feature,
    FieldInfo,
    PortalResponse,
    Query,
    QueryForCount,
    QueryForCountResponse,
    QueryForIds,
    QueryForIdsResponse,
    QueryResponse,
    ServiceErrorInfo,
)
from .serializer import DEFAULT_ENCODING, EncodingOptions, Serializer
from .transport import (
    AsyncHttpxTransport,
    AsyncTransport,
    HttpxTransport,
    Transport,
    TransportResponse,
)

__version__ = "0.1.0"

__all__ = [
    # Gateways
    "PortalGateway",
    "AsyncPortalGateway",
    # Geometry
    "Geometry",
    "GeometryType",
    "Point",
    "Polyline",
    "Polygon",
    "SpatialReference",
    "WGS84",
    "WEB_MERCATOR",
    "resolve_geometry_type",
    # Parameters and responses
    "Endpoint",
    "Feature",
    "CommonParameters",
    "Query",
    "QueryForCount",
    "QueryForIds",
    "ApplyEdits",
    "PortalResponse",
    "ServiceErrorInfo",
    "FieldInfo",
    "QueryResponse",
    "QueryForCountResponse",
    "QueryForIdsResponse",
    "EditErrorInfo",
    "EditResult",
    "ApplyEditsResponse",
    # Serialization and transport
    "Serializer",
    "EncodingOptions",
    "DEFAULT_ENCODING",
    "RequestDispatcher",
    "DispatchResult",
    "Transport",
    "AsyncTransport",
    "TransportResponse",
    "HttpxTransport",
    "AsyncHttpxTransport",
    # Errors
    "Cancelled",
    "ErrorKind",
    "GatewayError",
    "RequestTooLarge",
    "TransportError",
    "ProtocolError",
    "ServiceError",
]
