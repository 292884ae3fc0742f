"""
Shared test fixtures.

Builds gateways on top of httpx.MockTransport so every request the gateway
sends is recorded and answered from a queue of canned Esri JSON bodies.
"""

import json
from urllib.parse import parse_qsl

import httpx
import pytest

from geoservices import AsyncHttpxTransport, AsyncPortalGateway, HttpxTransport, PortalGateway

ROOT_URL = "https://sampleserver6.arcgisonline.com/arcgis/"
WATERSHED_LAYER = "Hydrography/Watershed173811/MapServer/1"
WILDFIRE_LAYER = "Wildfire/FeatureServer/0"


class RecordingServer:
    """Answers requests from a FIFO of responses and records what was sent."""

    def __init__(self):
        self.requests = []
        self._responses = []

    def respond(self, body, status_code=200):
        if not isinstance(body, str):
            body = json.dumps(body)
        self._responses.append(httpx.Response(status_code, text=body))

    def fail(self, exc_type=httpx.ConnectError, message="connection refused"):
        self._responses.append((exc_type, message))

    def handler(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        if not self._responses:
            return httpx.Response(200, text="{}")
        item = self._responses.pop(0)
        if isinstance(item, tuple):
            exc_type, message = item
            raise exc_type(message, request=request)
        return item

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    @staticmethod
    def params(request: httpx.Request) -> dict:
        """Parameters of a GET query string or POST form body."""
        if request.method == "GET":
            return dict(request.url.params)
        return dict(parse_qsl(request.content.decode("utf-8"), keep_blank_values=True))


@pytest.fixture
def server():
    return RecordingServer()


@pytest.fixture
def gateway(server):
    client = httpx.Client(transport=httpx.MockTransport(server.handler))
    with PortalGateway(ROOT_URL, transport=HttpxTransport(client=client)) as gw:
        yield gw


@pytest.fixture
def async_gateway(server):
    client = httpx.AsyncClient(transport=httpx.MockTransport(server.handler))
    return AsyncPortalGateway(ROOT_URL, transport=AsyncHttpxTransport(client=client))


# ============================================================================
# Sample Esri JSON bodies
# ============================================================================

@pytest.fixture
def point_query_body():
    return {
        "objectIdFieldName": "objectid",
        "geometryType": "esriGeometryPoint",
        "spatialReference": {"wkid": 102100, "latestWkid": 3857},
        "fields": [
            {"name": "objectid", "type": "esriFieldTypeOID", "alias": "OBJECTID"},
            {"name": "description", "type": "esriFieldTypeString", "alias": "Description", "length": 255},
        ],
        "features": [
            {"attributes": {"objectid": 1, "description": "Brush fire"},
             "geometry": {"x": -13046000.5, "y": 4036000.25}},
            {"attributes": {"objectid": 2, "description": "Smoke"},
             "geometry": {"x": -13045000.0, "y": 4037000.0}},
        ],
    }


@pytest.fixture
def polyline_query_body():
    return {
        "geometryType": "esriGeometryPolyline",
        "features": [
            {"attributes": {"lengthkm": 1.52},
             "geometry": {"paths": [[[-97.06, 32.83], [-97.07, 32.84], [-97.08, 32.85]]]}},
            {"attributes": {"lengthkm": 0.87},
             "geometry": {"paths": [[[-97.10, 32.80], [-97.11, 32.81]]]}},
        ],
    }


@pytest.fixture
def polygon_query_body():
    return {
        "geometryType": "esriGeometryPolygon",
        "features": [
            {"attributes": {"areasqkm": 12.4},
             "geometry": {"rings": [[[0, 0], [0, 10], [10, 10], [10, 0], [0, 0]]],
                          "spatialReference": {"wkid": 4326}}},
        ],
    }


@pytest.fixture
def service_error_body():
    return {
        "error": {
            "code": 400,
            "message": "Unable to complete operation.",
            "details": ["Invalid query parameters."],
        }
    }
