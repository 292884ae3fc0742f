"""Tests for GET/POST selection and the URL-length contract."""

import asyncio

import pytest

from geoservices.dispatcher import RequestDispatcher
from geoservices.errors import ErrorKind, RequestTooLarge, TransportError
from geoservices.transport import TransportResponse

URL = "https://host/arcgis/rest/services/Layer/MapServer/0/query"


class StubTransport:
    """Records calls and returns a fixed response or raises a fixed error."""

    def __init__(self, response=None, error=None):
        self.response = response or TransportResponse(200, '{"features": []}')
        self.error = error
        self.calls = []

    def get(self, url):
        self.calls.append(("GET", url, None))
        if self.error:
            raise self.error
        return self.response

    def post(self, url, form):
        self.calls.append(("POST", url, dict(form)))
        if self.error:
            raise self.error
        return self.response


class AsyncStubTransport(StubTransport):
    async def get(self, url):
        return StubTransport.get(self, url)

    async def post(self, url, form):
        return StubTransport.post(self, url, form)


class TestMethodSelection:
    def test_post_by_default(self):
        transport = StubTransport()
        result = RequestDispatcher(transport=transport).send(URL, {"f": "json", "where": "1=1"})
        assert result.success
        assert result.method == "POST"
        assert transport.calls == [("POST", URL, {"f": "json", "where": "1=1"})]

    def test_get_when_preferred(self):
        transport = StubTransport()
        result = RequestDispatcher(transport=transport).send(URL, {"f": "json", "where": "1=1"}, prefer_get=True)
        assert result.method == "GET"
        assert transport.calls[0][1] == URL + "?f=json&where=1%3D1"

    def test_get_url_without_parameters(self):
        assert RequestDispatcher.build_get_url(URL, {}) == URL

    def test_get_url_encodes_path(self):
        url = "https://host/arcgis/rest/services/Gewässer/Flüsse/MapServer/0/query"
        get_url = RequestDispatcher.build_get_url(url, {"f": "json"})
        assert get_url.startswith("https://host/arcgis/rest/services/Gew%C3%A4sser/Fl%C3%BCsse/")
        assert get_url.endswith("?f=json")

    def test_sent_url_is_the_measured_url(self):
        url = "https://host/arcgis/rest/services/Flüsse Nord/MapServer/0/query"
        form = {"f": "json", "where": "name = 'Süd'"}
        limit = len(RequestDispatcher.build_get_url(url, form))
        transport = StubTransport()
        RequestDispatcher(transport=transport, max_url_length=limit).send(url, form, prefer_get=True)
        assert len(transport.calls[0][1]) == limit


class TestUrlLength:
    def test_too_long_get_never_reaches_transport(self):
        transport = StubTransport()
        dispatcher = RequestDispatcher(transport=transport, max_url_length=100)
        result = dispatcher.send(URL, {"where": "x" * 200}, prefer_get=True)

        assert not result.success
        assert result.error_kind is ErrorKind.REQUEST_TOO_LARGE
        assert result.url_length > 100
        assert result.max_url_length == 100
        assert transport.calls == []

    def test_too_large_is_distinct_from_transport_error(self):
        dispatcher = RequestDispatcher(transport=StubTransport(), max_url_length=100)
        result = dispatcher.send(URL, {"where": "x" * 200}, prefer_get=True)
        with pytest.raises(RequestTooLarge) as exc_info:
            result.raise_for_error()
        assert not isinstance(exc_info.value, TransportError)

    def test_url_at_limit_is_sent(self):
        form = {"where": "1=1"}
        limit = len(RequestDispatcher.build_get_url(URL, form))
        transport = StubTransport()
        result = RequestDispatcher(transport=transport, max_url_length=limit).send(URL, form, prefer_get=True)
        assert result.success
        assert len(transport.calls) == 1

    def test_long_post_is_not_limited(self):
        transport = StubTransport()
        dispatcher = RequestDispatcher(transport=transport, max_url_length=100)
        result = dispatcher.send(URL, {"where": "x" * 5000})
        assert result.success
        assert transport.calls[0][0] == "POST"


class TestFailures:
    def test_non_2xx_is_transport_failure(self):
        transport = StubTransport(response=TransportResponse(503, "Service Unavailable"))
        result = RequestDispatcher(transport=transport).send(URL, {})
        assert result.error_kind is ErrorKind.TRANSPORT
        assert result.status_code == 503
        with pytest.raises(TransportError) as exc_info:
            result.raise_for_error()
        assert exc_info.value.status_code == 503

    def test_transport_exception_becomes_result(self):
        transport = StubTransport(error=TransportError("POST failed: ConnectError"))
        result = RequestDispatcher(transport=transport).send(URL, {})
        assert not result.success
        assert result.error_kind is ErrorKind.TRANSPORT
        assert "ConnectError" in result.error

    def test_missing_transport(self):
        with pytest.raises(RuntimeError):
            RequestDispatcher().send(URL, {})


class TestAsyncDispatch:
    def test_send_async(self):
        transport = AsyncStubTransport()
        dispatcher = RequestDispatcher(async_transport=transport)
        result = asyncio.run(dispatcher.send_async(URL, {"f": "json"}, prefer_get=True))
        assert result.success
        assert transport.calls[0][0] == "GET"

    def test_async_too_large(self):
        transport = AsyncStubTransport()
        dispatcher = RequestDispatcher(async_transport=transport, max_url_length=10)
        result = asyncio.run(dispatcher.send_async(URL, {"f": "json"}, prefer_get=True))
        assert result.error_kind is ErrorKind.REQUEST_TOO_LARGE
        assert transport.calls == []
