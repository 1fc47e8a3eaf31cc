"""
Tests for the layer HTTP client.
"""

import pytest
import requests

from arcscrape.client import LayerClient
from arcscrape.errors import ParseError, TransportError
from conftest import LAYER_URL, FakeResponse


@pytest.fixture
def client():
    return LayerClient(LAYER_URL + "/", timeout=5.0, max_retries=0, retry_base_delay=0.0)


class TestEnumeration:
    """Metadata and ID list requests."""

    def test_layer_name(self, fake_server, client):
        server = fake_server([1, 2], name="Roads")

        assert client.get_layer_name() == "Roads"
        assert server.calls[0]["url"] == LAYER_URL
        assert server.calls[0]["params"] == {"f": "json"}
        assert server.calls[0]["timeout"] == 5.0

    def test_object_ids_request_shape(self, fake_server, client):
        server = fake_server([3, 1, 2])

        assert client.get_object_ids() == [3, 1, 2]
        assert server.calls[0]["url"] == LAYER_URL + "/query"
        assert server.calls[0]["params"] == {
            "where": "1=1",
            "returnIdsOnly": "true",
            "f": "json",
            "outSR": "3857",
        }

    def test_null_object_ids_is_empty(self, fake_server, client):
        server = fake_server([])
        server.ids_response = FakeResponse(payload={"objectIds": None})

        assert client.get_object_ids() == []

    def test_missing_object_ids(self, fake_server, client):
        server = fake_server([])
        server.ids_response = FakeResponse(payload={"count": 0})

        with pytest.raises(ParseError):
            client.get_object_ids()

    def test_metadata_without_name(self, fake_server, client):
        server = fake_server([])
        server.metadata_response = FakeResponse(payload={"type": "Feature Layer"})

        with pytest.raises(ParseError):
            client.get_layer_name()


class TestErrorMapping:
    """HTTP and body failures map onto the error taxonomy."""

    def test_non_200_status(self, fake_server, client):
        server = fake_server([])
        server.metadata_response = FakeResponse(status_code=404, payload={}, reason="Not Found")

        with pytest.raises(TransportError, match="404"):
            client.get_layer_name()

    def test_malformed_json(self, fake_server, client):
        server = fake_server([])
        server.metadata_response = FakeResponse(text="<html>oops</html>")

        with pytest.raises(ParseError):
            client.get_layer_name()

    def test_error_body_with_200(self, fake_server, client):
        """ArcGIS reports errors inside a 200 response."""
        server = fake_server([1])
        server.fail_batch(1, FakeResponse(payload={"error": {"code": 400, "message": "Invalid query"}}))

        with pytest.raises(TransportError, match="Invalid query"):
            client.query({"where": "OBJECTID in (1)", "outFields": "*", "f": "json"})

    def test_connection_error(self, fake_server, client):
        server = fake_server([1])
        server.fail_batch(1, requests.exceptions.ConnectionError("refused"))

        with pytest.raises(TransportError):
            client.query({"where": "OBJECTID in (1)", "outFields": "*", "f": "json"})

    def test_query_without_features(self, fake_server, client):
        server = fake_server([1])
        server.fail_batch(1, FakeResponse(payload={"objectIdFieldName": "OBJECTID"}))

        with pytest.raises(ParseError):
            client.query({"where": "OBJECTID in (1)", "outFields": "*", "f": "json"})


class TestRetry:
    """Transient failures are retried before giving up."""

    def test_retries_503_then_succeeds(self, monkeypatch):
        responses = [
            FakeResponse(status_code=503, payload={}, reason="Service Unavailable"),
            FakeResponse(payload={"name": "Parcels"}),
        ]
        calls = []

        def metadata(url, params=None, timeout=None):
            calls.append(url)
            return responses.pop(0)

        monkeypatch.setattr("arcscrape.client.requests.get", metadata)
        client = LayerClient(LAYER_URL, max_retries=2, retry_base_delay=0.0)

        assert client.get_layer_name() == "Parcels"
        assert len(calls) == 2

    def test_exhausted_retries_become_transport_error(self, fake_server):
        server = fake_server([1])
        server.fail_batch(1, requests.exceptions.Timeout("read timed out"))
        client = LayerClient(LAYER_URL, max_retries=2, retry_base_delay=0.0)

        with pytest.raises(TransportError, match="after retries"):
            client.query({"where": "OBJECTID in (1)", "outFields": "*", "f": "json"})

        assert len(server.batch_calls()) == 3

    def test_404_not_retried(self, fake_server):
        server = fake_server([1])
        server.fail_batch(1, FakeResponse(status_code=404, payload={}, reason="Not Found"))
        client = LayerClient(LAYER_URL, max_retries=3, retry_base_delay=0.0)

        with pytest.raises(TransportError):
            client.query({"where": "OBJECTID in (1)", "outFields": "*", "f": "json"})

        assert len(server.batch_calls()) == 1
