"""
Pytest configuration and shared fixtures.
"""

import json
import re
import threading
import zipfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from arcscrape.logger import get_logger

# Bind the shared logger before any module grabs it: no console noise, no logs/ dir
get_logger(enable_console=False, enable_file=False)

from arcscrape.config import Settings  # noqa: E402

LAYER_URL = "https://gis.example.com/arcgis/rest/services/Parcels/FeatureServer/0"

_WHERE_RE = re.compile(r"^OBJECTID in \((.*)\)$")


class FakeResponse:
    """Just enough of requests.Response for the layer client."""

    def __init__(self, status_code: int = 200, payload: Any = None, text: Optional[str] = None, reason: str = "OK"):
        self.status_code = status_code
        self.reason = reason
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        return json.loads(self.text)


class FakeLayerServer:
    """
    Stands in for requests.get against one layer.

    Serves metadata, the ID list and `OBJECTID in (...)` feature queries from
    an in-memory ID list. Individual batches can be made to fail by the first
    ID of the batch.
    """

    def __init__(self, ids: List[Any], name: str = "Parcels", layer_url: str = LAYER_URL):
        self.layer_url = layer_url
        self.query_url = layer_url + "/query"
        self.ids = ids
        self.name = name
        self.metadata_response: Optional[FakeResponse] = None
        self.ids_response: Optional[FakeResponse] = None
        self.batch_failures: Dict[Any, Any] = {}  # first id -> FakeResponse or exception
        self.batch_hook: Optional[Callable[[List[str]], None]] = None
        self.calls: List[Dict[str, Any]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def fail_batch(self, first_id: Any, outcome: Any) -> None:
        self.batch_failures[str(first_id)] = outcome

    def __call__(self, url: str, params: Optional[dict] = None, timeout: Optional[float] = None):
        params = dict(params or {})
        with self._lock:
            self.calls.append({"url": url, "params": params, "timeout": timeout})

        if url == self.layer_url:
            return self.metadata_response or FakeResponse(payload={"name": self.name, "type": "Feature Layer"})

        if url == self.query_url and params.get("returnIdsOnly") == "true":
            return self.ids_response or FakeResponse(
                payload={"objectIdFieldName": "OBJECTID", "objectIds": self.ids}
            )

        if url == self.query_url:
            match = _WHERE_RE.match(params.get("where", ""))
            assert match, f"unexpected where clause: {params.get('where')}"
            batch_ids = match.group(1).split(",")
            return self._serve_batch(batch_ids)

        return FakeResponse(status_code=404, payload={}, reason="Not Found")

    def _serve_batch(self, batch_ids: List[str]) -> FakeResponse:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.batch_hook is not None:
                self.batch_hook(batch_ids)
            outcome = self.batch_failures.get(batch_ids[0])
            if isinstance(outcome, Exception):
                raise outcome
            if outcome is not None:
                return outcome
            return FakeResponse(payload={
                "objectIdFieldName": "OBJECTID",
                "geometryType": "esriGeometryPoint",
                "features": [
                    {"attributes": {"OBJECTID": i}, "geometry": {"x": 1.0, "y": 2.0}}
                    for i in batch_ids
                ],
            })
        finally:
            with self._lock:
                self.in_flight -= 1

    def batch_calls(self) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["url"] == self.query_url and "returnIdsOnly" not in c["params"]]


class RecordingCollector:
    """ResultCollector double: records calls, zips the raw chunk files."""

    def __init__(self, pool_base: Path, convert_result: bool = True):
        self.pool_base = Path(pool_base)
        self.convert_result = convert_result
        self.chunks = []
        self.convert_calls = 0
        self.archive_calls = 0
        self.cleanup_waits = []
        self._lock = threading.Lock()

    def register(self, chunk) -> None:
        with self._lock:
            self.chunks.append(chunk)

    def convert(self) -> bool:
        self.convert_calls += 1
        return self.convert_result

    def archive(self) -> Path:
        self.archive_calls += 1
        zip_path = self.pool_base.with_name(self.pool_base.name + ".zip")
        with zipfile.ZipFile(zip_path, "w") as zf:
            for chunk in self.chunks:
                zf.write(chunk.path, arcname=chunk.path.name)
        return zip_path

    def wait_for_cleanup(self, timeout=None) -> None:
        self.cleanup_waits.append(timeout)


@pytest.fixture
def fake_server(monkeypatch):
    """Factory: fake_server(ids) installs a FakeLayerServer as requests.get."""

    def _install(ids: List[Any], name: str = "Parcels") -> FakeLayerServer:
        server = FakeLayerServer(ids, name=name)
        monkeypatch.setattr("arcscrape.client.requests.get", server)
        return server

    return _install


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Fast settings: small pool, no retry delay, output under tmp_path."""
    return Settings(
        output_dir=tmp_path / "output",
        max_workers=4,
        request_timeout=5.0,
        max_retries=0,
        retry_base_delay=0.0,
        db_path=tmp_path / "jobs.db",
    )


@pytest.fixture
def recording_collectors() -> List[RecordingCollector]:
    return []


@pytest.fixture
def collector_factory(recording_collectors):
    """Collector factory for ScrapeJob that keeps every collector it builds."""

    def _factory(pool_base: Path) -> RecordingCollector:
        collector = RecordingCollector(pool_base)
        recording_collectors.append(collector)
        return collector

    return _factory
