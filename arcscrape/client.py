"""HTTP access to an ID-paginated ArcGIS layer."""

from typing import Any, Dict, List

import requests

from .errors import ParseError, TransportError
from .logger import get_logger
from .retry import RetryError, RetryableStatusError, exponential_backoff, should_retry_http_status

logger = get_logger()

TRANSIENT_ERRORS = (
    requests.exceptions.Timeout,
    requests.exceptions.ConnectionError,
    RetryableStatusError,
)


class LayerClient:
    """
    Issues the three request shapes a scrape job needs against one layer:
    metadata, the full object ID list, and per-batch feature queries.

    Every request carries a timeout and is retried with exponential backoff
    on connection errors, timeouts and retryable HTTP statuses.
    """

    def __init__(
        self,
        layer_url: str,
        timeout: float = 60.0,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
    ):
        self.layer_url = layer_url.rstrip("/")
        self.query_url = f"{self.layer_url}/query"
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay

    def _on_retry(self, attempt: int, error: Exception, delay: float):
        logger.warning("Retrying request", attempt=attempt, error=str(error), delay=delay)

    def _get(self, url: str, params: Dict[str, Any]) -> requests.Response:
        """GET with retry; returns the response only for status 200."""

        @exponential_backoff(
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            exceptions=TRANSIENT_ERRORS,
            on_retry=self._on_retry,
        )
        def _attempt():
            logger.record_request()
            resp = requests.get(url, params=params, timeout=self.timeout)
            if should_retry_http_status(resp.status_code):
                raise RetryableStatusError(resp.status_code, resp.reason or "")
            return resp

        try:
            resp = _attempt()
        except RetryError as e:
            logger.error("Request failed after retries", url=url, error=str(e))
            raise TransportError(f"Request failed after retries: {url}: {e.__cause__}") from e
        except requests.exceptions.RequestException as e:
            logger.error("Request error", url=url, error=str(e))
            raise TransportError(f"Request error: {e}") from e

        if resp.status_code != 200:
            logger.error("Request returned non-success status", url=url, status=resp.status_code)
            raise TransportError(f"Request failed ({resp.status_code} {resp.reason or ''}): {url}")
        return resp

    def _get_json(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        resp = self._get(url, params)
        try:
            payload = resp.json()
        except ValueError as e:
            raise ParseError(f"Response from {url} is not valid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise ParseError(f"Response from {url} is not a JSON object")
        # ArcGIS reports query errors in a 200 body
        if "error" in payload:
            raise TransportError(f"Server returned error for {url}: {payload['error']}")
        return payload

    def get_layer_name(self) -> str:
        """GET {layer}?f=json and return the `name` field."""
        payload = self._get_json(self.layer_url, {"f": "json"})
        name = payload.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ParseError(f"Layer metadata has no name: {self.layer_url}")
        return name

    def get_object_ids(self) -> List[Any]:
        """Fetch every object ID of the layer, in server order."""
        payload = self._get_json(
            self.query_url,
            {"where": "1=1", "returnIdsOnly": "true", "f": "json", "outSR": "3857"},
        )
        if "objectIds" not in payload:
            raise ParseError(f"ID response has no objectIds: {self.query_url}")
        ids = payload["objectIds"]
        # Servers answer null for a layer with no features
        if ids is None:
            return []
        if not isinstance(ids, list):
            raise ParseError(f"objectIds is not a list: {self.query_url}")
        return ids

    def query(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Run one feature query against {layer}/query."""
        payload = self._get_json(self.query_url, params)
        if not isinstance(payload.get("features"), list):
            raise ParseError(f"Query response has no features list: {self.query_url}")
        return payload
