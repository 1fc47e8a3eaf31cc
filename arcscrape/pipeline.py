import time
from typing import Optional

from .chunker import IdBatch
from .client import LayerClient
from .collector import ResultCollector
from .errors import ParseError, PersistError, ScrapeError, TransportError
from .logger import get_logger
from .pool import ChunkStore, PersistedChunk
from .progress import ProgressTracker

logger = get_logger()

TRANSPORT_FAILED = "Connecting to server for query failed"
PARSE_FAILED = "Couldn't parse response from server"
PERSIST_FAILED = "Failed to write file"

_FAIL_MESSAGES = {
    TransportError: TRANSPORT_FAILED,
    ParseError: PARSE_FAILED,
    PersistError: PERSIST_FAILED,
}


class FetchPipeline:
    """
    Fetches, persists and registers one batch at a time.

    A single instance is shared by every worker of a job; run() keeps no
    per-batch state on self. Each run() ends in exactly one tracker update:
    record_success() or record_failure().
    """

    def __init__(
        self,
        client: LayerClient,
        store: ChunkStore,
        collector: ResultCollector,
        tracker: ProgressTracker,
        layer_name: str = "",
        out_fields: str = "*",
    ):
        self.client = client
        self.store = store
        self.collector = collector
        self.tracker = tracker
        self.layer_name = layer_name
        self.out_fields = out_fields

    def build_params(self, batch: IdBatch) -> dict:
        return {
            "where": batch.where_clause,
            "outFields": self.out_fields,
            "f": "json",
        }

    def _fetch_and_persist(self, batch: IdBatch) -> PersistedChunk:
        before = time.monotonic()
        record = self.client.query(self.build_params(batch))
        logger.debug(
            "Batch request took %dms" % ((time.monotonic() - before) * 1000),
            batch=batch.index,
        )

        before = time.monotonic()
        index = self.tracker.next_persist_index()
        try:
            chunk = self.store.persist(index, record)
        except (OSError, TypeError, ValueError) as e:
            raise PersistError(f"Could not write batch {batch.index}: {e}") from e
        logger.debug(
            "Writing batch took %dms" % ((time.monotonic() - before) * 1000),
            batch=batch.index,
            path=str(chunk.path),
        )
        return chunk

    def run(self, batch: IdBatch) -> Optional[PersistedChunk]:
        """Process one batch. Returns its chunk, or None if the batch failed."""
        logger.record_batch_attempt(self.layer_name)
        try:
            chunk = self._fetch_and_persist(batch)
        except ScrapeError as e:
            message = _FAIL_MESSAGES.get(type(e), str(e))
            logger.error(message, batch=batch.index, ids=len(batch), error=str(e))
            logger.record_batch_failure(self.layer_name, type(e).__name__)
            self.tracker.record_failure(message)
            return None

        self.collector.register(chunk)
        self.tracker.record_success()
        logger.record_batch_success(self.layer_name)
        return chunk
