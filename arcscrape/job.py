"""
Scrape job orchestration.

A ScrapeJob enumerates every object ID of a layer, fetches the features in
batches on a bounded worker pool, then converts and archives whatever was
persisted. Batch-level failures never stop the job; they are folded into a
sticky failure flag that callers read from status() or from the final
JobStatus returned by start().

    CREATED -> ENUMERATING_IDS -> RUNNING -> CONVERTING -> ARCHIVING -> DONE
    (any) -> FAILED   enumeration errors, stop() and output I/O errors
"""

import re
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from .chunker import chunk_ids
from .client import LayerClient
from .collector import ResultCollector, make_collector
from .config import Settings
from .errors import EnumerationError, ScrapeError
from .logger import get_logger
from .pipeline import FetchPipeline
from .pool import FileChunkStore
from .progress import ProgressTracker

logger = get_logger()

CONVERT_FAILED = "Failed to convert output"
STOPPED = "Job was stopped"

# How often the join wakes up to notice stop()
JOIN_POLL_INTERVAL = 0.1


class JobState(str, Enum):
    CREATED = "created"
    ENUMERATING_IDS = "enumerating_ids"
    RUNNING = "running"
    CONVERTING = "converting"
    ARCHIVING = "archiving"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class JobStatus:
    state: JobState
    layer_url: str
    layer_name: Optional[str]
    current: int
    done: int
    total: int
    failed: bool
    fail_message: Optional[str]
    output: Optional[Path]
    started_at: Optional[datetime] = None

    @property
    def is_done(self) -> bool:
        return self.state == JobState.DONE


def safe_file_name(name: str) -> str:
    """Layer names become file names; strip path separators and the like."""
    cleaned = re.sub(r'[\\/:*?"<>|\x00-\x1f]+', "_", name).strip(" .")
    return cleaned or "layer"


class ScrapeJob:
    """Scrapes one ArcGIS layer into `{output_dir}/{layer_name}.zip`."""

    def __init__(
        self,
        layer_url: str,
        settings: Optional[Settings] = None,
        client: Optional[LayerClient] = None,
        collector_factory: Optional[Callable[[Path], ResultCollector]] = None,
    ):
        """
        Args:
            layer_url: Layer endpoint, without the trailing "/query"
            settings: Worker count, timeouts, output folder and format
            client: Layer client (built from settings if omitted)
            collector_factory: Builds the collector for a pool base path
        """
        self.settings = settings or Settings()
        self.layer_url = layer_url.rstrip("/")
        self.client = client or LayerClient(
            self.layer_url,
            timeout=self.settings.request_timeout,
            max_retries=self.settings.max_retries,
            retry_base_delay=self.settings.retry_base_delay,
        )
        self._collector_factory = collector_factory or (
            lambda base: make_collector(self.settings.output_format, base)
        )

        self.tracker = ProgressTracker()
        self.layer_name: Optional[str] = None
        self.output_base: Optional[Path] = None
        self.collector: Optional[ResultCollector] = None

        self._lock = threading.Lock()
        self._state = JobState.CREATED
        self._started = False
        self._stopped = threading.Event()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._output: Optional[Path] = None
        self._started_at: Optional[datetime] = None

    # Lifecycle

    def _set_state(self, state: JobState) -> None:
        with self._lock:
            self._state = state
        logger.debug("Job state changed", layer=self.layer_url, state=state.value)

    def _enumerate(self) -> List:
        try:
            self.layer_name = self.client.get_layer_name()
            ids = self.client.get_object_ids()
        except ScrapeError as e:
            message = f"Couldn't enumerate layer: {e}"
            logger.error(message, layer=self.layer_url)
            self.tracker.record_failure(message)
            self._set_state(JobState.FAILED)
            raise EnumerationError(message) from e
        logger.info("Enumerated layer", layer=self.layer_name, ids=len(ids))
        return ids

    def start(self) -> JobStatus:
        """
        Run the job to completion on the calling thread.

        Returns the final JobStatus; a DONE status may still carry
        failed=True when some batches or the conversion failed. Output
        folder or archive I/O errors end the job FAILED.

        Raises:
            EnumerationError: metadata or ID list could not be fetched
            RuntimeError: the job was already started
        """
        with self._lock:
            if self._started:
                raise RuntimeError("ScrapeJob can only be started once")
            self._started = True
            self._started_at = datetime.now()

        self._set_state(JobState.ENUMERATING_IDS)
        ids = self._enumerate()

        try:
            return self._scrape(ids)
        except (OSError, ScrapeError) as e:
            message = f"Job failed: {e}"
            logger.error(message, layer=self.layer_url, state=self.state.value)
            self.tracker.record_failure(message)
            self._set_state(JobState.FAILED)
            return self.status()

    def _scrape(self, ids: List) -> JobStatus:
        file_name = safe_file_name(self.layer_name)
        self.settings.output_dir.mkdir(parents=True, exist_ok=True)
        self.output_base = self.settings.output_dir / file_name
        self.collector = self._collector_factory(self.output_base)

        batches = chunk_ids(ids, self.settings.chunk_size)
        self.tracker.set_total(len(batches))
        self._set_state(JobState.RUNNING)
        logger.info("Dispatching batches", layer=self.layer_name, batches=len(batches),
                    workers=self.settings.max_workers)

        self._run_batches(batches)

        if self._stopped.is_set():
            self.tracker.record_failure(STOPPED)
            self._set_state(JobState.FAILED)
            logger.warning("Job stopped before completion", layer=self.layer_name)
            return self.status()

        self._set_state(JobState.CONVERTING)
        if not self.collector.convert():
            self.tracker.record_failure(CONVERT_FAILED)
        logger.info(f"Converted '{self.output_base}'")

        self._set_state(JobState.ARCHIVING)
        output = Path(self.collector.archive()).resolve()
        with self._lock:
            self._output = output
        self._set_state(JobState.DONE)
        logger.info(f"Zipped '{output}'")
        logger.info("Done with url: " + self.layer_url, failed=self.tracker.failed)
        return self.status()

    def _run_batches(self, batches) -> None:
        pipeline = FetchPipeline(
            client=self.client,
            store=FileChunkStore(self.output_base),
            collector=self.collector,
            tracker=self.tracker,
            layer_name=self.layer_name,
        )
        executor = ThreadPoolExecutor(
            max_workers=self.settings.max_workers, thread_name_prefix="batch"
        )
        with self._lock:
            self._executor = executor
        if self._stopped.is_set():
            executor.shutdown(wait=False, cancel_futures=True)
            return

        started = time.monotonic()
        futures: List[Future] = []
        try:
            for batch in batches:
                futures.append(executor.submit(pipeline.run, batch))
        except RuntimeError:
            # stop() shut the executor down while we were submitting
            pass

        pending = set(futures)
        while pending and not self._stopped.is_set():
            _, pending = wait(pending, timeout=JOIN_POLL_INTERVAL)

        if self._stopped.is_set():
            return
        executor.shutdown(wait=True)

        for future in futures:
            error = future.exception()
            if error is not None:
                logger.error("Unexpected error in batch pipeline", error=repr(error))
                self.tracker.record_failure(f"Unexpected error: {error}")

        logger.info(
            "All batches settled",
            layer=self.layer_name,
            done=self.tracker.done,
            total=self.tracker.total,
            seconds=round(time.monotonic() - started, 2),
        )

    def submit(self) -> "Future[JobStatus]":
        """Run start() on a background thread; the future holds the final status."""
        future: Future = Future()

        def _run():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(self.start())
            except Exception as e:
                future.set_exception(e)

        threading.Thread(target=_run, name="scrape-job", daemon=True).start()
        return future

    def stop(self) -> None:
        """
        Abort immediately. Queued batches are cancelled, in-flight ones are
        abandoned and the job ends FAILED without converting.
        """
        self._stopped.set()
        with self._lock:
            executor = self._executor
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)
        logger.warning("Stop requested", layer=self.layer_url)

    # Polling surface

    def status(self) -> JobStatus:
        snap = self.tracker.snapshot()
        with self._lock:
            state = self._state
            output = self._output
            started_at = self._started_at
        return JobStatus(
            state=state,
            layer_url=self.layer_url,
            layer_name=self.layer_name,
            current=snap.current,
            done=snap.done,
            total=snap.total,
            failed=snap.failed,
            fail_message=snap.fail_message,
            output=output if state == JobState.DONE else None,
            started_at=started_at,
        )

    @property
    def state(self) -> JobState:
        with self._lock:
            return self._state

    def get_name(self) -> Optional[str]:
        return self.layer_name

    def get_num_done(self) -> int:
        return self.tracker.done

    def get_total(self) -> int:
        return self.tracker.total

    def is_job_done(self) -> bool:
        return self.state == JobState.DONE

    def is_failed(self) -> bool:
        return self.tracker.failed

    def get_fail_message(self) -> Optional[str]:
        return self.tracker.fail_message

    def get_output(self) -> Optional[str]:
        """Absolute archive path once the job is done, else None."""
        output = self.status().output
        return str(output) if output is not None else None
