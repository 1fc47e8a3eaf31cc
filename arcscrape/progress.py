"""
Progress counters shared by all batch pipelines of one job.

Every operation holds the lock only for a counter update, never across I/O,
so batches running on different workers do not wait on each other.
"""

import threading
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ProgressSnapshot:
    current: int
    done: int
    total: int
    failed: bool
    fail_message: Optional[str]


class ProgressTracker:
    """Counters plus a sticky, first-failure-wins failure flag."""

    def __init__(self):
        self._lock = threading.Lock()
        self._current = 0
        self._done = 0
        self._total = 0
        self._total_set = False
        self._failed = False
        self._fail_message: Optional[str] = None

    def set_total(self, total: int) -> None:
        """Fix the batch count. Allowed once per job run."""
        if total < 0:
            raise ValueError(f"total must be >= 0, got {total}")
        with self._lock:
            if self._total_set:
                raise RuntimeError("total is already set for this job")
            self._total = total
            self._total_set = True

    def next_persist_index(self) -> int:
        """Return the next artifact index (0, 1, 2, ...)."""
        with self._lock:
            index = self._current
            self._current += 1
            return index

    def record_success(self) -> int:
        with self._lock:
            self._done += 1
            return self._done

    def record_failure(self, message: str) -> bool:
        """
        Mark the job failed.

        Returns True if this call set the message, False if an earlier
        failure already holds it.
        """
        with self._lock:
            self._failed = True
            if self._fail_message is None:
                self._fail_message = message
                return True
            return False

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(
                current=self._current,
                done=self._done,
                total=self._total,
                failed=self._failed,
                fail_message=self._fail_message,
            )

    @property
    def done(self) -> int:
        with self._lock:
            return self._done

    @property
    def total(self) -> int:
        with self._lock:
            return self._total

    @property
    def failed(self) -> bool:
        with self._lock:
            return self._failed

    @property
    def fail_message(self) -> Optional[str]:
        with self._lock:
            return self._fail_message
