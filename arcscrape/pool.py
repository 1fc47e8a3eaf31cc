"""
Storage for per-batch records and the pool that collects them.

A ChunkStore turns a parsed batch record into a PersistedChunk handle; the
ChunkPool accumulates the handles of one job until conversion.
"""

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Protocol


@dataclass(frozen=True)
class PersistedChunk:
    index: int
    path: Path


class ChunkStore(Protocol):
    def persist(self, index: int, record: Dict[str, Any]) -> PersistedChunk:
        ...


class FileChunkStore:
    """Writes each record to `{output_base}{index}.json`."""

    def __init__(self, output_base: Path):
        self.output_base = Path(output_base)

    def path_for(self, index: int) -> Path:
        return self.output_base.with_name(f"{self.output_base.name}{index}.json")

    def persist(self, index: int, record: Dict[str, Any]) -> PersistedChunk:
        path = self.path_for(index)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(record, f, ensure_ascii=False)
        return PersistedChunk(index=index, path=path)


class ChunkPool:
    """Thread-safe accumulation of PersistedChunk handles."""

    def __init__(self):
        self._lock = threading.Lock()
        self._chunks: List[PersistedChunk] = []

    def add(self, chunk: PersistedChunk) -> None:
        with self._lock:
            self._chunks.append(chunk)

    def chunks(self) -> List[PersistedChunk]:
        """Snapshot ordered by persist index."""
        with self._lock:
            return sorted(self._chunks, key=lambda c: c.index)

    def clear(self) -> None:
        with self._lock:
            self._chunks.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._chunks)
