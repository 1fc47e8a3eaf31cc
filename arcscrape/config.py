"""
Runtime settings for scrape jobs.

Values come from ARCSCRAPE_* environment variables (optionally loaded from
.env by env.load_env) and may be overridden per run from the CLI.
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from .chunker import CHUNK_SIZE


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    output_dir: Path = Path("output")
    max_workers: int = 8
    request_timeout: float = 60.0
    max_retries: int = 3
    retry_base_delay: float = 1.0
    chunk_size: int = CHUNK_SIZE
    output_format: str = "shapefile"
    db_path: Path = Path("data/jobs.db")
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            output_dir=Path(os.getenv("ARCSCRAPE_OUTPUT_DIR") or "output"),
            max_workers=_env_int("ARCSCRAPE_MAX_WORKERS", 8, minimum=1),
            request_timeout=_env_float("ARCSCRAPE_REQUEST_TIMEOUT", 60.0),
            max_retries=_env_int("ARCSCRAPE_MAX_RETRIES", 3),
            retry_base_delay=_env_float("ARCSCRAPE_RETRY_BASE_DELAY", 1.0),
            chunk_size=_env_int("ARCSCRAPE_CHUNK_SIZE", CHUNK_SIZE, minimum=1),
            output_format=os.getenv("ARCSCRAPE_FORMAT") or "shapefile",
            db_path=Path(os.getenv("ARCSCRAPE_DB_PATH") or "data/jobs.db"),
            log_level=(os.getenv("ARCSCRAPE_LOG_LEVEL") or "INFO").upper(),
        )

    def override(
        self,
        output_dir: Optional[str] = None,
        max_workers: Optional[int] = None,
        request_timeout: Optional[float] = None,
        output_format: Optional[str] = None,
        db_path: Optional[str] = None,
    ) -> "Settings":
        """Return a copy with any non-None CLI values applied."""
        changes = {}
        if output_dir is not None:
            changes["output_dir"] = Path(output_dir)
        if max_workers is not None:
            if max_workers < 1:
                raise ValueError("max_workers must be >= 1")
            changes["max_workers"] = max_workers
        if request_timeout is not None:
            changes["request_timeout"] = request_timeout
        if output_format is not None:
            changes["output_format"] = output_format
        if db_path is not None:
            changes["db_path"] = Path(db_path)
        return replace(self, **changes)
