"""
Cleanup module for removing stale scrape results.

Stale runs are those that finished more than a given number of days ago
(default: 7). Their history rows and archive files are removed so the
output folder does not grow without bound.
"""

from pathlib import Path
from typing import Tuple

from .storage import delete_stale_records
from .logger import get_logger

logger = get_logger()


def cleanup_stale_outputs(db_path: Path, days: int = 7) -> Tuple[int, int]:
    """
    Remove job history and archives older than the specified number of days.

    Args:
        db_path: Path to the job history database
        days: Number of days to keep runs (default: 7)

    Returns:
        Tuple of (total_runs_before, total_runs_after)
        Difference = runs_removed
    """
    try:
        runs_before, runs_after, outputs = delete_stale_records(days=days, db_path=db_path)
    except Exception as e:
        logger.error(f"Cleanup failed: {e}", error=str(e), days=days)
        return (0, 0)

    files_removed = 0
    for output in outputs:
        try:
            output.unlink()
            files_removed += 1
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning(f"Couldn't delete {output}", error=str(e))

    logger.info(
        f"Cleanup complete: {runs_before - runs_after} removed, {runs_after} remaining",
        runs_before=runs_before,
        runs_after=runs_after,
        files_removed=files_removed,
        days_threshold=days,
    )
    return (runs_before, runs_after)
