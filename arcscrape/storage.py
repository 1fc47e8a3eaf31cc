from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Tuple

from .database import ScrapeRecord, init_database, get_session
from .job import JobStatus


def save_job_record(status: JobStatus, db_path: Path) -> int:
    """Persist a finished job's status and return the new row id."""
    init_database(db_path)
    finished_at = datetime.now()
    session = get_session(db_path)
    try:
        record = ScrapeRecord(
            layer_url=status.layer_url,
            layer_name=status.layer_name,
            state=status.state.value,
            done=status.done,
            total=status.total,
            failed=status.failed,
            fail_message=status.fail_message,
            output_path=str(status.output) if status.output else None,
            created_at=status.started_at or finished_at,
            finished_at=finished_at,
        )
        session.add(record)
        session.commit()
        return record.id
    finally:
        session.close()


def _as_dict(record: ScrapeRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "layer_url": record.layer_url,
        "layer_name": record.layer_name,
        "state": record.state,
        "done": record.done,
        "total": record.total,
        "failed": record.failed,
        "fail_message": record.fail_message,
        "output_path": record.output_path,
        "created_at": record.created_at,
        "finished_at": record.finished_at,
    }


def list_job_records(db_path: Path, limit: int = 20) -> List[Dict[str, Any]]:
    """Most recent runs first."""
    if not db_path.exists():
        return []
    session = get_session(db_path)
    try:
        rows = (
            session.query(ScrapeRecord)
            .order_by(ScrapeRecord.finished_at.desc(), ScrapeRecord.id.desc())
            .limit(limit)
            .all()
        )
        return [_as_dict(r) for r in rows]
    finally:
        session.close()


def delete_stale_records(days: int, db_path: Path) -> Tuple[int, int, List[Path]]:
    """
    Delete history rows that finished more than `days` days ago.

    Returns:
        (rows_before, rows_after, output paths of the deleted rows)
    """
    if not db_path.exists():
        return (0, 0, [])
    cutoff = datetime.now() - timedelta(days=days)
    session = get_session(db_path)
    try:
        before = session.query(ScrapeRecord).count()
        stale = session.query(ScrapeRecord).filter(ScrapeRecord.finished_at < cutoff).all()
        outputs = [Path(r.output_path) for r in stale if r.output_path]
        for record in stale:
            session.delete(record)
        session.commit()
        after = session.query(ScrapeRecord).count()
        return (before, after, outputs)
    finally:
        session.close()
