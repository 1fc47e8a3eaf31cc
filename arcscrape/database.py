"""
Database schema and connection management.

Uses SQLite with SQLAlchemy to keep a history of finished scrape jobs.
"""

from datetime import datetime
from pathlib import Path
from sqlalchemy import create_engine, Column, Integer, String, DateTime, Boolean, Text
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


class ScrapeRecord(Base):
    """One finished (or failed) scrape job."""

    __tablename__ = "scrape_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    layer_url = Column(String, nullable=False)
    layer_name = Column(String, nullable=True)  # unknown when enumeration failed
    state = Column(String, nullable=False)  # JobState value
    done = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False, default=0)
    failed = Column(Boolean, nullable=False, default=False)
    fail_message = Column(Text, nullable=True)
    output_path = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    finished_at = Column(DateTime, nullable=False, default=datetime.now)


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    engine = create_engine(f"sqlite:///{db_path}")
    Session = sessionmaker(bind=engine)
    return Session()
