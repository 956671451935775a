"""Database setup for the relational storage backend."""

from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import settings


def _connect_args(url: str) -> dict:
    # SQLite connections are shared across the request thread pool.
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.database_url,
    future=True,
    pool_pre_ping=True,
    connect_args=_connect_args(settings.database_url),
)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def init_db() -> None:
    """Create database tables if they do not exist."""
    from .models import todo, user  # noqa: F401  register tables on Base

    Base.metadata.create_all(bind=engine)
