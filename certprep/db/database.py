from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from certprep.config import get_settings
from certprep.db.models.base import Base

_engine = None
_SessionLocal = None


def create_engine_from_settings(database_url: str | None = None, echo: bool | None = None) -> Engine:
    """
    Build a SQLAlchemy engine.

    In-memory SQLite gets a StaticPool so every session sees the same
    database; other URLs use the default pool with pre-ping.
    """
    settings = get_settings()
    url = database_url or settings.database_url
    if echo is None:
        echo = settings.log_level == "DEBUG"

    if url.startswith("sqlite") and (":memory:" in url or url.rstrip("/") == "sqlite:"):
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if url.startswith("sqlite"):
        return create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    return create_engine(url, echo=echo, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_engine() -> Engine:
    """Get the process-wide engine (lazy initialization)."""
    global _engine
    if _engine is None:
        _engine = create_engine_from_settings()
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Get or create the process-wide session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = make_session_factory(get_engine())
    return _SessionLocal


def init_db(engine: Engine | None = None) -> None:
    """Initialize database tables."""
    Base.metadata.create_all(bind=engine or get_engine())
    logger.info("Database tables initialized")


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:  # Roll back on any error, then re-raise
        session.rollback()
        raise
    finally:
        session.close()
