"""Database engine and session management."""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

import structlog
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from intel_console.db.models import Base

logger = structlog.get_logger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///intel_console.db"


def get_database_url() -> str:
    return os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (url.endswith(":memory:") or url in {"sqlite://", "sqlite+pysqlite://"})


def make_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Build an engine; SQLite connections are shared across worker threads."""
    kwargs: Dict[str, Any] = {"future": True, "echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if _is_memory_sqlite(database_url):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
    return create_engine(database_url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    # entities leave the session after commit and are read on the caller side
    return sessionmaker(bind=engine, future=True, expire_on_commit=False)


_ENGINE: Engine | None = None
SessionLocal: sessionmaker[Session] | None = None


def get_engine(database_url: Optional[str] = None) -> Engine:
    global _ENGINE
    if _ENGINE is None or database_url is not None:
        url = database_url or get_database_url()
        if _ENGINE is not None:
            _ENGINE.dispose()
        _ENGINE = make_engine(url)
    return _ENGINE


def get_session_factory(database_url: Optional[str] = None) -> sessionmaker[Session]:
    global SessionLocal
    if SessionLocal is None or database_url is not None:
        engine = get_engine(database_url)
        SessionLocal = make_session_factory(engine)
    return SessionLocal


@contextmanager
def get_session(database_url: Optional[str] = None) -> Generator[Session, None, None]:
    session_factory = get_session_factory(database_url)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    """Create any missing tables."""
    try:
        Base.metadata.create_all(bind=engine)
    except Exception:
        logger.error("database_init_failed", url=engine.url.render_as_string(hide_password=True), exc_info=True)
        raise
    logger.info("database_ready", url=engine.url.render_as_string(hide_password=True))
