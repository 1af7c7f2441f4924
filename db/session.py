"""
db/session.py

Engine and session plumbing for the scheduler process.

Every unit of work in the orchestration core (one credential debit, one
wave replacement, one last_scrape_at stamp) runs in its own short
``session_scope`` so a failure in one job never rolls back another's
bookkeeping. Components take a ``SessionFactory`` so tests can hand them a
factory bound to an in-memory engine.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.config import resolve_database_url

SessionFactory = Callable[[], Session]


@dataclass(frozen=True)
class EnginePoolSettings:
    echo: bool = False
    pool_recycle: int = 1800
    pool_size: int = 5
    max_overflow: int = 10

    @classmethod
    def from_env(cls) -> "EnginePoolSettings":
        def _int(name: str, default: int) -> int:
            try:
                return int(os.getenv(name, default))
            except ValueError:
                return default

        return cls(
            echo=os.getenv("SQL_ECHO", "").strip().lower() in {"1", "true", "yes", "on"},
            pool_recycle=_int("DB_POOL_RECYCLE", cls.pool_recycle),
            pool_size=_int("DB_POOL_SIZE", cls.pool_size),
            max_overflow=_int("DB_MAX_OVERFLOW", cls.max_overflow),
        )


def create_db_engine(database_url: str | None = None, settings: EnginePoolSettings | None = None) -> Engine:
    url = database_url or resolve_database_url()
    if not url.startswith("postgresql"):
        raise RuntimeError("Only PostgreSQL URLs are supported.")

    pool = settings or EnginePoolSettings.from_env()
    return create_engine(
        url,
        echo=pool.echo,
        pool_pre_ping=True,
        pool_recycle=pool.pool_recycle,
        pool_size=pool.pool_size,
        max_overflow=pool.max_overflow,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    # Objects stay readable after commit; components copy what they need
    # into plain dataclasses before the scope closes.
    return sessionmaker(
        bind=engine,
        class_=Session,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def get_engine() -> Engine:
    """Return the shared engine, creating it on first call."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def SessionLocal() -> Session:
    """Lazy default ``SessionFactory`` bound to the shared engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(get_engine())
    return _session_factory()


@contextmanager
def session_scope(factory: SessionFactory = SessionLocal) -> Iterator[Session]:
    """
    Yield a session that commits on success, rolls back on error and is
    always closed.
    """

    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
