"""
Process-wide database engine and session factory.

Deployments run on PostgreSQL at READ COMMITTED, relying on explicit row
locks (``SELECT ... FOR UPDATE``) and version counters for concurrent pay
runs.  SQLite serves tests, demos and the seed script; an in-memory SQLite
URL is pinned to one shared connection so every session sees the same
tables.

Sessions are created with ``expire_on_commit=False``: services build their
DTOs from ORM rows after the unit of work has committed.
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from payroll_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_IN_MEMORY_URLS = frozenset({"sqlite://", "sqlite:///:memory:"})

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _engine_options(database_url: str, pool_size: int, max_overflow: int, pool_pre_ping: bool) -> dict[str, Any]:
    if database_url.startswith("sqlite"):
        options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if database_url in _IN_MEMORY_URLS:
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": pool_pre_ping,
        "isolation_level": "READ COMMITTED",
    }


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
) -> Engine:
    """Create the engine and session factory; replaces any previous ones.

    Pool settings apply to server databases only.
    """
    global _engine, _SessionFactory

    _engine = create_engine(
        database_url,
        echo=echo,
        **_engine_options(database_url, pool_size, max_overflow, pool_pre_ping),
    )
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": _engine.dialect.name, "echo": echo})
    return _engine


def _require_factory() -> sessionmaker[Session]:
    if _SessionFactory is None:
        raise RuntimeError("database engine is not initialized; call init_engine_from_url() first")
    return _SessionFactory


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("database engine is not initialized; call init_engine_from_url() first")
    return _engine


def get_session() -> Session:
    return _require_factory()()


def get_session_factory() -> sessionmaker[Session]:
    """Factory for callers that open their own sessions, one per worker thread."""
    return _require_factory()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Commit on normal exit, roll back and re-raise on error, always close."""
    session = get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """Create every kernel and module table, then arm the immutability listeners."""
    from payroll_kernel.db.base import Base
    from payroll_kernel.db.immutability import register_immutability_listeners
    from payroll_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(engine or get_engine())
    register_immutability_listeners()
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def drop_tables(engine: Engine | None = None) -> None:
    from payroll_kernel.db.base import Base

    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose of the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


@atexit.register
def _dispose_at_exit() -> None:
    if _engine is not None:
        _engine.dispose()
