"""
Module: pdca_kernel.db.engine
Responsibility: Engines, the process-wide session factory and the
    transactional scope every SQL store operation runs in.
Architecture position: Kernel > DB.  May import from db/ and logging_config.
    Models are imported lazily by ``create_tables`` only.

Invariants enforced:
    - In-memory SQLite shares one connection (StaticPool) so every session
      sees the same database.  File SQLite and server databases use a
      QueuePool with pre-ping; server databases run at READ COMMITTED.
    - SQLite connections enforce foreign keys.
    - ``session_scope`` commits on success and rolls back on any exception,
      always closing the session.

Failure modes:
    - RuntimeError from get_engine / get_session / get_session_factory
      before ``init_engine_from_url``.
"""

import atexit
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from pdca_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_MEMORY_SQLITE_URLS = ("sqlite://", "sqlite:///:memory:")


@dataclass
class _EngineState:
    engine: Engine | None = None
    session_factory: sessionmaker[Session] | None = None


_state = _EngineState()


def _sqlite_engine(database_url: str, echo: bool) -> Engine:
    in_memory = database_url in _MEMORY_SQLITE_URLS or "mode=memory" in database_url
    options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if in_memory:
        options["poolclass"] = StaticPool
    engine = create_engine(database_url, echo=echo, **options)

    @event.listens_for(engine, "connect")
    def _foreign_keys_on(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
        finally:
            cursor.close()

    return engine


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: float = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """Create an engine for ``database_url``; module state is left alone."""
    if database_url.startswith("sqlite"):
        return _sqlite_engine(database_url, echo)
    return create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=True,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(database_url: str, **engine_options: Any) -> Engine:
    """Install the process-wide engine and session factory, replacing any previous one."""
    reset_engine()
    engine = build_engine(database_url, **engine_options)
    _state.engine = engine
    _state.session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    logger.info(
        "engine_initialized",
        extra={"dialect": engine.dialect.name, "pool": type(engine.pool).__name__},
    )
    return engine


def get_engine() -> Engine:
    if _state.engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _state.engine


def get_session_factory() -> sessionmaker[Session]:
    if _state.session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _state.session_factory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Run a block in one transaction.

    Usage:
        with session_scope(factory) as session:
            session.add(row)
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """Create every goal workflow table that does not exist yet."""
    import pdca_kernel.models  # noqa: F401  (registers the mappers)
    from pdca_kernel.db.base import Base

    Base.metadata.create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    from pdca_kernel.db.base import Base

    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose the process-wide engine, if any, and forget the session factory."""
    if _state.engine is not None:
        _state.engine.dispose()
    _state.engine = None
    _state.session_factory = None


atexit.register(reset_engine)
