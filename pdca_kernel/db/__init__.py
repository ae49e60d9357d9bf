"""Database layer - engine, base classes and column types."""

from pdca_kernel.db.base import Base
from pdca_kernel.db.engine import (
    build_engine,
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from pdca_kernel.db.types import UTCDateTime, UUIDString

__all__ = [
    "Base",
    "UTCDateTime",
    "UUIDString",
    "build_engine",
    "create_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
]
