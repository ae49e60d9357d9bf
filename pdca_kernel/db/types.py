"""
Module: pdca_kernel.db.types
Responsibility: Portable column types for the goal workflow tables.
Architecture position: Kernel > DB.  MUST NOT import from models/,
    services/, stores/ or domain/.

Invariants enforced:
    - Goal, task, entry and user ids are stored as 36-character strings and
      load back as ``uuid.UUID`` on every dialect.
    - Timestamps load back timezone-aware in UTC.  SQLite keeps no offset,
      so stored values are normalized to UTC first and re-tagged on load.
"""

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.types import DateTime, String, TypeDecorator


class UUIDString(TypeDecorator):
    """``uuid.UUID`` in Python, ``VARCHAR(36)`` in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value: UUID | str | None, dialect) -> str | None:
        return None if value is None else str(value)

    def process_result_value(self, value: str | None, dialect) -> UUID | None:
        return None if value is None else UUID(value)


class UTCDateTime(TypeDecorator):
    """Aware datetimes only; always returned in UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime {value!r} cannot be stored")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
