"""
Module: pdca_kernel.db.base
Responsibility: The declarative base every goal workflow model extends.
Architecture position: Kernel > DB.  Imported by models/ only.

Invariants enforced:
    - Every table has a UUID ``id`` primary key; callers usually supply the
      domain id (goal_id, task_id, entry_id) and ``uuid4`` fills the rest.
    - Annotated ``datetime`` columns use ``UTCDateTime``, ``UUID`` columns
      use ``UUIDString`` and ``int`` columns are 64-bit.
    - Constraint names follow ``NAMING_CONVENTION`` so migrations and error
      messages are stable across dialects.
"""

from datetime import date, datetime
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Date, MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from pdca_kernel.db.types import UTCDateTime, UUIDString

NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
        date: Date(),
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)
