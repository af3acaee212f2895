"""
Declarative bases for the settlement tables.

Everything under ``models/`` derives from ``Base`` (append-only rows such
as audit events) or ``TrackedBase`` (rows that record who created and
last touched them).  This module imports nothing else from the kernel.

Column conventions set here:
    - primary keys are uuid4 values stored as 36-character strings;
    - ``Decimal`` annotations become ``Numeric(38, 9)``, so money never
      passes through float;
    - ``datetime`` annotations are timezone-aware.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, MetaData, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

NAMING_CONVENTION = {
    "pk": "pk_%(table_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
}


class UUIDString(TypeDecorator):
    """UUIDs as ``VARCHAR(36)`` so SQLite and PostgreSQL share one schema."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds creation and last-change stamps.

    The stamps are bookkeeping, not content: the immutability listeners
    let ``updated_at`` and ``updated_by_id`` move on rows whose content is
    frozen.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())
    created_by_id: Mapped[UUID] = mapped_column(UUIDString())
    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString())
