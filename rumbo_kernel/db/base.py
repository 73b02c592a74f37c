"""
Module: rumbo_kernel.db.base
Responsibility: Declarative base for the product and transaction tables,
    plus the two column helpers they share (UUID-as-string ids and
    string-backed enums).
Architecture position: Kernel > DB.  Lowest import target in the kernel;
    MUST NOT import from models/, services/, selectors/ or domain/.

Invariants enforced:
    - Ids are uuid4 values stored as 36-char strings, so SQLite and
      PostgreSQL hold identical data.
    - Money annotated as Decimal maps to Numeric(15, 2).  Floats never
      reach a money column.
    - Enums are stored by value ("cash", "income"), never by member name.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import Date, DateTime, Enum as SAEnum, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as String(36); loads back as ``uuid.UUID``."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


def enum_column(enum_cls: type[Enum], length: int) -> SAEnum:
    """
    Non-native enum column persisted by member value.

    ``validate_strings`` makes an unknown value fail on flush rather than
    landing in the table.
    """
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class Base(DeclarativeBase):
    """Declarative base; every table gets a uuid4 ``id`` primary key."""

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(15, 2),
        date: Date,
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Abstract base adding row timestamps.

    ``created_at`` is set by the database on INSERT; ``updated_at`` follows
    every UPDATE, including the balance rewrites done by the services.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
