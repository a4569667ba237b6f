"""
Module: invoicing_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the string primary key convention, type annotation map for consistent column
    types, and the TrackedBase mixin for audit timestamps.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - String primary keys: entity identifiers are opaque strings supplied by
      the caller (e.g. "po-1") or generated from uuid4 when omitted.
    - Decimal precision: type_annotation_map maps Python Decimal to
      Numeric(18, 2).  Yen amounts are stored exactly; NEVER use float.
    - UTC timestamps: every datetime column is UTCDateTime; values are
      normalized to UTC on write and come back timezone-aware on read, on
      every backend (SQLite drops the offset otherwise).
    - Audit timestamps: TrackedBase provides created_at, updated_at,
      created_by_id, and updated_by_id.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

ID_LENGTH = 64


def new_id() -> str:
    """Generate a fresh string identifier."""
    return str(uuid4())


def as_utc(value: datetime) -> datetime:
    """Normalize to an aware UTC datetime. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp stored in UTC.

    Contract:
        Writes are converted to UTC before binding, so wall times from
        clocks in other offsets (JST) sort correctly against each other.

    Guarantees:
        - process_bind_param: aware datetime -> UTC datetime.
        - process_result_value: always returns an aware UTC datetime, even
          where the driver hands back a naive value (SQLite).
        - cache_ok=True enables SQLAlchemy statement caching.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return as_utc(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return as_utc(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Contract:
        Every ORM model in the system inherits from Base (or TrackedBase).

    Guarantees:
        - id is a string of at most 64 characters, uuid4 by default.
        - Decimal maps to Numeric(18, 2).
        - datetime maps to UTCDateTime (aware, UTC).
        - int maps to BigInteger -- safe for monotonic sequences.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(18, 2),
        datetime: UTCDateTime(),
        date: Date(),
        int: BigInteger,
    }

    id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        primary_key=True,
        default=new_id,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamp and actor tracking.

    Guarantees:
        - created_at is set on INSERT and never changes.
        - updated_at is refreshed on every UPDATE.
        - created_by_id is required (NOT NULL) -- every record has a creator.
        - updated_by_id is nullable (not set on initial creation).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        nullable=False,
    )

    updated_by_id: Mapped[str | None] = mapped_column(
        String(ID_LENGTH),
        nullable=True,
    )
