"""
Module: approval_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the numeric primary key convention, the type annotation map for consistent
    column types, and the TrackedBase mixin for row timestamps.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Numeric primary keys: approvals and steps are identified by opaque
      autoincrement integers.  BigInteger on PostgreSQL, INTEGER on SQLite
      (SQLite only autoincrements an ``INTEGER PRIMARY KEY``).
    - Timestamps are always timezone-aware UTC (UTCDateTime), SQLite included.

Failure modes:
    - IntegrityError on duplicate primary key (never expected with
      autoincrement).
"""

from datetime import datetime, timezone
from typing import ClassVar

from sqlalchemy import BigInteger, DateTime, Integer, TypeDecorator, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Autoincrement-friendly integer across PostgreSQL and SQLite
IdentityInt = BigInteger().with_variant(Integer(), "sqlite")


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC datetime on every backend.

    PostgreSQL stores ``timestamptz`` natively; SQLite has no timezone
    support and reads values back naive.  Values are normalised to UTC on
    the way in and tagged UTC on the way out, so loaded rows and freshly
    flushed rows compare with each other.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Contract:
        Every ORM model in the system inherits from Base (or TrackedBase).
        Base provides an integer primary key and a type_annotation_map that
        enforces consistent column types across the schema.

    Guarantees:
        - id is an autoincrement integer assigned by the database on flush.
        - datetime maps to UTCDateTime -- always timezone-aware UTC.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
    }

    id: Mapped[int] = mapped_column(
        IdentityInt,
        primary_key=True,
        autoincrement=True,
    )


class TrackedBase(Base):
    """
    Abstract base with row timestamps.

    Contract:
        Services set ``created_at``/``updated_at`` from the injected Clock so
        that tests are deterministic; the server defaults are a fallback for
        rows written outside the services.

    Guarantees:
        - created_at is set on INSERT and never changes.
        - updated_at is set on INSERT and on every state-machine UPDATE.
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
        nullable=False,
    )
