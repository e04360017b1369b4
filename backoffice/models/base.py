"""
Base models with common fields for all entities.
Includes the soft lifecycle shared by catalog and workflow tables.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Enum as SQLEnum, Index, Integer, func, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# BIGINT keys in PostgreSQL, INTEGER (rowid alias) in SQLite so autoincrement works
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class TimestampMixin:
    """Mixin adding created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class Lifecycle(str, enum.Enum):
    """Soft lifecycle: replaces the active/exists flag pair."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    DELETED = "deleted"


LifecycleEnum = SQLEnum(
    Lifecycle,
    name="lifecycle_state",
    values_callable=lambda e: [m.value for m in e],
)


class LifecycleMixin:
    """
    Adds the ``lifecycle`` column plus the ``active`` / ``exists`` views
    that the API exposes.
    """

    lifecycle: Mapped[Lifecycle] = mapped_column(
        LifecycleEnum,
        default=Lifecycle.ACTIVE,
        nullable=False,
        index=True,
    )

    @property
    def active(self) -> bool:
        return self.lifecycle == Lifecycle.ACTIVE

    @property
    def exists(self) -> bool:
        return self.lifecycle != Lifecycle.DELETED

    @classmethod
    def not_deleted(cls):
        """Filter clause for rows that have not been soft-deleted."""
        return cls.lifecycle != Lifecycle.DELETED


class CatalogBase(Base, TimestampMixin, LifecycleMixin):
    """Base class for integer-keyed tables with a soft lifecycle."""

    __abstract__ = True

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)


def unique_while_present(name: str, *columns: str) -> Index:
    """Unique index that ignores soft-deleted rows."""
    where = text("lifecycle <> 'deleted'")
    return Index(name, *columns, unique=True, postgresql_where=where, sqlite_where=where)
