"""
Module: universal_kernel.db.base
Responsibility: The shared column vocabulary of the five universal tables.
    Every table gets a UUID ``id``; tenant-scoped tables mix in
    ``organization_id``; soft-deletable tables mix in ``is_active``; all of
    them carry the same four audit columns.  Keeping these here means a new
    table follows the same field naming conventions the naming engine checks.
Architecture position: Kernel > DB.  Lowest import target in the kernel; MUST
    NOT import from models/, services/, selectors/, domain/ or outer layers.

Invariants enforced:
    - ids are uuid4 values stored as String(36), identical on PostgreSQL
      and SQLite.
    - Unnamed constraints and indexes get deterministic names from
      NAMING_CONVENTION, so generated DDL is stable across runs.
"""

from datetime import datetime
from typing import Any, ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, MetaData, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

NAMING_CONVENTION = {
    "ix": "idx_%(table_name)s_%(column_0_N_name)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class UUIDString(TypeDecorator):
    """UUID column stored as its 36-character text form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        # Accept text ids from JSON payloads; UUID() rejects malformed ones
        return str(value if isinstance(value, PyUUID) else PyUUID(str(value)))

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    """Declarative base: UUID primary key plus the shared type map."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        dict[str, Any]: JSON,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TenantScoped:
    """Mixin for rows that belong to exactly one organization."""

    organization_id: Mapped[str] = mapped_column(String(100), nullable=False)


class SoftDeletable:
    """Mixin for rows that are deactivated instead of deleted."""

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class TrackedBase(Base):
    """
    Abstract base adding audit columns.

    ``created_by_id`` / ``updated_by_id`` are nullable: audit rows and
    derived intelligence records are written by the system, not a person.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
    created_by_id: Mapped[PyUUID | None] = mapped_column(nullable=True)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(nullable=True)
