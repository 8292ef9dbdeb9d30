"""
Module: universal_kernel.models.metadata
Responsibility: ORM persistence for core_metadata -- versioned side-channel
    data attached to an Entity (AI reasoning, cost analyses, archived field
    values).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Versioning: at most one ACTIVE row per
      (entity_id, metadata_type, metadata_key), enforced by a partial unique
      index.  Superseded rows are deactivated (is_active=False,
      effective_to set), never deleted.
    - Tenant isolation: organization_id is NOT NULL.

Failure modes:
    - IntegrityError when a second active row is inserted for the same key
      without first deactivating the old one
      (DuplicatePreventionService.prevent_duplicate_metadata).
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, func, text
from sqlalchemy.orm import Mapped, mapped_column

from universal_kernel.db.base import SoftDeletable, TenantScoped, TrackedBase, UUIDString


class EntityMetadata(TenantScoped, SoftDeletable, TrackedBase):
    """One versioned metadata value for an Entity."""

    __tablename__ = "core_metadata"

    __table_args__ = (
        Index(
            "uq_core_metadata_active_key",
            "entity_id",
            "metadata_type",
            "metadata_key",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
        Index("idx_core_metadata_org_entity", "organization_id", "entity_id"),
    )

    entity_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("core_entities.id"),
        nullable=False,
    )

    metadata_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    metadata_category: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="general",
    )

    metadata_key: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    metadata_value: Mapped[Any] = mapped_column(
        JSON,
        nullable=True,
    )

    effective_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    # Set when the row is superseded
    effective_to: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        state = "active" if self.is_active else "inactive"
        return f"<EntityMetadata {self.metadata_type}.{self.metadata_key} ({state})>"
