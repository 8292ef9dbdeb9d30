"""
Module: universal_kernel.models.relationship
Responsibility: ORM persistence for core_relationships -- typed, directed
    edges between two rows ("client has organization", "transaction has GL
    intelligence").
Architecture position: Kernel > Models.  May import from db/base.py only.

Notes:
    source_entity_id / target_entity_id carry no foreign key: the source of a
    ``transaction_has_gl_intelligence`` edge is a universal_transactions id,
    not an entity id.  No cycle detection and no uniqueness -- callers check
    first if they need either.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from universal_kernel.db.base import SoftDeletable, TenantScoped, TrackedBase, UUIDString


class EntityRelationship(TenantScoped, SoftDeletable, TrackedBase):
    """Directed edge between two universal rows."""

    __tablename__ = "core_relationships"

    __table_args__ = (
        Index(
            "idx_core_relationships_source",
            "organization_id",
            "source_entity_id",
            "relationship_type",
        ),
        Index("idx_core_relationships_target", "target_entity_id"),
    )

    source_entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    target_entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    relationship_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    relationship_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    relationship_data: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )

    def __repr__(self) -> str:
        return (
            f"<EntityRelationship {self.source_entity_id} "
            f"-[{self.relationship_type}]-> {self.target_entity_id}>"
        )
