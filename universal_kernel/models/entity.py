"""
Module: universal_kernel.models.entity
Responsibility: ORM persistence for core_entities -- the identity row of every
    business object (client, product, recipe, GL account, derived intelligence
    record).  Everything else about an object hangs off this row: dynamic
    fields, metadata, relationships.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Tenant isolation: organization_id is NOT NULL on every row.
    - Code uniqueness: at most one ACTIVE entity per
      (organization_id, entity_type, entity_code), enforced by a partial
      unique index.  Soft-deleted rows do not block reuse of a code.
    - Soft delete only: rows are deactivated (is_active=False), never
      physically deleted.

Failure modes:
    - IntegrityError on a second active entity with the same code
      (uq_core_entities_active_code); services translate it to
      DuplicateEntityCodeError.
"""

from sqlalchemy import Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from universal_kernel.db.base import SoftDeletable, TenantScoped, TrackedBase


class Entity(TenantScoped, SoftDeletable, TrackedBase):
    """
    Generic business object.

    Guarantees:
        - entity_code is unique among active entities of the same
          organization and entity_type.
        - entity_type is free-form; new business object types need no
          migration.
    """

    __tablename__ = "core_entities"

    __table_args__ = (
        Index(
            "uq_core_entities_active_code",
            "organization_id",
            "entity_type",
            "entity_code",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
        Index("idx_core_entities_org_type", "organization_id", "entity_type"),
        Index("idx_core_entities_name", "entity_name"),
    )

    entity_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    entity_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    entity_code: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Entity {self.entity_type}:{self.entity_code} ({self.entity_name})>"
