"""
Module: universal_kernel.models.dynamic_data
Responsibility: ORM persistence for core_dynamic_data -- open-ended key/value
    attributes of an Entity, one row per field.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (entity_id, field_name) is unique: an entity has at most one current
      value per field.  Historical values are archived as inactive
      ``field_history`` metadata rows by EntityService, not kept here.
    - Tenant isolation is transitive through entity_id.

Notes:
    field_value is stored as text; field_type is the hint used by
    universal_kernel.domain.values to decode it.  The hint is advisory --
    nothing at the storage layer checks it.
"""

from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from universal_kernel.db.base import TrackedBase, UUIDString


class DynamicField(TrackedBase):
    """One typed attribute of an Entity."""

    __tablename__ = "core_dynamic_data"

    __table_args__ = (
        UniqueConstraint("entity_id", "field_name", name="uq_dynamic_data_field"),
        Index("idx_dynamic_data_name_value", "field_name", "field_value"),
    )

    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("core_entities.id"),
        nullable=False,
    )

    field_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    field_value: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    field_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="text",
    )

    def __repr__(self) -> str:
        return f"<DynamicField {self.field_name}={self.field_value!r} ({self.field_type})>"
