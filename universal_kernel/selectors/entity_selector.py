"""
Module: universal_kernel.selectors.entity_selector
Responsibility: Reassemble logical entities from the universal tables.  One
    call to ``load_many`` issues a fixed four queries (entities, dynamic
    fields, active metadata, active outgoing relationships) regardless of
    how many entities are requested, so list and search paths do not fan
    out into per-entity queries.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - Every tenant-scoped query filters on organization_id.
    - Only ACTIVE metadata rows and relationships are folded into EntityInfo.

Failure modes:
    - MissingOrganizationError for scoped queries without an organization.
    - A stored dynamic value that no longer decodes for its type hint is
      returned as raw text and logged (``dynamic_field_decode_failed``).
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy import or_, select

from universal_kernel.domain.dtos import EntityInfo, RelationshipInfo
from universal_kernel.domain.values import TypedValue
from universal_kernel.exceptions import InvalidFieldValueError
from universal_kernel.logging_config import get_logger
from universal_kernel.models.dynamic_data import DynamicField
from universal_kernel.models.entity import Entity
from universal_kernel.models.metadata import EntityMetadata
from universal_kernel.models.relationship import EntityRelationship
from universal_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.entity")


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class EntitySelector(BaseSelector[Entity]):
    """Batched read access to entities and their attached rows."""

    def load_many(
        self,
        entity_ids: Iterable[UUID],
        organization_id: str | None = None,
    ) -> dict[UUID, EntityInfo]:
        """
        Reconstruct many entities at once.

        Missing ids (or ids outside ``organization_id`` when given) are
        simply absent from the result.
        """
        ids = list(dict.fromkeys(entity_ids))
        if not ids:
            return {}

        stmt = select(Entity).where(Entity.id.in_(ids))
        if organization_id is not None:
            stmt = stmt.where(Entity.organization_id == organization_id)
        entities = self.session.execute(stmt).scalars().all()
        if not entities:
            return {}
        found = [e.id for e in entities]

        fields: dict[UUID, dict[str, TypedValue]] = defaultdict(dict)
        for row in self.session.execute(
            select(DynamicField).where(DynamicField.entity_id.in_(found))
        ).scalars():
            fields[row.entity_id][row.field_name] = self._decode(row)

        metadata: dict[UUID, dict[str, dict[str, Any]]] = defaultdict(lambda: defaultdict(dict))
        for row in self.session.execute(
            select(EntityMetadata).where(
                EntityMetadata.entity_id.in_(found),
                EntityMetadata.is_active == True,  # noqa: E712
            )
        ).scalars():
            metadata[row.entity_id][row.metadata_type][row.metadata_key] = row.metadata_value

        relationships: dict[UUID, list[RelationshipInfo]] = defaultdict(list)
        for row in self.session.execute(
            select(EntityRelationship)
            .where(
                EntityRelationship.source_entity_id.in_(found),
                EntityRelationship.is_active == True,  # noqa: E712
            )
            .order_by(EntityRelationship.created_at, EntityRelationship.id)
        ).scalars():
            relationships[row.source_entity_id].append(RelationshipInfo.from_model(row))

        by_id = {e.id: e for e in entities}
        result: dict[UUID, EntityInfo] = {}
        for entity_id in ids:
            entity = by_id.get(entity_id)
            if entity is None:
                continue
            typed = fields.get(entity_id, {})
            result[entity_id] = EntityInfo(
                id=entity.id,
                organization_id=entity.organization_id,
                entity_type=entity.entity_type,
                entity_name=entity.entity_name,
                entity_code=entity.entity_code,
                is_active=entity.is_active,
                created_at=entity.created_at,
                updated_at=entity.updated_at,
                dynamic_fields={name: tv.value for name, tv in typed.items()},
                field_types={name: tv.field_type.value for name, tv in typed.items()},
                metadata={k: dict(v) for k, v in metadata.get(entity_id, {}).items()},
                relationships=tuple(relationships.get(entity_id, ())),
            )
        return result

    @staticmethod
    def _decode(row: DynamicField) -> TypedValue:
        try:
            return TypedValue.from_storage(row.field_value, row.field_type)
        except InvalidFieldValueError as e:
            logger.warning(
                "dynamic_field_decode_failed",
                extra={
                    "entity_id": str(row.entity_id),
                    "field_name": row.field_name,
                    "field_type": row.field_type,
                    "reason": e.reason,
                },
            )
            return TypedValue.of(row.field_value, "text")

    def get(self, entity_id: UUID, organization_id: str | None = None) -> EntityInfo | None:
        return self.load_many([entity_id], organization_id).get(entity_id)

    def _ordered(self, stmt, organization_id: str) -> list[EntityInfo]:
        ids = list(self.session.execute(stmt).scalars())
        loaded = self.load_many(ids, organization_id)
        return [loaded[i] for i in ids if i in loaded]

    def list_by_type(
        self,
        organization_id: str,
        entity_type: str,
        limit: int | None = None,
        active_only: bool = True,
    ) -> list[EntityInfo]:
        """Entities of one type, newest first."""
        self._require_org(organization_id, "list_entities")
        stmt = select(Entity.id).where(
            Entity.organization_id == organization_id,
            Entity.entity_type == entity_type,
        )
        if active_only:
            stmt = stmt.where(Entity.is_active == True)  # noqa: E712
        stmt = stmt.order_by(Entity.created_at.desc(), Entity.entity_code)
        if limit is not None:
            stmt = stmt.limit(limit)
        return self._ordered(stmt, organization_id)

    def search(
        self,
        organization_id: str,
        query: str,
        entity_type: str | None = None,
        limit: int = 50,
    ) -> list[EntityInfo]:
        """Case-insensitive substring match on name or code among active entities."""
        self._require_org(organization_id, "search_entities")
        pattern = f"%{_escape_like(query)}%"
        stmt = select(Entity.id).where(
            Entity.organization_id == organization_id,
            Entity.is_active == True,  # noqa: E712
            or_(
                Entity.entity_name.ilike(pattern, escape="\\"),
                Entity.entity_code.ilike(pattern, escape="\\"),
            ),
        )
        if entity_type is not None:
            stmt = stmt.where(Entity.entity_type == entity_type)
        stmt = stmt.order_by(Entity.entity_name, Entity.entity_code).limit(limit)
        return self._ordered(stmt, organization_id)

    def find_by_code(
        self,
        organization_id: str,
        entity_type: str,
        entity_code: str,
    ) -> EntityInfo | None:
        """The active entity holding a code, if any."""
        self._require_org(organization_id, "find_by_code")
        entity_id = self.session.execute(
            select(Entity.id).where(
                Entity.organization_id == organization_id,
                Entity.entity_type == entity_type,
                Entity.entity_code == entity_code,
                Entity.is_active == True,  # noqa: E712
            )
        ).scalar_one_or_none()
        return self.get(entity_id, organization_id) if entity_id else None

    def related(
        self,
        source_entity_id: UUID,
        relationship_type: str,
        organization_id: str,
    ) -> list[EntityInfo]:
        """Targets of active ``relationship_type`` edges from a source."""
        self._require_org(organization_id, "get_related_entities")
        stmt = (
            select(EntityRelationship.target_entity_id)
            .where(
                EntityRelationship.organization_id == organization_id,
                EntityRelationship.source_entity_id == source_entity_id,
                EntityRelationship.relationship_type == relationship_type,
                EntityRelationship.is_active == True,  # noqa: E712
            )
            .order_by(EntityRelationship.created_at, EntityRelationship.id)
        )
        return self._ordered(stmt, organization_id)
