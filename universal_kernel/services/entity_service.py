"""
EntityService -- create / update / delete / link entities over the
universal tables.

Responsibility:
    The reusable shape every business-object service follows: an entity
    row, its dynamic fields, versioned metadata, relationships, and an
    audit row in universal_transactions for every write.

Architecture position:
    Kernel > Services.  Reads go through EntitySelector; dynamic-field
    collisions are resolved with DuplicatePreventionService.

Invariants enforced:
    - Atomic multi-table writes: create, update, delete, linked create and
      metadata writes run inside a SAVEPOINT.  Any failure rolls back every
      table the operation touched and the error is re-raised.
    - organization_id is required on every write and on tenant-scoped
      reads.
    - Soft delete only.
    - Every create / update / delete records an audit transaction
      (entity_create / entity_update / entity_delete) whose number comes
      from SequenceService.
    - At most one active metadata row per (entity, type, key): the stale
      version is deactivated before the new one is inserted.

Failure modes:
    - DuplicateEntityCodeError when the active-code unique index rejects
      the insert or code change.
    - EntityNotFoundError / EntityInactiveError for unknown or deleted ids.
    - InvalidEntityDataError / InvalidFieldValueError for malformed input.
    - SelfRelationshipError / CrossTenantRelationshipError on bad edges.
    - Other SQLAlchemyError: logged with traceback and re-raised.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from universal_kernel.domain.clock import Clock
from universal_kernel.domain.dtos import (
    BulkCreateError,
    BulkCreateResult,
    EntityAnalytics,
    EntityInfo,
    FieldAction,
    MetadataInfo,
    RelationshipInfo,
    TransactionInfo,
)
from universal_kernel.domain.rules import (
    DEFAULT_ENTITY_SETTINGS,
    DuplicateRules,
    EntitySettings,
)
from universal_kernel.domain.values import TypedValue, jsonable
from universal_kernel.exceptions import (
    CrossTenantRelationshipError,
    DuplicateEntityCodeError,
    EntityInactiveError,
    EntityNotFoundError,
    InvalidEntityDataError,
    RelationshipNotFoundError,
    SelfRelationshipError,
    UniversalKernelError,
)
from universal_kernel.logging_config import get_logger
from universal_kernel.models.dynamic_data import DynamicField
from universal_kernel.models.entity import Entity
from universal_kernel.models.metadata import EntityMetadata
from universal_kernel.models.relationship import EntityRelationship
from universal_kernel.models.transaction import UniversalTransaction
from universal_kernel.selectors.entity_selector import EntitySelector
from universal_kernel.services.base import BaseService
from universal_kernel.services.duplicate_prevention_service import (
    DuplicatePreventionService,
)
from universal_kernel.services.sequence_service import SequenceService

logger = get_logger("services.entity")

AUDIT_CREATE = "entity_create"
AUDIT_UPDATE = "entity_update"
AUDIT_DELETE = "entity_delete"

FieldInput = Mapping[str, Any] | Sequence[Mapping[str, Any]]


@dataclass(frozen=True)
class MetadataEntry:
    """One metadata value to write."""

    metadata_type: str
    metadata_key: str
    metadata_value: Any
    metadata_category: str = "general"

    @classmethod
    def coerce(cls, item: MetadataEntry | Mapping[str, Any]) -> MetadataEntry:
        if isinstance(item, MetadataEntry):
            return item
        if not isinstance(item, Mapping):
            raise InvalidEntityDataError("metadata", f"malformed entry {item!r}")
        for required in ("metadata_type", "metadata_key"):
            if not item.get(required):
                raise InvalidEntityDataError(required, "required for metadata")
        return cls(
            metadata_type=item["metadata_type"],
            metadata_key=item["metadata_key"],
            metadata_value=item.get("metadata_value"),
            metadata_category=item.get("metadata_category") or "general",
        )


def normalize_fields(fields: FieldInput | None) -> dict[str, TypedValue]:
    """
    Accept ``{name: value}`` or a sequence of
    ``{field_name, field_value, field_type?}`` tuples.

    Values may already be TypedValue instances; otherwise the type is
    inferred (or taken from ``field_type``).
    """
    if not fields:
        return {}

    pairs: list[tuple[Any, Any, Any]] = []
    if isinstance(fields, Mapping):
        pairs = [(name, value, None) for name, value in fields.items()]
    else:
        for item in fields:
            if not isinstance(item, Mapping) or "field_name" not in item:
                raise InvalidEntityDataError("dynamic_fields", f"malformed field {item!r}")
            pairs.append((item["field_name"], item.get("field_value"), item.get("field_type")))

    result: dict[str, TypedValue] = {}
    for name, value, field_type in pairs:
        if not isinstance(name, str) or not name.strip():
            raise InvalidEntityDataError("field_name", "must be a non-empty string")
        if isinstance(value, TypedValue):
            result[name] = value
        else:
            result[name] = TypedValue.of(value, field_type)
    return result


class EntityService(BaseService[Entity]):
    """
    Write service for entities and everything attached to them.

    Contract:
        Methods return DTOs (EntityInfo, RelationshipInfo, ...).  The caller
        owns the outer transaction; this service flushes and uses savepoints
        but never commits.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: EntitySettings | None = None,
        duplicate_rules: DuplicateRules | None = None,
        sequence_service: SequenceService | None = None,
    ):
        super().__init__(session, clock)
        self.settings = settings or DEFAULT_ENTITY_SETTINGS
        self.selector = EntitySelector(session)
        self.duplicates = DuplicatePreventionService(session, duplicate_rules, self.clock)
        self._sequences = sequence_service or SequenceService(session)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _load(self, entity_id: UUID, organization_id: str | None = None) -> Entity:
        entity = self.session.get(Entity, entity_id)
        if entity is None or (
            organization_id is not None and entity.organization_id != organization_id
        ):
            raise EntityNotFoundError(str(entity_id), organization_id)
        return entity

    def _load_active(self, entity_id: UUID, organization_id: str | None = None) -> Entity:
        entity = self._load(entity_id, organization_id)
        if not entity.is_active:
            raise EntityInactiveError(str(entity_id))
        return entity

    def _info(self, entity_id: UUID) -> EntityInfo:
        info = self.selector.get(entity_id)
        if info is None:
            raise EntityNotFoundError(str(entity_id))
        return info

    def _flush_entity(self, entity: Entity) -> None:
        """Flush a new or re-coded entity; the only unique index is the code."""
        # A failed flush closes the savepoint and expires the instance
        key = (entity.organization_id, entity.entity_type, entity.entity_code)
        try:
            self.session.flush()
        except IntegrityError as e:
            raise DuplicateEntityCodeError(*key) from e

    def _record_audit(
        self,
        entity: Entity,
        transaction_type: str,
        changes: dict[str, Any],
        actor_id: UUID | None,
    ) -> UniversalTransaction:
        txn = UniversalTransaction(
            organization_id=entity.organization_id,
            transaction_type=transaction_type,
            transaction_number=self._sequences.next_number(
                entity.organization_id,
                SequenceService.AUDIT,
                self.settings.audit_number_prefix,
            ),
            transaction_date=self.clock.today(),
            transaction_status="completed",
            transaction_data=jsonable({
                "entity_id": str(entity.id),
                "entity_type": entity.entity_type,
                "entity_code": entity.entity_code,
                "changes": changes,
            }),
            created_by_id=actor_id,
        )
        self.session.add(txn)
        return txn

    def _add_fields(self, entity: Entity, fields: dict[str, TypedValue], actor_id: UUID | None) -> None:
        for name, typed in fields.items():
            self.session.add(
                DynamicField(
                    entity_id=entity.id,
                    field_name=name,
                    field_value=typed.encoded,
                    field_type=typed.field_type.value,
                    created_by_id=actor_id,
                )
            )

    def _write_metadata(
        self,
        entity: Entity,
        entry: MetadataEntry,
        actor_id: UUID | None,
    ) -> EntityMetadata:
        self.duplicates.prevent_duplicate_metadata(
            entity.organization_id,
            entity.entity_type,
            entity.id,
            entry.metadata_type,
            entry.metadata_key,
        )
        row = EntityMetadata(
            organization_id=entity.organization_id,
            entity_type=entity.entity_type,
            entity_id=entity.id,
            metadata_type=entry.metadata_type,
            metadata_category=entry.metadata_category,
            metadata_key=entry.metadata_key,
            metadata_value=jsonable(entry.metadata_value),
            is_active=True,
            effective_from=self.clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(row)
        return row

    @staticmethod
    def _validate_identity(
        organization_id: str | None,
        entity_type: str | None,
        entity_name: str | None,
        entity_code: str | None,
    ) -> None:
        BaseService._require_org(organization_id, "create_entity")
        for name, value in (
            ("entity_type", entity_type),
            ("entity_name", entity_name),
            ("entity_code", entity_code),
        ):
            if value is None or not str(value).strip():
                raise InvalidEntityDataError(name, "required")

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def create_entity(
        self,
        organization_id: str,
        entity_type: str,
        entity_name: str,
        entity_code: str,
        dynamic_fields: FieldInput | None = None,
        metadata: Sequence[MetadataEntry | Mapping[str, Any]] | None = None,
        actor_id: UUID | None = None,
    ) -> EntityInfo:
        """
        Create an entity with its fields, metadata and audit row atomically.

        Raises:
            DuplicateEntityCodeError: Active entity with the same code exists.
        """
        self._validate_identity(organization_id, entity_type, entity_name, entity_code)
        fields = normalize_fields(dynamic_fields)
        entries = [MetadataEntry.coerce(m) for m in metadata or ()]

        try:
            with self.session.begin_nested():
                entity = Entity(
                    organization_id=organization_id,
                    entity_type=entity_type,
                    entity_name=entity_name,
                    entity_code=entity_code,
                    is_active=True,
                    created_by_id=actor_id,
                )
                self.session.add(entity)
                self._flush_entity(entity)

                self._add_fields(entity, fields, actor_id)
                for entry in entries:
                    self._write_metadata(entity, entry, actor_id)
                self._record_audit(
                    entity,
                    AUDIT_CREATE,
                    {
                        "entity_name": entity_name,
                        "fields": sorted(fields),
                        "metadata": [f"{e.metadata_type}.{e.metadata_key}" for e in entries],
                    },
                    actor_id,
                )
                self.session.flush()
        except DuplicateEntityCodeError:
            logger.warning(
                "entity_code_conflict",
                extra={
                    "organization_id": organization_id,
                    "entity_type": entity_type,
                    "entity_code": entity_code,
                },
            )
            raise
        except SQLAlchemyError:
            logger.error(
                "entity_create_failed",
                extra={"organization_id": organization_id, "entity_type": entity_type},
                exc_info=True,
            )
            raise

        logger.info(
            "entity_created",
            extra={
                "organization_id": organization_id,
                "entity_id": str(entity.id),
                "entity_type": entity_type,
                "entity_code": entity_code,
                "field_count": len(fields),
                "metadata_count": len(entries),
            },
        )
        return self._info(entity.id)

    def get_entity(self, entity_id: UUID, organization_id: str | None = None) -> EntityInfo:
        """
        Reconstructed entity, active or not.

        Raises:
            EntityNotFoundError: Unknown id, or not in ``organization_id``.
        """
        info = self.selector.get(entity_id, organization_id)
        if info is None:
            raise EntityNotFoundError(str(entity_id), organization_id)
        return info

    def list_entities(
        self,
        organization_id: str,
        entity_type: str,
        limit: int | None = None,
    ) -> list[EntityInfo]:
        return self.selector.list_by_type(organization_id, entity_type, limit=limit)

    def search_entities(
        self,
        organization_id: str,
        query: str,
        entity_type: str | None = None,
        limit: int | None = None,
    ) -> list[EntityInfo]:
        return self.selector.search(
            organization_id,
            query,
            entity_type=entity_type,
            limit=limit or self.settings.search_page_size,
        )

    # ------------------------------------------------------------------
    # Update / delete
    # ------------------------------------------------------------------

    def update_entity(
        self,
        entity_id: UUID,
        entity_name: str | None = None,
        entity_code: str | None = None,
        dynamic_fields: FieldInput | None = None,
        metadata: Sequence[MetadataEntry | Mapping[str, Any]] | None = None,
        replace_fields: bool = True,
        organization_id: str | None = None,
        actor_id: UUID | None = None,
    ) -> EntityInfo:
        """
        Update an active entity.

        Dynamic fields:
            ``replace_fields=True`` (default) deletes every stored field and
            writes ``dynamic_fields`` as the complete new set.  With
            ``replace_fields=False`` the supplied fields are upserted:
            unchanged values are kept, versioned fields archive the old value
            as an inactive ``field_history`` metadata row, everything else is
            overwritten.  ``dynamic_fields=None`` leaves fields untouched.

        Metadata entries supersede the active version of their key.
        """
        entity = self._load_active(entity_id, organization_id)
        fields = normalize_fields(dynamic_fields) if dynamic_fields is not None else None
        entries = [MetadataEntry.coerce(m) for m in metadata or ()]
        changes: dict[str, Any] = {}

        try:
            with self.session.begin_nested():
                if entity_name is not None and entity_name != entity.entity_name:
                    if not entity_name.strip():
                        raise InvalidEntityDataError("entity_name", "required")
                    changes["entity_name"] = {"from": entity.entity_name, "to": entity_name}
                    entity.entity_name = entity_name

                if entity_code is not None and entity_code != entity.entity_code:
                    if not entity_code.strip():
                        raise InvalidEntityDataError("entity_code", "required")
                    changes["entity_code"] = {"from": entity.entity_code, "to": entity_code}
                    entity.entity_code = entity_code
                    self._flush_entity(entity)

                if fields is not None:
                    if replace_fields:
                        changes.update(self._replace_fields(entity, fields, actor_id))
                    else:
                        changes.update(self._upsert_fields(entity, fields, actor_id))

                for entry in entries:
                    self._write_metadata(entity, entry, actor_id)
                if entries:
                    changes["metadata"] = [f"{e.metadata_type}.{e.metadata_key}" for e in entries]

                entity.updated_by_id = actor_id
                self._record_audit(entity, AUDIT_UPDATE, changes, actor_id)
                self.session.flush()
        except DuplicateEntityCodeError:
            logger.warning(
                "entity_code_conflict",
                extra={"entity_id": str(entity_id), "entity_code": entity_code},
            )
            raise
        except SQLAlchemyError:
            logger.error(
                "entity_update_failed",
                extra={"entity_id": str(entity_id)},
                exc_info=True,
            )
            raise

        logger.info(
            "entity_updated",
            extra={
                "organization_id": entity.organization_id,
                "entity_id": str(entity.id),
                "changed": sorted(changes),
            },
        )
        return self._info(entity.id)

    def _replace_fields(
        self,
        entity: Entity,
        fields: dict[str, TypedValue],
        actor_id: UUID | None,
    ) -> dict[str, Any]:
        self.session.execute(
            delete(DynamicField)
            .where(DynamicField.entity_id == entity.id)
            .execution_options(synchronize_session="fetch")
        )
        self._add_fields(entity, fields, actor_id)
        return {"fields_replaced": sorted(fields)}

    def _upsert_fields(
        self,
        entity: Entity,
        fields: dict[str, TypedValue],
        actor_id: UUID | None,
    ) -> dict[str, Any]:
        check = self.duplicates.check_dynamic_data_duplicates(
            entity.id, {name: typed.encoded for name, typed in fields.items()}
        )
        rows = {
            row.field_name: row
            for row in self.session.execute(
                select(DynamicField).where(
                    DynamicField.entity_id == entity.id,
                    DynamicField.field_name.in_(list(fields)),
                )
            ).scalars()
        }

        summary: dict[str, list[str]] = {
            "fields_added": [],
            "fields_updated": [],
            "fields_versioned": [],
            "fields_kept": [],
        }
        for name, typed in fields.items():
            action = check.field_action(name)
            row = rows.get(name)
            if action is None or row is None:
                self._add_fields(entity, {name: typed}, actor_id)
                summary["fields_added"].append(name)
                continue
            if action is FieldAction.KEEP_EXISTING:
                summary["fields_kept"].append(name)
                continue
            if action is FieldAction.CREATE_VERSION:
                self._archive_field(entity, row, typed, actor_id)
                summary["fields_versioned"].append(name)
            else:
                summary["fields_updated"].append(name)
            row.field_value = typed.encoded
            row.field_type = typed.field_type.value
            row.updated_by_id = actor_id

        return {key: names for key, names in summary.items() if names}

    def _archive_field(
        self,
        entity: Entity,
        row: DynamicField,
        new_value: TypedValue,
        actor_id: UUID | None,
    ) -> None:
        """Keep the superseded value as an inactive history metadata row."""
        now = self.clock.now()
        self.session.add(
            EntityMetadata(
                organization_id=entity.organization_id,
                entity_type=entity.entity_type,
                entity_id=entity.id,
                metadata_type=self.settings.history_metadata_type,
                metadata_category="versioning",
                metadata_key=row.field_name,
                metadata_value={
                    "value": row.field_value,
                    "field_type": row.field_type,
                    "replaced_by": new_value.encoded,
                },
                is_active=False,
                effective_from=row.updated_at or now,
                effective_to=now,
                created_by_id=actor_id,
            )
        )

    def delete_entity(
        self,
        entity_id: UUID,
        organization_id: str | None = None,
        actor_id: UUID | None = None,
    ) -> EntityInfo:
        """
        Soft-delete: ``is_active=False`` plus an entity_delete audit row.

        Raises:
            EntityInactiveError: Already deleted.
        """
        entity = self._load_active(entity_id, organization_id)
        try:
            with self.session.begin_nested():
                entity.is_active = False
                entity.updated_by_id = actor_id
                self._record_audit(entity, AUDIT_DELETE, {"is_active": False}, actor_id)
                self.session.flush()
        except SQLAlchemyError:
            logger.error(
                "entity_delete_failed",
                extra={"entity_id": str(entity_id)},
                exc_info=True,
            )
            raise

        logger.info(
            "entity_deleted",
            extra={"organization_id": entity.organization_id, "entity_id": str(entity.id)},
        )
        return self._info(entity.id)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def set_metadata(
        self,
        entity_id: UUID,
        metadata_type: str,
        metadata_key: str,
        metadata_value: Any,
        metadata_category: str = "general",
        organization_id: str | None = None,
        actor_id: UUID | None = None,
    ) -> MetadataInfo:
        """Write a new version of a metadata key, superseding the active one."""
        entity = self._load_active(entity_id, organization_id)
        entry = MetadataEntry.coerce({
            "metadata_type": metadata_type,
            "metadata_key": metadata_key,
            "metadata_value": metadata_value,
            "metadata_category": metadata_category,
        })
        with self.session.begin_nested():
            row = self._write_metadata(entity, entry, actor_id)
            self.session.flush()
        return MetadataInfo.from_model(row)

    def metadata_history(
        self,
        entity_id: UUID,
        metadata_type: str,
        metadata_key: str,
    ) -> list[MetadataInfo]:
        """Every version of a metadata key, active first, then newest first."""
        rows = self.session.execute(
            select(EntityMetadata)
            .where(
                EntityMetadata.entity_id == entity_id,
                EntityMetadata.metadata_type == metadata_type,
                EntityMetadata.metadata_key == metadata_key,
            )
            .order_by(
                EntityMetadata.is_active.desc(),
                EntityMetadata.effective_to.desc(),
                EntityMetadata.created_at.desc(),
            )
        ).scalars()
        return [MetadataInfo.from_model(r) for r in rows]

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def create_relationship(
        self,
        source_entity_id: UUID,
        target_entity_id: UUID,
        relationship_type: str,
        relationship_data: dict[str, Any] | None = None,
        relationship_name: str | None = None,
        organization_id: str | None = None,
        actor_id: UUID | None = None,
    ) -> RelationshipInfo:
        """
        Insert a directed edge between two entities of one organization.

        No cycle detection and no uniqueness: linking the same pair twice
        creates two edges.
        """
        if source_entity_id == target_entity_id:
            raise SelfRelationshipError(str(source_entity_id), relationship_type)
        source = self._load(source_entity_id, organization_id)
        target = self._load(target_entity_id)
        if source.organization_id != target.organization_id:
            raise CrossTenantRelationshipError(str(source_entity_id), str(target_entity_id))

        rel = EntityRelationship(
            organization_id=source.organization_id,
            source_entity_id=source.id,
            target_entity_id=target.id,
            relationship_type=relationship_type,
            relationship_name=relationship_name,
            relationship_data=jsonable(relationship_data or {}),
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(rel)
        self.session.flush()
        logger.info(
            "relationship_created",
            extra={
                "organization_id": source.organization_id,
                "relationship_id": str(rel.id),
                "source_entity_id": str(source.id),
                "target_entity_id": str(target.id),
                "relationship_type": relationship_type,
            },
        )
        return RelationshipInfo.from_model(rel)

    def deactivate_relationship(
        self,
        relationship_id: UUID,
        organization_id: str | None = None,
    ) -> RelationshipInfo:
        rel = self.session.get(EntityRelationship, relationship_id)
        if rel is None or (
            organization_id is not None and rel.organization_id != organization_id
        ):
            raise RelationshipNotFoundError(str(relationship_id))
        rel.is_active = False
        self.session.flush()
        logger.info(
            "relationship_deactivated",
            extra={"organization_id": rel.organization_id, "relationship_id": str(rel.id)},
        )
        return RelationshipInfo.from_model(rel)

    def get_related_entities(
        self,
        source_entity_id: UUID,
        relationship_type: str,
        organization_id: str | None = None,
    ) -> list[EntityInfo]:
        source = self._load(source_entity_id, organization_id)
        return self.selector.related(source.id, relationship_type, source.organization_id)

    def create_linked_entity(
        self,
        parent_entity_id: UUID,
        relationship_type: str,
        entity_type: str,
        entity_name: str,
        entity_code: str,
        dynamic_fields: FieldInput | None = None,
        metadata: Sequence[MetadataEntry | Mapping[str, Any]] | None = None,
        relationship_data: dict[str, Any] | None = None,
        actor_id: UUID | None = None,
    ) -> EntityInfo:
        """
        Create an entity in the parent's organization and link parent ->
        child in one savepoint.
        """
        parent = self._load_active(parent_entity_id)
        with self.session.begin_nested():
            child = self.create_entity(
                parent.organization_id,
                entity_type,
                entity_name,
                entity_code,
                dynamic_fields=dynamic_fields,
                metadata=metadata,
                actor_id=actor_id,
            )
            self.create_relationship(
                parent.id,
                child.id,
                relationship_type,
                relationship_data=relationship_data,
                actor_id=actor_id,
            )
        return child

    # ------------------------------------------------------------------
    # Analytics / bulk
    # ------------------------------------------------------------------

    def get_entity_analytics(
        self,
        entity_id: UUID,
        organization_id: str | None = None,
        recent_limit: int = 10,
    ) -> EntityAnalytics:
        """
        Counts of what hangs off an entity plus its most recent activity.

        Activity is every organization transaction whose
        ``transaction_data.entity_id`` names the entity (audit rows
        included).
        """
        entity = self._load(entity_id, organization_id)

        related = self.session.execute(
            select(func.count()).select_from(EntityRelationship).where(
                EntityRelationship.source_entity_id == entity.id,
                EntityRelationship.is_active == True,  # noqa: E712
            )
        ).scalar_one()
        metadata_count = self.session.execute(
            select(func.count()).select_from(EntityMetadata).where(
                EntityMetadata.entity_id == entity.id,
                EntityMetadata.is_active == True,  # noqa: E712
            )
        ).scalar_one()
        field_count = self.session.execute(
            select(func.count()).select_from(DynamicField).where(
                DynamicField.entity_id == entity.id
            )
        ).scalar_one()

        mentions = (
            UniversalTransaction.organization_id == entity.organization_id,
            UniversalTransaction.transaction_data["entity_id"].as_string() == str(entity.id),
        )
        txn_count = self.session.execute(
            select(func.count()).select_from(UniversalTransaction).where(*mentions)
        ).scalar_one()
        recent = self.session.execute(
            select(UniversalTransaction)
            .where(*mentions)
            .order_by(
                UniversalTransaction.created_at.desc(),
                UniversalTransaction.transaction_number.desc(),
            )
            .limit(recent_limit)
        ).scalars()

        return EntityAnalytics(
            entity_id=entity.id,
            related_entity_count=related,
            transaction_count=txn_count,
            metadata_count=metadata_count,
            dynamic_field_count=field_count,
            recent_activity=tuple(TransactionInfo.from_model(t) for t in recent),
        )

    def bulk_create_entities(
        self,
        organization_id: str,
        entity_type: str,
        rows: Sequence[Mapping[str, Any]],
        actor_id: UUID | None = None,
    ) -> BulkCreateResult:
        """
        Best-effort creation: each row succeeds or fails on its own.

        Each row needs ``entity_name`` and ``entity_code``; optional
        ``dynamic_fields`` and ``metadata``.  Failed rows leave nothing
        behind and are reported with their error code.
        """
        self._require_org(organization_id, "bulk_create_entities")
        created: list[UUID] = []
        errors: list[BulkCreateError] = []

        for index, row in enumerate(rows):
            try:
                info = self.create_entity(
                    organization_id,
                    entity_type,
                    row.get("entity_name"),
                    row.get("entity_code"),
                    dynamic_fields=row.get("dynamic_fields"),
                    metadata=row.get("metadata"),
                    actor_id=actor_id,
                )
                created.append(info.id)
            except UniversalKernelError as e:
                errors.append(BulkCreateError(row=index, code=e.code, message=str(e)))
            except SQLAlchemyError as e:
                logger.warning(
                    "bulk_create_row_failed",
                    extra={"organization_id": organization_id, "row": index},
                    exc_info=True,
                )
                errors.append(BulkCreateError(row=index, code="DATABASE_ERROR", message=str(e)))

        logger.info(
            "bulk_create_completed",
            extra={
                "organization_id": organization_id,
                "entity_type": entity_type,
                "success": len(created),
                "failed": len(errors),
            },
        )
        return BulkCreateResult(
            success=len(created),
            failed=len(errors),
            errors=tuple(errors),
            created_ids=tuple(created),
        )
