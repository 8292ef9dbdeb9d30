"""
DTOs -- immutable data transfer objects returned by the kernel.

Responsibility:
    Defines the frozen structures that cross the service boundary:
    reconstructed entities (EntityInfo), relationship / metadata / transaction
    snapshots, duplicate-check dispositions, naming validation results, and
    bulk-operation reports.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model()`` converters exist for
    the service and selector layers; domain logic never touches ORM rows.

Invariants enforced:
    - Services return DTOs, never ORM instances, so a caller cannot mutate
      persistent state by accident.
    - DuplicateCheckResult.has_duplicates is False iff prevention_action is
      ALLOW.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from universal_kernel.models.metadata import EntityMetadata
    from universal_kernel.models.relationship import EntityRelationship
    from universal_kernel.models.transaction import UniversalTransaction


# ---------------------------------------------------------------------------
# Entity reconstruction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RelationshipInfo:
    id: UUID
    organization_id: str
    source_entity_id: UUID
    target_entity_id: UUID
    relationship_type: str
    relationship_name: str | None
    relationship_data: dict[str, Any]
    is_active: bool

    @classmethod
    def from_model(cls, rel: EntityRelationship) -> RelationshipInfo:
        return cls(
            id=rel.id,
            organization_id=rel.organization_id,
            source_entity_id=rel.source_entity_id,
            target_entity_id=rel.target_entity_id,
            relationship_type=rel.relationship_type,
            relationship_name=rel.relationship_name,
            relationship_data=dict(rel.relationship_data or {}),
            is_active=rel.is_active,
        )


@dataclass(frozen=True)
class MetadataInfo:
    id: UUID
    entity_id: UUID
    metadata_type: str
    metadata_category: str
    metadata_key: str
    metadata_value: Any
    is_active: bool
    effective_from: datetime | None
    effective_to: datetime | None

    @classmethod
    def from_model(cls, row: EntityMetadata) -> MetadataInfo:
        return cls(
            id=row.id,
            entity_id=row.entity_id,
            metadata_type=row.metadata_type,
            metadata_category=row.metadata_category,
            metadata_key=row.metadata_key,
            metadata_value=row.metadata_value,
            is_active=row.is_active,
            effective_from=row.effective_from,
            effective_to=row.effective_to,
        )


@dataclass(frozen=True)
class EntityInfo:
    """
    A logical entity reassembled from the universal tables.

    Contract:
        ``dynamic_fields`` holds decoded Python values keyed by field name;
        ``field_types`` holds the stored type hint for each.  ``metadata``
        holds the ACTIVE metadata values as ``{metadata_type: {key: value}}``.
        ``relationships`` are the active outgoing edges.
    """

    id: UUID
    organization_id: str
    entity_type: str
    entity_name: str
    entity_code: str
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None
    dynamic_fields: dict[str, Any] = field(default_factory=dict)
    field_types: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, dict[str, Any]] = field(default_factory=dict)
    relationships: tuple[RelationshipInfo, ...] = ()

    def get(self, field_name: str, default: Any = None) -> Any:
        """Dynamic field value, or ``default`` when the field is absent."""
        return self.dynamic_fields.get(field_name, default)

    def related_ids(self, relationship_type: str) -> tuple[UUID, ...]:
        return tuple(
            r.target_entity_id
            for r in self.relationships
            if r.relationship_type == relationship_type
        )


@dataclass(frozen=True)
class TransactionInfo:
    id: UUID
    organization_id: str
    transaction_type: str
    transaction_number: str
    transaction_date: date
    transaction_status: str
    total_amount: Decimal
    transaction_data: dict[str, Any]
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, txn: UniversalTransaction) -> TransactionInfo:
        return cls(
            id=txn.id,
            organization_id=txn.organization_id,
            transaction_type=txn.transaction_type,
            transaction_number=txn.transaction_number,
            transaction_date=txn.transaction_date,
            transaction_status=txn.transaction_status,
            total_amount=Decimal(str(txn.total_amount or 0)),
            transaction_data=dict(txn.transaction_data or {}),
            created_at=txn.created_at,
        )


@dataclass(frozen=True)
class EntityAnalytics:
    entity_id: UUID
    related_entity_count: int
    transaction_count: int
    metadata_count: int
    dynamic_field_count: int
    recent_activity: tuple[TransactionInfo, ...] = ()


# ---------------------------------------------------------------------------
# Duplicate prevention
# ---------------------------------------------------------------------------


class PreventionAction(str, Enum):
    """Advisory disposition returned by a duplicate check."""

    ALLOW = "allow"
    UPDATE = "update"
    MANUAL_REVIEW = "manual_review"
    MERGE = "merge"
    REJECT = "reject"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    PreventionAction.ALLOW: 0,
    PreventionAction.UPDATE: 1,
    PreventionAction.MANUAL_REVIEW: 2,
    PreventionAction.MERGE: 3,
    PreventionAction.REJECT: 4,
}


class FieldAction(str, Enum):
    """Per-field action for a colliding dynamic field."""

    KEEP_EXISTING = "keep_existing"
    UPDATE = "update"
    CREATE_VERSION = "create_version"


@dataclass(frozen=True)
class FieldDuplicate:
    entity_id: UUID
    field_name: str
    existing_value: str | None
    new_value: str | None
    action: FieldAction


@dataclass(frozen=True)
class DuplicateCheckResult:
    """
    Outcome of one duplicate check.

    Guarantees:
        - ``has_duplicates`` is False exactly when the action is ALLOW.
        - ``duplicate_ids`` contains no repeats.
        - ``field_details`` is only populated by dynamic-data checks.
    """

    has_duplicates: bool
    prevention_action: PreventionAction
    duplicate_type: str | None = None
    duplicate_ids: tuple[UUID, ...] = ()
    duplicate_fields: tuple[str, ...] = ()
    message: str | None = None
    suggestions: tuple[str, ...] = ()
    field_details: tuple[FieldDuplicate, ...] = ()

    @classmethod
    def allow(cls) -> DuplicateCheckResult:
        return cls(has_duplicates=False, prevention_action=PreventionAction.ALLOW)

    @property
    def is_blocking(self) -> bool:
        return self.prevention_action is PreventionAction.REJECT

    def field_action(self, field_name: str) -> FieldAction | None:
        for detail in self.field_details:
            if detail.field_name == field_name:
                return detail.action
        return None


@dataclass(frozen=True)
class DuplicatePattern:
    """Summary row of the administrative duplicate scan."""

    pattern_type: str
    frequency: int
    impact_level: str
    recommended_action: str
    affected: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NamingValidationResult:
    is_valid: bool
    confidence: float
    pattern: str | None = None
    error: str | None = None
    suggestion: str | None = None


@dataclass(frozen=True)
class FieldPatternSummary:
    """Pattern counts over a table's column names."""

    has_id: bool
    foreign_keys: int
    timestamps: int
    status_fields: int
    code_fields: int
    name_fields: int

    @property
    def confidence(self) -> float:
        checks = (
            self.has_id,
            self.foreign_keys > 0,
            # created_at and updated_at
            self.timestamps >= 2,
            self.status_fields > 0,
            self.code_fields > 0,
            self.name_fields > 0,
        )
        return sum(1 for c in checks if c) / len(checks)


@dataclass(frozen=True)
class TableAudit:
    table_name: str
    entity_type: str
    summary: FieldPatternSummary
    results: dict[str, NamingValidationResult]
    missing_required: tuple[str, ...] = ()

    @property
    def invalid_fields(self) -> tuple[str, ...]:
        return tuple(name for name, r in self.results.items() if not r.is_valid)


# ---------------------------------------------------------------------------
# Bulk operations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BulkCreateError:
    row: int
    code: str
    message: str


@dataclass(frozen=True)
class BulkCreateResult:
    """Per-row outcome of a best-effort bulk create."""

    success: int
    failed: int
    errors: tuple[BulkCreateError, ...] = ()
    created_ids: tuple[UUID, ...] = ()
