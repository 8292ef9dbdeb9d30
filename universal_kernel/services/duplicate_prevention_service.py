"""
DuplicatePreventionService -- advisory duplicate detection before writes.

Responsibility:
    Before an entity, dynamic field, metadata row or transaction is written,
    look for existing rows that collide with it and return a disposition
    (allow / update / manual_review / merge / reject) so the caller can
    decide whether to proceed.  Also deactivates stale metadata versions
    and produces the administrative duplicate-pattern report.

Architecture position:
    Kernel > Services.  Read-mostly; the only write is
    ``prevent_duplicate_metadata``.

Invariants enforced:
    - Every query is scoped to the caller's organization_id (dynamic-field
      lookups join core_entities to get it).
    - Checks return dispositions; they never raise for a conflict.
    - When several checks hit, the most severe disposition wins
      (reject > merge > manual_review > update > allow) and suggestions are
      the de-duplicated union across all hits.

Failure modes:
    - MissingOrganizationError when organization_id is blank.
    - SQLAlchemyError from the underlying queries propagates unchanged.

Notes:
    This service is a fast-path hint for callers.  Correctness under
    concurrent writers comes from the unique indexes on the universal
    tables; a check that passes can still lose the race to the index.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import replace
from typing import Any
from uuid import UUID

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session

from universal_kernel.domain.clock import Clock
from universal_kernel.domain.dtos import (
    DuplicateCheckResult,
    DuplicatePattern,
    FieldAction,
    FieldDuplicate,
    PreventionAction,
)
from universal_kernel.domain.rules import (
    DEFAULT_DUPLICATE_RULES,
    BusinessKeyRule,
    DuplicateRules,
    KeySource,
)
from universal_kernel.domain.values import encode_value
from universal_kernel.logging_config import get_logger
from universal_kernel.models.dynamic_data import DynamicField
from universal_kernel.models.entity import Entity
from universal_kernel.models.metadata import EntityMetadata
from universal_kernel.models.transaction import UniversalTransaction
from universal_kernel.services.base import BaseService

logger = get_logger("services.duplicate_prevention")


def most_severe(results: Iterable[DuplicateCheckResult]) -> DuplicateCheckResult:
    """
    Combine several check results into one.

    The first result with the highest severity is kept; its suggestions are
    replaced with the ordered, de-duplicated union of every hit's
    suggestions.
    """
    hits = [r for r in results if r.has_duplicates]
    if not hits:
        return DuplicateCheckResult.allow()
    worst = max(hits, key=lambda r: r.prevention_action.severity)
    suggestions = tuple(dict.fromkeys(s for r in hits for s in r.suggestions))
    return replace(worst, suggestions=suggestions)


class DuplicatePreventionService(BaseService[Entity]):
    """
    Stateless duplicate checks over a caller-owned session.

    Contract:
        Constructed per session; holds no state besides the injected rules
        and clock.

    Non-goals:
        Does NOT block writes.  Callers (or RegistrationOrchestrator) act on
        the returned disposition.
    """

    def __init__(
        self,
        session: Session,
        rules: DuplicateRules | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self.rules = rules or DEFAULT_DUPLICATE_RULES

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def check_entity_duplicates(
        self,
        organization_id: str,
        entity_type: str,
        entity_data: Mapping[str, Any],
    ) -> DuplicateCheckResult:
        """
        Run the code, business-key and name checks and return the most
        severe result.

        ``entity_data`` is the proposed payload: ``entity_code``,
        ``entity_name`` and any business-key fields (``email``,
        ``product_code`` ...) at the top level.
        """
        self._require_org(organization_id, "check_entity_duplicates")

        # One session cannot run these concurrently; order does not matter
        results = [
            self._check_entity_code(organization_id, entity_type, entity_data.get("entity_code")),
            self._check_business_keys(organization_id, entity_type, entity_data),
            self._check_similar_names(organization_id, entity_type, entity_data.get("entity_name")),
        ]
        result = most_severe(results)

        logger.info(
            "duplicate_check_completed",
            extra={
                "organization_id": organization_id,
                "entity_type": entity_type,
                "prevention_action": result.prevention_action.value,
                "duplicate_type": result.duplicate_type,
                "duplicate_count": len(result.duplicate_ids),
            },
        )
        return result

    def _check_entity_code(
        self,
        organization_id: str,
        entity_type: str,
        entity_code: str | None,
    ) -> DuplicateCheckResult:
        if not entity_code:
            return DuplicateCheckResult.allow()

        existing = self.session.execute(
            select(Entity.id, Entity.entity_name).where(
                Entity.organization_id == organization_id,
                Entity.entity_type == entity_type,
                Entity.entity_code == entity_code,
                Entity.is_active == True,  # noqa: E712
            )
        ).all()
        if not existing:
            return DuplicateCheckResult.allow()

        return DuplicateCheckResult(
            has_duplicates=True,
            prevention_action=PreventionAction.REJECT,
            duplicate_type="entity_code",
            duplicate_ids=tuple(row.id for row in existing),
            message=f'Entity code "{entity_code}" is already in use',
            suggestions=(
                "Use next available code",
                f"Add suffix (e.g., {entity_code}-2)",
                f"Update existing entity: {existing[0].entity_name}",
            ),
        )

    def _check_business_keys(
        self,
        organization_id: str,
        entity_type: str,
        entity_data: Mapping[str, Any],
    ) -> DuplicateCheckResult:
        for rule in self.rules.rules_for(entity_type):
            if rule.source is KeySource.TRANSACTION:
                result = self._check_transaction_key(organization_id, rule, entity_data)
            else:
                result = self._check_entity_key(organization_id, entity_type, rule, entity_data)
            if result.has_duplicates:
                return result
        return DuplicateCheckResult.allow()

    def _check_entity_key(
        self,
        organization_id: str,
        entity_type: str,
        rule: BusinessKeyRule,
        entity_data: Mapping[str, Any],
    ) -> DuplicateCheckResult:
        # Each field independently; ids are unioned in discovery order
        matched_ids: dict[UUID, None] = {}
        matched_fields: list[str] = []
        first_value: Any = None
        for field_name in rule.fields:
            value = entity_data.get(field_name)
            if value is None or value == "":
                continue
            if rule.source is KeySource.ENTITY_CODE:
                ids = self._entities_with_code(organization_id, entity_type, str(value))
            else:
                ids = self._entities_with_field(organization_id, entity_type, field_name, value)
            if ids:
                if first_value is None:
                    first_value = value
                matched_fields.append(field_name)
                matched_ids.update(dict.fromkeys(ids))

        if not matched_ids:
            return DuplicateCheckResult.allow()

        return DuplicateCheckResult(
            has_duplicates=True,
            prevention_action=rule.action,
            duplicate_type=rule.duplicate_type,
            duplicate_ids=tuple(matched_ids),
            duplicate_fields=tuple(matched_fields),
            message=rule.message.replace("{value}", str(first_value)),
            suggestions=rule.suggestions,
        )

    def _check_transaction_key(
        self,
        organization_id: str,
        rule: BusinessKeyRule,
        entity_data: Mapping[str, Any],
    ) -> DuplicateCheckResult:
        for field_name in rule.fields:
            value = entity_data.get(field_name)
            if value:
                result = self.check_transaction_duplicates(
                    organization_id, rule.transaction_type or field_name, str(value)
                )
                if result.has_duplicates:
                    return result
        return DuplicateCheckResult.allow()

    def _entities_with_code(
        self, organization_id: str, entity_type: str, code: str
    ) -> list[UUID]:
        return list(
            self.session.execute(
                select(Entity.id).where(
                    Entity.organization_id == organization_id,
                    Entity.entity_type == entity_type,
                    Entity.entity_code == code,
                    Entity.is_active == True,  # noqa: E712
                )
            ).scalars()
        )

    def _entities_with_field(
        self,
        organization_id: str,
        entity_type: str,
        field_name: str,
        value: Any,
    ) -> list[UUID]:
        encoded = value if isinstance(value, str) else encode_value(value)
        return list(
            self.session.execute(
                select(DynamicField.entity_id)
                .join(Entity, Entity.id == DynamicField.entity_id)
                .where(
                    Entity.organization_id == organization_id,
                    Entity.entity_type == entity_type,
                    Entity.is_active == True,  # noqa: E712
                    DynamicField.field_name == field_name,
                    DynamicField.field_value == encoded,
                )
            ).scalars()
        )

    def _check_similar_names(
        self,
        organization_id: str,
        entity_type: str,
        entity_name: str | None,
    ) -> DuplicateCheckResult:
        if not entity_name:
            return DuplicateCheckResult.allow()

        escaped = entity_name.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        similar = self.session.execute(
            select(Entity.id, Entity.entity_name).where(
                Entity.organization_id == organization_id,
                Entity.entity_type == entity_type,
                Entity.is_active == True,  # noqa: E712
                Entity.entity_name.ilike(f"%{escaped}%", escape="\\"),
            )
        ).all()
        if not similar:
            return DuplicateCheckResult.allow()

        wanted = entity_name.lower()
        exact = [row.id for row in similar if row.entity_name.lower() == wanted]
        if not exact:
            # Partial matches are reported but do not change the disposition
            logger.info(
                "similar_entities_found",
                extra={
                    "organization_id": organization_id,
                    "entity_type": entity_type,
                    "entity_name": entity_name,
                    "similar_count": len(similar),
                },
            )
            return DuplicateCheckResult.allow()

        return DuplicateCheckResult(
            has_duplicates=True,
            prevention_action=PreventionAction.MANUAL_REVIEW,
            duplicate_type="entity_name",
            duplicate_ids=tuple(exact),
            message=f'Entity with same name "{entity_name}" already exists',
            suggestions=(
                "Add distinguishing information (e.g., location, department)",
                "Use existing entity",
                "Create with different name",
            ),
        )

    # ------------------------------------------------------------------
    # Dynamic fields
    # ------------------------------------------------------------------

    def check_dynamic_data_duplicates(
        self,
        entity_id: UUID,
        fields: Mapping[str, Any],
    ) -> DuplicateCheckResult:
        """
        Compare proposed field values with the stored ones.

        Per field: identical value -> keep_existing, a versioned field
        (price, salary, rate by default) -> create_version, otherwise
        update.  Any collision makes the aggregate disposition ``update``.
        """
        if not fields:
            return DuplicateCheckResult.allow()

        existing = {
            row.field_name: row
            for row in self.session.execute(
                select(DynamicField).where(
                    DynamicField.entity_id == entity_id,
                    DynamicField.field_name.in_(list(fields)),
                )
            ).scalars()
        }

        details: list[FieldDuplicate] = []
        for name, value in fields.items():
            row = existing.get(name)
            if row is None:
                continue
            new_value = value if isinstance(value, str) or value is None else encode_value(value)
            details.append(
                FieldDuplicate(
                    entity_id=entity_id,
                    field_name=name,
                    existing_value=row.field_value,
                    new_value=new_value,
                    action=self._field_action(name, row.field_value, new_value),
                )
            )

        if not details:
            return DuplicateCheckResult.allow()

        return DuplicateCheckResult(
            has_duplicates=True,
            prevention_action=PreventionAction.UPDATE,
            duplicate_type="dynamic_data",
            duplicate_fields=tuple(d.field_name for d in details),
            message=f"Found {len(details)} existing fields that will be updated",
            suggestions=tuple(
                f'Field "{d.field_name}" exists with value "{d.existing_value}". '
                f'Will update to "{d.new_value}"'
                for d in details
            ),
            field_details=tuple(details),
        )

    def _field_action(
        self,
        field_name: str,
        existing_value: str | None,
        new_value: str | None,
    ) -> FieldAction:
        if existing_value == new_value:
            return FieldAction.KEEP_EXISTING
        if field_name in self.rules.versioned_fields:
            return FieldAction.CREATE_VERSION
        return FieldAction.UPDATE

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def _active_metadata(
        self,
        organization_id: str,
        entity_type: str,
        entity_id: UUID,
        metadata_type: str,
        metadata_key: str,
    ):
        return and_(
            EntityMetadata.organization_id == organization_id,
            EntityMetadata.entity_type == entity_type,
            EntityMetadata.entity_id == entity_id,
            EntityMetadata.metadata_type == metadata_type,
            EntityMetadata.metadata_key == metadata_key,
            EntityMetadata.is_active == True,  # noqa: E712
        )

    def check_metadata_duplicates(
        self,
        organization_id: str,
        entity_type: str,
        entity_id: UUID,
        metadata_type: str,
        metadata_key: str,
    ) -> DuplicateCheckResult:
        self._require_org(organization_id, "check_metadata_duplicates")
        existing = list(
            self.session.execute(
                select(EntityMetadata.id).where(
                    self._active_metadata(
                        organization_id, entity_type, entity_id, metadata_type, metadata_key
                    )
                )
            ).scalars()
        )
        if not existing:
            return DuplicateCheckResult.allow()

        return DuplicateCheckResult(
            has_duplicates=True,
            prevention_action=PreventionAction.UPDATE,
            duplicate_type="metadata",
            duplicate_ids=tuple(existing),
            message="Active metadata exists. Will deactivate old and create new version.",
            suggestions=("Previous metadata will be archived with timestamp",),
        )

    def prevent_duplicate_metadata(
        self,
        organization_id: str,
        entity_type: str,
        entity_id: UUID,
        metadata_type: str,
        metadata_key: str,
    ) -> int:
        """
        Deactivate the active version(s) of a metadata key.

        Returns:
            Number of rows deactivated.
        """
        self._require_org(organization_id, "prevent_duplicate_metadata")
        result = self.session.execute(
            update(EntityMetadata)
            .where(
                self._active_metadata(
                    organization_id, entity_type, entity_id, metadata_type, metadata_key
                )
            )
            .values(is_active=False, effective_to=self.clock.now())
            .execution_options(synchronize_session="fetch")
        )
        deactivated = result.rowcount or 0
        if deactivated:
            logger.info(
                "metadata_versions_deactivated",
                extra={
                    "organization_id": organization_id,
                    "entity_id": str(entity_id),
                    "metadata_type": metadata_type,
                    "metadata_key": metadata_key,
                    "count": deactivated,
                },
            )
        return deactivated

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def check_transaction_duplicates(
        self,
        organization_id: str,
        transaction_type: str,
        transaction_number: str,
    ) -> DuplicateCheckResult:
        self._require_org(organization_id, "check_transaction_duplicates")
        existing = list(
            self.session.execute(
                select(UniversalTransaction.id).where(
                    UniversalTransaction.organization_id == organization_id,
                    UniversalTransaction.transaction_type == transaction_type,
                    UniversalTransaction.transaction_number == transaction_number,
                )
            ).scalars()
        )
        if not existing:
            return DuplicateCheckResult.allow()

        return DuplicateCheckResult(
            has_duplicates=True,
            prevention_action=PreventionAction.REJECT,
            duplicate_type="transaction",
            duplicate_ids=tuple(existing),
            message=f"Transaction {transaction_number} already exists",
            suggestions=(
                "Use next sequence number",
                f"Add suffix to make unique (e.g., {transaction_number}-R1)",
            ),
        )

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    def monitor_duplicate_patterns(self, organization_id: str) -> list[DuplicatePattern]:
        """
        Scan an organization for duplicate clusters that slipped past the
        advisory checks.

        Patterns:
            entity_duplicates        same type + case-insensitive name (high)
            business_key_duplicates  same business-key field value (medium)
            transaction_duplicates   numbers equal after trim/case fold (critical)
        """
        self._require_org(organization_id, "monitor_duplicate_patterns")
        patterns: list[DuplicatePattern] = []

        name_groups = self.session.execute(
            select(Entity.entity_type, func.lower(Entity.entity_name), func.count())
            .where(
                Entity.organization_id == organization_id,
                Entity.is_active == True,  # noqa: E712
            )
            .group_by(Entity.entity_type, func.lower(Entity.entity_name))
            .having(func.count() > 1)
        ).all()
        if name_groups:
            patterns.append(
                DuplicatePattern(
                    pattern_type="entity_duplicates",
                    frequency=len(name_groups),
                    impact_level="high",
                    recommended_action="Review and merge duplicate entities",
                    affected=tuple(sorted({row[0] for row in name_groups})),
                )
            )

        key_filters = [
            and_(Entity.entity_type == entity_type, DynamicField.field_name.in_(fields))
            for entity_type, fields in self._dynamic_business_fields().items()
        ]
        if key_filters:
            key_groups = self.session.execute(
                select(
                    Entity.entity_type,
                    DynamicField.field_name,
                    DynamicField.field_value,
                    func.count(func.distinct(DynamicField.entity_id)),
                )
                .join(Entity, Entity.id == DynamicField.entity_id)
                .where(
                    Entity.organization_id == organization_id,
                    Entity.is_active == True,  # noqa: E712
                    or_(*key_filters),
                )
                .group_by(Entity.entity_type, DynamicField.field_name, DynamicField.field_value)
                .having(func.count(func.distinct(DynamicField.entity_id)) > 1)
            ).all()
            if key_groups:
                patterns.append(
                    DuplicatePattern(
                        pattern_type="business_key_duplicates",
                        frequency=len(key_groups),
                        impact_level="medium",
                        recommended_action="Merge entities sharing a business key",
                        affected=tuple(sorted({f"{row[0]}.{row[1]}" for row in key_groups})),
                    )
                )

        folded = func.upper(func.trim(UniversalTransaction.transaction_number))
        txn_groups = self.session.execute(
            select(UniversalTransaction.transaction_type, folded, func.count())
            .where(UniversalTransaction.organization_id == organization_id)
            .group_by(UniversalTransaction.transaction_type, folded)
            .having(func.count() > 1)
        ).all()
        if txn_groups:
            patterns.append(
                DuplicatePattern(
                    pattern_type="transaction_duplicates",
                    frequency=len(txn_groups),
                    impact_level="critical",
                    recommended_action="Investigate duplicate transactions immediately",
                    affected=tuple(sorted({row[0] for row in txn_groups})),
                )
            )

        logger.info(
            "duplicate_patterns_scanned",
            extra={
                "organization_id": organization_id,
                "pattern_count": len(patterns),
            },
        )
        return patterns

    def _dynamic_business_fields(self) -> dict[str, list[str]]:
        fields: dict[str, list[str]] = {}
        for entity_type, rules in self.rules.business_keys.items():
            for rule in rules:
                if rule.source is KeySource.DYNAMIC_FIELD:
                    fields.setdefault(entity_type, []).extend(rule.fields)
        return fields
