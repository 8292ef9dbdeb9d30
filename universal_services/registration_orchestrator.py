"""
RegistrationOrchestrator -- the check-validate-write flow for new entities.

Responsibility:
    Runs the steps a caller would otherwise wire by hand:

        1. DuplicatePreventionService.check_entity_duplicates
        2. NamingConventionEngine.validate_field_name for each proposed
           dynamic field (advisory, never blocking).  Fields the duplicate
           rules already name for the type (versioned fields, business
           keys) are known attributes and are not checked.
        3. EntityService.create_entity

Architecture position:
    Services -- composes kernel services; owns no state.

Disposition handling:
    reject                  -> DuplicateRejectedError (or a REJECTED
                               outcome with ``raise_on_reject=False``)
    merge / manual_review   -> REVIEW_REQUIRED, nothing written, unless
                               ``allow_review=True``
    allow / update          -> entity created

    The storage unique index still applies: a concurrent writer that wins
    the race surfaces as DuplicateEntityCodeError from step 3.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from universal_kernel.domain.clock import Clock
from universal_kernel.domain.dtos import (
    DuplicateCheckResult,
    EntityInfo,
    NamingValidationResult,
    PreventionAction,
)
from universal_kernel.domain.naming import NamingConventionEngine
from universal_kernel.exceptions import DuplicateRejectedError
from universal_kernel.logging_config import get_logger
from universal_kernel.services.entity_service import (
    EntityService,
    FieldInput,
    MetadataEntry,
    normalize_fields,
)

logger = get_logger("services.registration")

ENTITY_TABLE = "core_entities"

_REVIEW = frozenset({PreventionAction.MERGE, PreventionAction.MANUAL_REVIEW})


class RegistrationStatus(str, Enum):
    CREATED = "created"
    REJECTED = "rejected"
    REVIEW_REQUIRED = "review_required"


@dataclass(frozen=True)
class RegistrationOutcome:
    status: RegistrationStatus
    entity: EntityInfo | None
    duplicate_check: DuplicateCheckResult
    naming_issues: tuple[tuple[str, NamingValidationResult], ...] = ()

    @property
    def created(self) -> bool:
        return self.entity is not None


class RegistrationOrchestrator:
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        entity_service: EntityService | None = None,
        naming_engine: NamingConventionEngine | None = None,
    ):
        self.entities = entity_service or EntityService(session, clock=clock)
        self.naming = naming_engine or NamingConventionEngine()

    def known_fields(self, entity_type: str | None = None) -> frozenset[str]:
        rules = self.entities.duplicates.rules
        known = set(rules.versioned_fields)
        if entity_type:
            for rule in rules.rules_for(entity_type):
                known.update(rule.fields)
        return frozenset(known)

    def naming_issues(
        self,
        field_names: Sequence[str],
        entity_type: str | None = None,
    ) -> tuple[tuple[str, NamingValidationResult], ...]:
        known = self.known_fields(entity_type)
        issues = []
        for name in field_names:
            if name in known:
                continue
            result = self.naming.validate_field_name(ENTITY_TABLE, name)
            if not result.is_valid:
                issues.append((name, result))
        return tuple(issues)

    def register_entity(
        self,
        organization_id: str,
        entity_type: str,
        entity_name: str,
        entity_code: str,
        dynamic_fields: FieldInput | None = None,
        metadata: Sequence[MetadataEntry | Mapping[str, Any]] | None = None,
        actor_id: UUID | None = None,
        raise_on_reject: bool = True,
        allow_review: bool = False,
    ) -> RegistrationOutcome:
        """
        Check, validate and create one entity.

        Raises:
            DuplicateRejectedError: Check returned reject and
                ``raise_on_reject`` is set.
        """
        fields = normalize_fields(dynamic_fields)
        payload = {name: typed.value for name, typed in fields.items()}
        payload.update(entity_code=entity_code, entity_name=entity_name)

        check = self.entities.duplicates.check_entity_duplicates(
            organization_id, entity_type, payload
        )
        issues = self.naming_issues(list(fields), entity_type)
        if issues:
            logger.info(
                "registration_naming_issues",
                extra={
                    "organization_id": organization_id,
                    "entity_type": entity_type,
                    "fields": [name for name, _ in issues],
                },
            )

        action = check.prevention_action
        if action is PreventionAction.REJECT:
            logger.warning(
                "registration_rejected",
                extra={
                    "organization_id": organization_id,
                    "entity_type": entity_type,
                    "entity_code": entity_code,
                    "duplicate_type": check.duplicate_type,
                },
            )
            if raise_on_reject:
                raise DuplicateRejectedError(check)
            return RegistrationOutcome(RegistrationStatus.REJECTED, None, check, issues)

        if action in _REVIEW and not allow_review:
            logger.info(
                "registration_review_required",
                extra={
                    "organization_id": organization_id,
                    "entity_type": entity_type,
                    "prevention_action": action.value,
                },
            )
            return RegistrationOutcome(RegistrationStatus.REVIEW_REQUIRED, None, check, issues)

        entity = self.entities.create_entity(
            organization_id,
            entity_type,
            entity_name,
            entity_code,
            dynamic_fields=fields,
            metadata=metadata,
            actor_id=actor_id,
        )
        return RegistrationOutcome(RegistrationStatus.CREATED, entity, check, issues)
