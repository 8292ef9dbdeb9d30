"""
Typed Exception Hierarchy for the Universal Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Route handlers and batch jobs that sit on top of the kernel need to tell a
tenant-isolation bug from a duplicate code from a missing row.  Matching on
``str(error)`` is fragile, so every error here:
  1. Has its own class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (ids, codes, types)

Example:
    try:
        entity_service.create_entity(...)
    except DuplicateEntityCodeError as e:
        return {"error": e.code, "entity_code": e.entity_code}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    UniversalKernelError (base)
    |
    +-- ValidationError
    |   +-- MissingOrganizationError
    |   +-- InvalidEntityDataError
    |   +-- InvalidFieldValueError
    |
    +-- EntityError
    |   +-- EntityNotFoundError
    |   +-- EntityInactiveError
    |
    +-- DuplicateError
    |   +-- DuplicateEntityCodeError
    |   +-- DuplicateTransactionNumberError
    |   +-- DuplicateRejectedError
    |
    +-- TransactionError
    |   +-- TransactionNotFoundError
    |
    +-- RelationshipError
    |   +-- SelfRelationshipError
    |   +-- CrossTenantRelationshipError
    |   +-- RelationshipNotFoundError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                          | When Raised
--------------|-------------------------------|------------------------------------
Validation    | MISSING_ORGANIZATION          | Write or scoped read without org id
              | INVALID_ENTITY_DATA           | Missing type/name/code, bad field
              | INVALID_FIELD_VALUE           | Value can't be encoded/decoded
--------------|-------------------------------|------------------------------------
Entity        | ENTITY_NOT_FOUND              | Entity id doesn't exist (in tenant)
              | ENTITY_INACTIVE               | Entity was soft-deleted
--------------|-------------------------------|------------------------------------
Duplicate     | DUPLICATE_ENTITY_CODE         | Unique index on active entity code
              | DUPLICATE_TRANSACTION_NUMBER  | Unique transaction number violated
              | DUPLICATE_REJECTED            | Advisory check returned 'reject'
--------------|-------------------------------|------------------------------------
Transaction   | TRANSACTION_NOT_FOUND         | Transaction id doesn't exist
--------------|-------------------------------|------------------------------------
Relationship  | SELF_RELATIONSHIP             | Source and target are the same
              | CROSS_TENANT_RELATIONSHIP     | Endpoints in different organizations
              | RELATIONSHIP_NOT_FOUND        | Relationship id doesn't exist
--------------|-------------------------------|------------------------------------
Configuration | CONFIGURATION_ERROR           | Config file missing/malformed

===============================================================================
WHAT IS NOT AN EXCEPTION
===============================================================================

- Naming convention violations: the naming engine returns a
  ``NamingValidationResult`` with ``is_valid=False``; it never raises.
- Duplicate conflicts found by the advisory checks: returned as a
  ``DuplicateCheckResult`` disposition.  Only the orchestrator turns a
  ``reject`` into ``DuplicateRejectedError``.
- Database/transport failures: ``SQLAlchemyError`` propagates unchanged,
  except ``IntegrityError`` on the uniqueness indexes, which is translated
  to the typed duplicate errors above.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from universal_kernel.domain.dtos import DuplicateCheckResult


class UniversalKernelError(Exception):
    """
    Base exception for all universal kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "UNIVERSAL_KERNEL_ERROR"


# Validation exceptions


class ValidationError(UniversalKernelError):
    """Base exception for rejected inbound data."""

    code: str = "VALIDATION_ERROR"


class MissingOrganizationError(ValidationError):
    """A write or tenant-scoped read was attempted without an organization id."""

    code: str = "MISSING_ORGANIZATION"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"organization_id is required for {operation}")


class InvalidEntityDataError(ValidationError):
    """Entity payload is missing a required identity field or is malformed."""

    code: str = "INVALID_ENTITY_DATA"

    def __init__(self, field_name: str, reason: str):
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Invalid entity data for '{field_name}': {reason}")


class InvalidFieldValueError(ValidationError):
    """A dynamic field value cannot be converted for its declared type."""

    code: str = "INVALID_FIELD_VALUE"

    def __init__(self, field_type: str, value: Any, reason: str):
        self.field_type = field_type
        self.value = value
        self.reason = reason
        super().__init__(
            f"Cannot convert {value!r} as {field_type}: {reason}"
        )


# Entity exceptions


class EntityError(UniversalKernelError):
    """Base exception for entity lookups."""

    code: str = "ENTITY_ERROR"


class EntityNotFoundError(EntityError):
    """Entity with given id was not found (or not visible to the tenant)."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_id: str, organization_id: str | None = None):
        self.entity_id = entity_id
        self.organization_id = organization_id
        if organization_id:
            msg = f"Entity not found: {entity_id} (organization {organization_id})"
        else:
            msg = f"Entity not found: {entity_id}"
        super().__init__(msg)


class EntityInactiveError(EntityError):
    """Entity exists but has been soft-deleted."""

    code: str = "ENTITY_INACTIVE"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"Entity is inactive: {entity_id}")


# Duplicate exceptions


class DuplicateError(UniversalKernelError):
    """Base exception for uniqueness violations."""

    code: str = "DUPLICATE_ERROR"


class DuplicateEntityCodeError(DuplicateError):
    """An active entity with the same code exists for the tenant and type."""

    code: str = "DUPLICATE_ENTITY_CODE"

    def __init__(self, organization_id: str, entity_type: str, entity_code: str):
        self.organization_id = organization_id
        self.entity_type = entity_type
        self.entity_code = entity_code
        super().__init__(
            f"Entity code '{entity_code}' already in use for "
            f"{entity_type} in organization {organization_id}"
        )


class DuplicateTransactionNumberError(DuplicateError):
    """Transaction number already used for the tenant and transaction type."""

    code: str = "DUPLICATE_TRANSACTION_NUMBER"

    def __init__(
        self,
        organization_id: str,
        transaction_type: str,
        transaction_number: str,
    ):
        self.organization_id = organization_id
        self.transaction_type = transaction_type
        self.transaction_number = transaction_number
        super().__init__(
            f"Transaction {transaction_number} ({transaction_type}) already "
            f"exists in organization {organization_id}"
        )


class DuplicateRejectedError(DuplicateError):
    """
    An advisory duplicate check returned a 'reject' disposition.

    Raised by the registration orchestrator, never by the checks themselves.
    """

    code: str = "DUPLICATE_REJECTED"

    def __init__(self, result: DuplicateCheckResult):
        self.result = result
        self.duplicate_type = result.duplicate_type
        self.duplicate_ids = list(result.duplicate_ids)
        super().__init__(result.message or "Duplicate rejected")


# Transaction exceptions


class TransactionError(UniversalKernelError):
    """Base exception for business transaction lookups."""

    code: str = "TRANSACTION_ERROR"


class TransactionNotFoundError(TransactionError):
    """Transaction with given id was not found in the organization."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str, organization_id: str | None = None):
        self.transaction_id = transaction_id
        self.organization_id = organization_id
        super().__init__(f"Transaction not found: {transaction_id}")


# Relationship exceptions


class RelationshipError(UniversalKernelError):
    """Base exception for relationship writes."""

    code: str = "RELATIONSHIP_ERROR"


class SelfRelationshipError(RelationshipError):
    """An entity cannot be linked to itself."""

    code: str = "SELF_RELATIONSHIP"

    def __init__(self, entity_id: str, relationship_type: str):
        self.entity_id = entity_id
        self.relationship_type = relationship_type
        super().__init__(
            f"Entity {entity_id} cannot have a {relationship_type} "
            f"relationship with itself"
        )


class CrossTenantRelationshipError(RelationshipError):
    """Relationship endpoints belong to different organizations."""

    code: str = "CROSS_TENANT_RELATIONSHIP"

    def __init__(self, source_entity_id: str, target_entity_id: str):
        self.source_entity_id = source_entity_id
        self.target_entity_id = target_entity_id
        super().__init__(
            f"Entities {source_entity_id} and {target_entity_id} belong to "
            f"different organizations"
        )


class RelationshipNotFoundError(RelationshipError):
    """Relationship with given id was not found in the organization."""

    code: str = "RELATIONSHIP_NOT_FOUND"

    def __init__(self, relationship_id: str):
        self.relationship_id = relationship_id
        super().__init__(f"Relationship not found: {relationship_id}")


# Configuration


class ConfigurationError(UniversalKernelError):
    """Configuration file is missing, unreadable, or structurally invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid configuration in {source}: {reason}")
