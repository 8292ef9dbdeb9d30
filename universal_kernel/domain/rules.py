"""
Rules -- configurable data consumed by the duplicate and entity services.

Responsibility:
    Frozen rule objects for business-key duplicate detection, versioned
    field names, and entity-service tuning.  The defaults here are the
    built-in behaviour; universal_config compiles the bundled YAML into the
    same types so deployments can override them without code changes.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  MUST NOT import universal_config.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from universal_kernel.domain.dtos import PreventionAction


class KeySource(str, Enum):
    """Where a business key is looked up."""

    DYNAMIC_FIELD = "dynamic_field"
    ENTITY_CODE = "entity_code"
    TRANSACTION = "transaction"


@dataclass(frozen=True)
class BusinessKeyRule:
    """
    One business-key check for an entity type.

    Contract:
        Each name in ``fields`` is read from the incoming payload and checked
        independently; matches are unioned.  ``message`` may contain
        ``{value}``, replaced with the first matching value.
    """

    duplicate_type: str
    source: KeySource
    fields: tuple[str, ...]
    action: PreventionAction
    message: str
    suggestions: tuple[str, ...] = ()
    transaction_type: str | None = None


@dataclass(frozen=True)
class DuplicateRules:
    business_keys: dict[str, tuple[BusinessKeyRule, ...]] = field(default_factory=dict)
    versioned_fields: frozenset[str] = frozenset()

    def rules_for(self, entity_type: str) -> tuple[BusinessKeyRule, ...]:
        return self.business_keys.get(entity_type, ())


@dataclass(frozen=True)
class EntitySettings:
    search_page_size: int = 50
    audit_number_prefix: str = "AUD"
    history_metadata_type: str = "field_history"


DEFAULT_BUSINESS_KEYS: dict[str, tuple[BusinessKeyRule, ...]] = {
    "customer": (
        BusinessKeyRule(
            duplicate_type="customer_business_rule",
            source=KeySource.DYNAMIC_FIELD,
            fields=("email", "phone", "tax_id"),
            action=PreventionAction.MERGE,
            message="Customer with same email/phone/tax ID already exists",
            suggestions=(
                "Merge with existing customer",
                "Update existing customer record",
                "Create as new customer with different identifier",
            ),
        ),
    ),
    "product": (
        BusinessKeyRule(
            duplicate_type="product_code",
            source=KeySource.ENTITY_CODE,
            fields=("product_code",),
            action=PreventionAction.REJECT,
            message="Product code {value} already exists",
            suggestions=(
                "Use a different product code",
                "Add variant suffix (e.g., -V2)",
                "Update existing product instead",
            ),
        ),
    ),
    "invoice": (
        BusinessKeyRule(
            duplicate_type="transaction",
            source=KeySource.TRANSACTION,
            fields=("invoice_number",),
            action=PreventionAction.REJECT,
            message="Transaction {value} already exists",
            transaction_type="INVOICE",
        ),
    ),
    "employee": (
        BusinessKeyRule(
            duplicate_type="employee_id",
            source=KeySource.DYNAMIC_FIELD,
            fields=("employee_id",),
            action=PreventionAction.REJECT,
            message="Employee ID {value} already exists",
            suggestions=(
                "Use next available employee ID",
                "Check if updating existing employee",
            ),
        ),
        BusinessKeyRule(
            duplicate_type="national_id",
            source=KeySource.DYNAMIC_FIELD,
            fields=("national_id",),
            action=PreventionAction.REJECT,
            message="Employee with same national ID already exists",
            suggestions=(
                "This appears to be an existing employee",
                "Update existing record instead",
            ),
        ),
    ),
}

DEFAULT_DUPLICATE_RULES = DuplicateRules(
    business_keys=DEFAULT_BUSINESS_KEYS,
    versioned_fields=frozenset({"price", "salary", "rate"}),
)

DEFAULT_ENTITY_SETTINGS = EntitySettings()
