"""
Pure domain layer.

No ORM, database or I/O dependencies (SystemClock aside).  Everything here
is immutable and deterministic.
"""

from universal_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from universal_kernel.domain.dtos import (
    BulkCreateError,
    BulkCreateResult,
    DuplicateCheckResult,
    DuplicatePattern,
    EntityAnalytics,
    EntityInfo,
    FieldAction,
    FieldDuplicate,
    FieldPatternSummary,
    MetadataInfo,
    NamingValidationResult,
    PreventionAction,
    RelationshipInfo,
    TableAudit,
    TransactionInfo,
)
from universal_kernel.domain.naming import (
    DEFAULT_NAMING_RULES,
    NamingConventionEngine,
    NamingRules,
    TableConvention,
    extract_entity_type,
)
from universal_kernel.domain.rules import (
    DEFAULT_DUPLICATE_RULES,
    DEFAULT_ENTITY_SETTINGS,
    BusinessKeyRule,
    DuplicateRules,
    EntitySettings,
    KeySource,
)
from universal_kernel.domain.values import (
    FieldType,
    TypedValue,
    decode_value,
    encode_value,
    infer_field_type,
    jsonable,
)

__all__ = [
    "BulkCreateError",
    "BulkCreateResult",
    "BusinessKeyRule",
    "Clock",
    "DEFAULT_DUPLICATE_RULES",
    "DEFAULT_ENTITY_SETTINGS",
    "DEFAULT_NAMING_RULES",
    "DeterministicClock",
    "DuplicateCheckResult",
    "DuplicatePattern",
    "DuplicateRules",
    "EntityAnalytics",
    "EntityInfo",
    "EntitySettings",
    "FieldAction",
    "FieldDuplicate",
    "FieldPatternSummary",
    "FieldType",
    "KeySource",
    "MetadataInfo",
    "NamingConventionEngine",
    "NamingRules",
    "NamingValidationResult",
    "PreventionAction",
    "RelationshipInfo",
    "SystemClock",
    "TableAudit",
    "TableConvention",
    "TransactionInfo",
    "TypedValue",
    "decode_value",
    "encode_value",
    "extract_entity_type",
    "infer_field_type",
    "jsonable",
]
