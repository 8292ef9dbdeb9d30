"""Kernel write services.  All take a caller-owned Session and never commit."""

from universal_kernel.services.duplicate_prevention_service import (
    DuplicatePreventionService,
    most_severe,
)
from universal_kernel.services.entity_service import (
    EntityService,
    MetadataEntry,
    normalize_fields,
)
from universal_kernel.services.sequence_service import (
    SequenceCounter,
    SequenceService,
    format_sequence_number,
)
from universal_kernel.services.transaction_service import TransactionService

__all__ = [
    "DuplicatePreventionService",
    "EntityService",
    "MetadataEntry",
    "SequenceCounter",
    "SequenceService",
    "TransactionService",
    "format_sequence_number",
    "most_severe",
    "normalize_fields",
]
