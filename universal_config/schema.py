"""
Configuration schema (``universal_config.schema``).

Frozen dataclasses describing a compiled configuration.  Kernel-facing
sections reuse the kernel's own rule types (NamingRules, DuplicateRules,
EntitySettings) so no translation is needed at the service boundary; the
GL intelligence section is owned by universal_services and defined here.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from universal_kernel.domain.naming import DEFAULT_NAMING_RULES, NamingRules
from universal_kernel.domain.rules import (
    DEFAULT_DUPLICATE_RULES,
    DEFAULT_ENTITY_SETTINGS,
    DuplicateRules,
    EntitySettings,
)

VALIDATION_STATUSES = ("pending", "validated", "warning", "error", "auto_fixed")


@dataclass(frozen=True)
class GLIntelligenceSettings:
    """Tuning for the GL intelligence worked example."""

    entity_type: str = "transaction_gl_intelligence"
    relationship_type: str = "transaction_has_gl_intelligence"
    account_entity_type: str = "chart_of_account"
    code_prefix: str = "TXN-GL"
    # Base confidence per resulting validation status
    status_confidence: dict[str, float] = field(
        default_factory=lambda: {
            "pending": 0.5,
            "validated": 0.95,
            "auto_fixed": 0.85,
            "warning": 0.7,
            "error": 0.3,
        }
    )
    # Subtracted per finding, floored at min_confidence
    penalty_per_error: float = 0.1
    min_confidence: float = 0.05
    # difflib ratio a suggested account code must reach
    autofix_similarity_cutoff: float = 0.75
    max_suggestions: int = 3


@dataclass(frozen=True)
class UniversalConfig:
    config_id: str
    version: str
    checksum: str
    naming: NamingRules = DEFAULT_NAMING_RULES
    duplicates: DuplicateRules = DEFAULT_DUPLICATE_RULES
    entities: EntitySettings = DEFAULT_ENTITY_SETTINGS
    gl_intelligence: GLIntelligenceSettings = field(default_factory=GLIntelligenceSettings)
