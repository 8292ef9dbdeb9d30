"""
universal_services._gl_types -- DTOs for the GL intelligence service.

Responsibility:
    Frozen dataclasses for a GL intelligence record, a single validation
    finding, and the result of ``validate_and_fix``.  The record is stored
    entirely in the universal tables (entity + dynamic fields + an edge from
    the transaction); ``GLIntelligence.from_entity`` folds it back.

Architecture position:
    Services.  These types have no persistence dependency beyond reading
    an EntityInfo.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from universal_kernel.domain.dtos import EntityInfo


class ValidationStatus:
    PENDING = "pending"
    VALIDATED = "validated"
    WARNING = "warning"
    ERROR = "error"
    AUTO_FIXED = "auto_fixed"


# Field names as stored in core_dynamic_data
GL_FIELDS = (
    "transaction_id",
    "gl_account_id",
    "confidence_score",
    "validation_status",
    "validation_errors",
    "auto_fix_applied",
    "auto_fix_suggestions",
    "posting_metadata",
    "ai_reasoning",
)


@dataclass(frozen=True)
class GLFinding:
    """One problem found while validating a transaction's GL lines."""

    code: str
    message: str
    severity: str  # "error" or "warning"
    line: int | None = None
    gl_account_code: str | None = None
    resolved: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "line": self.line,
            "gl_account_code": self.gl_account_code,
            "resolved": self.resolved,
        }


@dataclass(frozen=True)
class GLIntelligence:
    transaction_id: UUID
    gl_intelligence_id: UUID | None = None
    gl_account_id: str | None = None
    confidence_score: float = 0.5
    validation_status: str = ValidationStatus.PENDING
    validation_errors: list[dict[str, Any]] = field(default_factory=list)
    auto_fix_applied: bool = False
    auto_fix_suggestions: list[dict[str, Any]] = field(default_factory=list)
    posting_metadata: dict[str, Any] = field(default_factory=dict)
    ai_reasoning: str = ""
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, transaction_id: UUID, info: EntityInfo) -> GLIntelligence:
        score = info.get("confidence_score", 0.5)
        if isinstance(score, Decimal):
            score = float(score)
        return cls(
            transaction_id=transaction_id,
            gl_intelligence_id=info.id,
            gl_account_id=info.get("gl_account_id") or None,
            confidence_score=float(score),
            validation_status=info.get("validation_status") or ValidationStatus.PENDING,
            validation_errors=list(info.get("validation_errors") or []),
            auto_fix_applied=bool(info.get("auto_fix_applied", False)),
            auto_fix_suggestions=list(info.get("auto_fix_suggestions") or []),
            posting_metadata=dict(info.get("posting_metadata") or {}),
            ai_reasoning=info.get("ai_reasoning") or "",
            updated_at=info.get("updated_at") or info.updated_at,
        )


@dataclass(frozen=True)
class GLValidationOutcome:
    success: bool
    gl_intelligence: GLIntelligence | None
    message: str
    findings: tuple[GLFinding, ...] = ()
