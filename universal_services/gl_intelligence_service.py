"""
GLIntelligenceService -- derived GL validation records on the universal tables.

Responsibility:
    Attach a GL intelligence record (confidence, validation status,
    findings, auto-fix suggestions, corrected posting lines) to a business
    transaction WITHOUT adding tables:

        universal_transactions --transaction_has_gl_intelligence--> core_entities
                                                         (transaction_gl_intelligence)
                                                                 |
                                                         core_dynamic_data
                                                         (one row per field)

    ``validate_and_fix`` evaluates the transaction's GL lines against the
    organization's chart of accounts and records the result.

Architecture position:
    Services -- orchestration over EntityService and TransactionService.

Invariants enforced:
    - organization_id scopes every lookup; a transaction of another
      organization is invisible.
    - ``create`` and ``update`` are atomic (SAVEPOINT): entity, fields and
      edge appear together or not at all.
    - The business transaction is never mutated.  Corrections live in the
      record's ``posting_metadata``.

Failure modes:
    - TransactionNotFoundError from ``create`` for an unknown transaction.
    - EntityNotFoundError from ``update`` for an unknown record.
    - InvalidEntityDataError for an unknown field or validation status.
    - DuplicateEntityCodeError when a second active record is created for
      the same transaction.

Rule evaluation (``validate_and_fix``):
    Lines come from ``transaction_data["lines"]``; each line names a
    ``gl_account_code`` and a ``debit`` or ``credit`` amount.

    ===================  ========  =============================================
    Code                 Severity  Condition
    ===================  ========  =============================================
    NO_LINES             error     no lines at all
    MISSING_ACCOUNT      error     line without gl_account_code
    UNKNOWN_ACCOUNT      error     code not an active chart_of_account entity
    INVALID_AMOUNT       error     debit/credit not a non-negative number
    UNBALANCED           error     total debit != total credit
    ZERO_LINE            warning   debit and credit both zero
    MIXED_LINE           warning   debit and credit both non-zero
    ===================  ========  =============================================

    An UNKNOWN_ACCOUNT with exactly one close match (difflib ratio at or
    above the configured cutoff) is auto-fixed when enabled.
"""

from __future__ import annotations

import difflib
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from universal_config.schema import VALIDATION_STATUSES, GLIntelligenceSettings
from universal_kernel.domain.clock import Clock, SystemClock
from universal_kernel.domain.values import FieldType, TypedValue, jsonable
from universal_kernel.exceptions import (
    DuplicateEntityCodeError,
    EntityNotFoundError,
    InvalidEntityDataError,
    TransactionNotFoundError,
)
from universal_kernel.logging_config import get_logger
from universal_kernel.services.entity_service import EntityService
from universal_kernel.services.transaction_service import TransactionService
from universal_services._gl_types import (
    GL_FIELDS,
    GLFinding,
    GLIntelligence,
    GLValidationOutcome,
    ValidationStatus,
)

logger = get_logger("services.gl_intelligence")

_FIELD_TYPES: dict[str, FieldType] = {
    "transaction_id": FieldType.UUID,
    "gl_account_id": FieldType.TEXT,
    "confidence_score": FieldType.DECIMAL,
    "validation_status": FieldType.TEXT,
    "validation_errors": FieldType.JSON,
    "auto_fix_applied": FieldType.BOOLEAN,
    "auto_fix_suggestions": FieldType.JSON,
    "posting_metadata": FieldType.JSON,
    "ai_reasoning": FieldType.TEXT,
    "created_at": FieldType.TIMESTAMP,
    "updated_at": FieldType.TIMESTAMP,
}

_UPDATABLE = frozenset(GL_FIELDS) - {"transaction_id"}


def _amount(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, bool):
        raise InvalidOperation(f"not an amount: {value!r}")
    amount = Decimal(str(value))
    if not amount.is_finite():
        raise InvalidOperation(f"not an amount: {value!r}")
    return amount


class GLIntelligenceService:
    """
    Get, create, update and validate GL intelligence records.

    Contract:
        Caller owns the transaction.  Records are returned as frozen
        GLIntelligence DTOs.
    """

    def __init__(
        self,
        session: Session,
        settings: GLIntelligenceSettings | None = None,
        clock: Clock | None = None,
        entity_service: EntityService | None = None,
        transaction_service: TransactionService | None = None,
    ):
        self.session = session
        self.settings = settings or GLIntelligenceSettings()
        self.clock = clock or SystemClock()
        self.entities = entity_service or EntityService(session, clock=self.clock)
        self.transactions = transaction_service or TransactionService(session, clock=self.clock)

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _typed(self, values: Mapping[str, Any]) -> dict[str, TypedValue]:
        typed: dict[str, TypedValue] = {}
        for name, value in values.items():
            if name == "confidence_score" and value is not None:
                value = Decimal(str(round(float(value), 4)))
            if name == "validation_status" and value not in VALIDATION_STATUSES:
                raise InvalidEntityDataError("validation_status", f"unknown status {value!r}")
            if name in ("validation_errors", "auto_fix_suggestions", "posting_metadata"):
                value = jsonable(value)
            typed[name] = TypedValue.of(value, _FIELD_TYPES[name])
        return typed

    def _record_id(self, transaction_id: UUID, organization_id: str) -> UUID | None:
        ids = self.transactions.attached_entity_ids(
            transaction_id, self.settings.relationship_type, organization_id
        )
        return ids[-1] if ids else None

    def get(self, transaction_id: UUID, organization_id: str) -> GLIntelligence | None:
        """The active record for a transaction, or None."""
        record_id = self._record_id(transaction_id, organization_id)
        if record_id is None:
            return None
        info = self.entities.selector.get(record_id, organization_id)
        if info is None or not info.is_active:
            return None
        return GLIntelligence.from_entity(transaction_id, info)

    def create(
        self,
        transaction_id: UUID,
        organization_id: str,
        gl_account_id: str | None = None,
        confidence_score: float | None = None,
        validation_status: str = ValidationStatus.PENDING,
        validation_errors: list[dict[str, Any]] | None = None,
        auto_fix_applied: bool = False,
        auto_fix_suggestions: list[dict[str, Any]] | None = None,
        posting_metadata: dict[str, Any] | None = None,
        ai_reasoning: str | None = None,
        actor_id: UUID | None = None,
    ) -> GLIntelligence:
        """
        Create the record entity, its fields and the transaction edge.

        Raises:
            TransactionNotFoundError: Transaction not in the organization.
        """
        self.transactions.get_transaction(transaction_id, organization_id)
        if confidence_score is None:
            confidence_score = self.settings.status_confidence.get(ValidationStatus.PENDING, 0.5)
        now = self.clock.now()
        fields = self._typed({
            "transaction_id": transaction_id,
            "gl_account_id": gl_account_id,
            "confidence_score": confidence_score,
            "validation_status": validation_status,
            "auto_fix_applied": auto_fix_applied,
            "validation_errors": validation_errors or [],
            "auto_fix_suggestions": auto_fix_suggestions or [],
            "posting_metadata": posting_metadata or {},
            "ai_reasoning": ai_reasoning or "Initial GL intelligence assessment",
            "created_at": now,
            "updated_at": now,
        })
        entity_code = f"{self.settings.code_prefix}-{str(transaction_id)[:8]}"

        try:
            with self.session.begin_nested():
                info = self.entities.create_entity(
                    organization_id,
                    self.settings.entity_type,
                    "GL Intelligence for Transaction",
                    entity_code,
                    dynamic_fields=fields,
                    actor_id=actor_id,
                )
                self.transactions.attach_entity(
                    transaction_id,
                    info.id,
                    self.settings.relationship_type,
                    organization_id,
                    relationship_data={
                        "intelligence_type": "gl_validation_and_mapping",
                        "created_by_ai": True,
                        "confidence_level": float(fields["confidence_score"].value),
                    },
                )
        except DuplicateEntityCodeError:
            logger.warning(
                "gl_intelligence_exists",
                extra={
                    "organization_id": organization_id,
                    "transaction_id": str(transaction_id),
                    "entity_code": entity_code,
                },
            )
            raise

        logger.info(
            "gl_intelligence_created",
            extra={
                "organization_id": organization_id,
                "transaction_id": str(transaction_id),
                "gl_intelligence_id": str(info.id),
                "validation_status": validation_status,
            },
        )
        return GLIntelligence.from_entity(transaction_id, self.entities.get_entity(info.id))

    def update(
        self,
        gl_intelligence_id: UUID,
        organization_id: str,
        updates: Mapping[str, Any],
        actor_id: UUID | None = None,
    ) -> GLIntelligence:
        """
        Upsert only the supplied fields, plus ``updated_at``.

        Raises:
            EntityNotFoundError: No such record in the organization.
            InvalidEntityDataError: Unknown field name or status.
        """
        unknown = set(updates) - _UPDATABLE
        if unknown:
            raise InvalidEntityDataError(", ".join(sorted(unknown)), "not a GL intelligence field")
        current = self.entities.get_entity(gl_intelligence_id, organization_id)
        if current.entity_type != self.settings.entity_type:
            raise EntityNotFoundError(str(gl_intelligence_id), organization_id)

        fields = self._typed({**updates, "updated_at": self.clock.now()})
        info = self.entities.update_entity(
            gl_intelligence_id,
            dynamic_fields=fields,
            replace_fields=False,
            organization_id=organization_id,
            actor_id=actor_id,
        )
        logger.info(
            "gl_intelligence_updated",
            extra={
                "organization_id": organization_id,
                "gl_intelligence_id": str(gl_intelligence_id),
                "fields": sorted(updates),
            },
        )
        return GLIntelligence.from_entity(info.get("transaction_id"), info)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def get_gl_accounts_for_validation(self, organization_id: str) -> dict[str, dict[str, Any]]:
        """Active chart-of-account entities keyed by account code."""
        accounts: dict[str, dict[str, Any]] = {}
        for info in self.entities.list_entities(organization_id, self.settings.account_entity_type):
            accounts[info.entity_code] = {
                **info.dynamic_fields,
                "id": info.id,
                "entity_code": info.entity_code,
                "entity_name": info.entity_name,
            }
        return accounts

    def _suggest(self, code: str, known: list[str]) -> list[tuple[str, float]]:
        matches = difflib.get_close_matches(
            code,
            known,
            n=self.settings.max_suggestions,
            cutoff=self.settings.autofix_similarity_cutoff,
        )
        return [
            (m, round(difflib.SequenceMatcher(None, code, m).ratio(), 4))
            for m in matches
        ]

    def _confidence(self, status: str, open_findings: int) -> float:
        base = self.settings.status_confidence.get(status, 0.5)
        score = base - self.settings.penalty_per_error * open_findings
        return round(max(self.settings.min_confidence, score), 4)

    def evaluate_lines(
        self,
        lines: list[Any],
        accounts: Mapping[str, Mapping[str, Any]],
        auto_fix_enabled: bool = True,
    ) -> tuple[list[GLFinding], list[dict[str, Any]], list[dict[str, Any]]]:
        """
        Check posting lines against the chart of accounts.

        Returns ``(findings, suggestions, corrected_lines)``.  Corrected lines
        carry the auto-fixed account code where one was applied.
        """
        findings: list[GLFinding] = []
        suggestions: list[dict[str, Any]] = []
        corrected: list[dict[str, Any]] = []

        if not lines:
            findings.append(GLFinding("NO_LINES", "Transaction has no GL lines", "error"))
            return findings, suggestions, corrected

        known = sorted(accounts)
        total_debit = Decimal("0")
        total_credit = Decimal("0")
        amounts_valid = True

        for index, raw in enumerate(lines):
            line = dict(raw) if isinstance(raw, Mapping) else {}
            code = line.get("gl_account_code")

            if not code:
                findings.append(GLFinding(
                    "MISSING_ACCOUNT", f"Line {index} has no GL account", "error", line=index,
                ))
            elif code not in accounts:
                matches = self._suggest(str(code), known)
                for suggested, similarity in matches:
                    suggestions.append({
                        "line": index,
                        "original_code": code,
                        "suggested_code": suggested,
                        "account_name": accounts[suggested].get("entity_name"),
                        "similarity": similarity,
                    })
                fixed = auto_fix_enabled and len(matches) == 1
                if fixed:
                    line["gl_account_code"] = matches[0][0]
                    line["original_gl_account_code"] = code
                findings.append(GLFinding(
                    "UNKNOWN_ACCOUNT",
                    f"GL account {code} is not in the chart of accounts",
                    "error",
                    line=index,
                    gl_account_code=str(code),
                    resolved=fixed,
                ))

            try:
                debit = _amount(line.get("debit"))
                credit = _amount(line.get("credit"))
                if debit < 0 or credit < 0:
                    raise InvalidOperation("negative amount")
            except (InvalidOperation, ValueError) as e:
                amounts_valid = False
                findings.append(GLFinding(
                    "INVALID_AMOUNT", f"Line {index}: {e}", "error", line=index,
                ))
            else:
                total_debit += debit
                total_credit += credit
                if debit == 0 and credit == 0:
                    findings.append(GLFinding(
                        "ZERO_LINE", f"Line {index} has no amount", "warning", line=index,
                    ))
                elif debit != 0 and credit != 0:
                    findings.append(GLFinding(
                        "MIXED_LINE", f"Line {index} has both debit and credit", "warning",
                        line=index,
                    ))
            corrected.append(line)

        if amounts_valid and total_debit != total_credit:
            findings.append(GLFinding(
                "UNBALANCED",
                f"Debits {total_debit} do not equal credits {total_credit}",
                "error",
            ))
        return findings, suggestions, corrected

    @staticmethod
    def _status(findings: list[GLFinding]) -> str:
        if not findings:
            return ValidationStatus.VALIDATED
        if any(f.severity == "error" and not f.resolved for f in findings):
            return ValidationStatus.ERROR
        if any(f.resolved for f in findings):
            return ValidationStatus.AUTO_FIXED
        return ValidationStatus.WARNING

    def validate_and_fix(
        self,
        transaction_id: UUID,
        organization_id: str,
        auto_fix_enabled: bool = True,
    ) -> GLValidationOutcome:
        """
        Validate a transaction's GL lines and record the result.

        The existing record is updated, or one is created.  ``success`` is
        False when unresolved errors remain or the transaction is not
        visible in the organization.
        """
        try:
            txn = self.transactions.get_transaction(transaction_id, organization_id)
        except TransactionNotFoundError as e:
            logger.warning(
                "gl_validation_transaction_missing",
                extra={"organization_id": organization_id, "transaction_id": str(transaction_id)},
            )
            return GLValidationOutcome(success=False, gl_intelligence=None, message=str(e))

        accounts = self.get_gl_accounts_for_validation(organization_id)
        lines = txn.transaction_data.get("lines") or []
        if not isinstance(lines, list):
            lines = []
        findings, suggestions, corrected = self.evaluate_lines(lines, accounts, auto_fix_enabled)

        status = self._status(findings)
        open_findings = [f for f in findings if not f.resolved]
        confidence = self._confidence(status, len(open_findings))
        fixed_lines = [f.line for f in findings if f.resolved]

        primary_code = next(
            (line.get("gl_account_code") for line in corrected
             if line.get("gl_account_code") in accounts),
            None,
        )
        gl_account_id = str(accounts[primary_code]["id"]) if primary_code else None

        reasoning = (
            f"{len(lines)} line(s) checked against {len(accounts)} account(s); "
            f"{len(open_findings)} open finding(s), {len(fixed_lines)} auto-fixed"
        )
        values = {
            "gl_account_id": gl_account_id,
            "confidence_score": confidence,
            "validation_status": status,
            "validation_errors": [f.as_dict() for f in findings],
            "auto_fix_applied": bool(fixed_lines),
            "auto_fix_suggestions": suggestions,
            "posting_metadata": {
                "lines": corrected,
                "auto_fixed_lines": fixed_lines,
                "validated_at": self.clock.now().isoformat(),
            },
            "ai_reasoning": reasoning,
        }

        existing = self.get(transaction_id, organization_id)
        if existing is None:
            record = self.create(transaction_id, organization_id, **values)
        else:
            record = self.update(existing.gl_intelligence_id, organization_id, values)

        success = status != ValidationStatus.ERROR
        logger.info(
            "gl_validation_completed",
            extra={
                "organization_id": organization_id,
                "transaction_id": str(transaction_id),
                "validation_status": status,
                "confidence_score": confidence,
                "finding_count": len(findings),
                "auto_fixed": len(fixed_lines),
            },
        )
        message = (
            f"Transaction {txn.transaction_number} {status}"
            if success
            else f"Transaction {txn.transaction_number} has {len(open_findings)} open finding(s)"
        )
        return GLValidationOutcome(
            success=success,
            gl_intelligence=record,
            message=message,
            findings=tuple(findings),
        )
