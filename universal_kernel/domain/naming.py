"""
Naming -- field naming convention engine for the universal tables.

Responsibility:
    Validates proposed column / dynamic-field names against a small set of
    universal patterns and per-table conventions, suggests corrected names,
    synthesizes names from a declared purpose, audits whole tables, and
    renders rename migration SQL.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Rules are injected
    (``NamingRules``); the bundled defaults live in this module so the kernel
    never imports universal_config.

Invariants enforced:
    - Never raises on bad input: every validation returns a
      NamingValidationResult, every suggestion returns a string.
    - ``id`` and every ``*_id`` name validate on any table.
    - ``generate_field_name(t, "entity_code")`` always validates on ``t``.
    - ``suggest_correct_name`` is idempotent.
    - Migration SQL never contains an identifier that fails
      ``is_sql_identifier``.

Validation order:
    id -> *_id -> *_code -> *_name -> is_* -> *_at -> semantic allow-list
    -> per-table convention -> name-exception prefixes -> reject.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from universal_kernel.domain.dtos import (
    FieldPatternSummary,
    NamingValidationResult,
    TableAudit,
)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")

# Fixed confidence per matched rule
EXACT = 1.0
FOREIGN_KEY = 0.95
CONVENTION_MISMATCH = 0.8
REJECTED = 0.3


@dataclass(frozen=True)
class TableConvention:
    """Naming convention for one table."""

    table_name: str
    prefix: str
    required_fields: tuple[str, ...] = ()
    # pattern role -> expected column name, e.g. {"name": "client_name"}
    patterns: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class NamingRules:
    conventions: dict[str, TableConvention] = field(default_factory=dict)
    semantic_fields: frozenset[str] = frozenset()
    semantic_mappings: dict[str, str] = field(default_factory=dict)
    legacy_mappings: dict[str, str] = field(default_factory=dict)
    # Tables whose names start with one of these may use a bare ``name`` column
    name_exception_prefixes: tuple[str, ...] = ()

    def convention_for(self, table_name: str) -> TableConvention | None:
        return self.conventions.get(table_name)


def _conventions(*items: TableConvention) -> dict[str, TableConvention]:
    return {c.table_name: c for c in items}


DEFAULT_NAMING_RULES = NamingRules(
    conventions=_conventions(
        TableConvention(
            table_name="core_clients",
            prefix="client",
            required_fields=("id", "client_name", "client_code", "client_type", "is_active"),
            patterns={
                "name": "client_name",
                "code": "client_code",
                "type": "client_type",
                "status": "is_active",
            },
        ),
        TableConvention(
            table_name="core_organizations",
            prefix="org",
            required_fields=("id", "client_id", "org_name", "org_code", "industry", "is_active"),
            patterns={
                "name": "org_name",
                "code": "org_code",
                "type": "industry",
                "foreign_key": "client_id",
                "status": "is_active",
            },
        ),
        TableConvention(
            table_name="core_users",
            prefix="user",
            required_fields=("id", "email", "full_name", "user_role", "auth_user_id", "is_active"),
            patterns={
                "name": "full_name",
                "role": "user_role",
                "external_id": "auth_user_id",
                "status": "is_active",
            },
        ),
        TableConvention(
            table_name="core_entities",
            prefix="entity",
            required_fields=(
                "id",
                "organization_id",
                "entity_type",
                "entity_name",
                "entity_code",
                "is_active",
            ),
            patterns={
                "name": "entity_name",
                "code": "entity_code",
                "type": "entity_type",
                "foreign_key": "organization_id",
                "status": "is_active",
            },
        ),
        TableConvention(
            table_name="universal_transactions",
            prefix="transaction",
            required_fields=(
                "id",
                "organization_id",
                "transaction_type",
                "transaction_number",
                "transaction_date",
                "transaction_status",
            ),
            patterns={
                "type": "transaction_type",
                "number": "transaction_number",
                "date": "transaction_date",
                "status": "transaction_status",
                "foreign_key": "organization_id",
            },
        ),
        TableConvention(
            table_name="core_metadata",
            prefix="metadata",
            required_fields=(
                "organization_id",
                "entity_type",
                "entity_id",
                "metadata_type",
                "metadata_value",
            ),
            patterns={
                "type": "metadata_type",
                "value": "metadata_value",
                "key": "metadata_key",
                "category": "metadata_category",
                "foreign_key": "entity_id",
            },
        ),
    ),
    semantic_fields=frozenset({
        "email", "currency", "country", "industry",
        "phone", "address", "description", "notes",
        "metadata_value", "metadata_type", "metadata_key", "metadata_category",
    }),
    semantic_mappings={
        "contact_email": "email",
        "business_email": "email",
        "phone_number": "phone",
        "telephone": "phone",
        "mobile": "phone",
        "location_country": "country",
        "business_country": "country",
        "payment_currency": "currency",
        "business_currency": "currency",
        "business_category": "industry",
        "company_type": "industry",
        "business_type": "industry",
    },
    legacy_mappings={
        "first_name": "full_name",
        "last_name": "full_name",
        "fname": "full_name",
        "lname": "full_name",
        "status": "is_active",
        "active": "is_active",
    },
    name_exception_prefixes=("menu_",),
)


def extract_entity_type(table_name: str) -> str:
    """
    Derive the entity type from a table name.

    Strips a ``core_`` or ``universal_`` prefix and the plural suffix:
    ``core_clients`` -> ``client``, ``core_entities`` -> ``entity``,
    ``universal_transactions`` -> ``transaction``.  A name that would strip
    to nothing is returned as is.
    """
    entity = table_name
    for prefix in ("core_", "universal_"):
        if entity.startswith(prefix):
            entity = entity[len(prefix):]
            break
    if entity.endswith("ies"):
        entity = entity[:-3] + "y"
    else:
        entity = entity.removesuffix("s")
    return entity or table_name


def is_sql_identifier(name: str) -> bool:
    return bool(_IDENTIFIER.match(name))


class NamingConventionEngine:
    """
    Advisory naming validator.

    Contract:
        Stateless apart from the injected rules; safe to share.

    Non-goals:
        Does not enforce anything.  Nothing prevents writing a field that
        fails validation.
    """

    # Bound on remap steps in suggest_correct_name
    _MAX_REMAP_STEPS = 8

    def __init__(self, rules: NamingRules | None = None):
        self._rules = rules or DEFAULT_NAMING_RULES

    @property
    def rules(self) -> NamingRules:
        return self._rules

    def _prefix_for(self, table_name: str) -> str:
        convention = self._rules.convention_for(table_name)
        return convention.prefix if convention else extract_entity_type(table_name)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_field_name(
        self,
        table_name: str,
        purpose: str,
        data_type: str = "text",
        references: str | None = None,
    ) -> str:
        """
        Synthesize a field name for a declared purpose.

        Known purposes: primary_key, foreign_key, entity_code, entity_name,
        entity_type, boolean_status, created_timestamp, updated_timestamp.
        Anything else becomes a semantic slug.  ``data_type`` is accepted for
        signature compatibility and does not change the result.
        """
        entity_type = extract_entity_type(table_name)
        convention = self._rules.convention_for(table_name)
        patterns = convention.patterns if convention else {}

        if purpose == "primary_key":
            return "id"
        if purpose == "foreign_key":
            if references:
                return f"{extract_entity_type(references)}_id"
            return f"{entity_type}_id"
        if purpose == "entity_code":
            return f"{self._prefix_for(table_name)}_code"
        if purpose == "entity_name":
            return f"{self._prefix_for(table_name)}_name"
        if purpose == "entity_type":
            return patterns.get("type") or f"{entity_type}_type"
        if purpose == "boolean_status":
            return patterns.get("status") or "is_active"
        if purpose == "created_timestamp":
            return "created_at"
        if purpose == "updated_timestamp":
            return "updated_at"
        return self._semantic_name(purpose)

    def _semantic_name(self, purpose: str) -> str:
        mapped = self._rules.semantic_mappings.get(purpose)
        if mapped:
            return mapped
        return re.sub(r"[^a-z0-9]", "_", purpose.lower())

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _match(self, table_name: str, field_name: str) -> NamingValidationResult:
        """Pattern match without computing a suggestion."""
        expected = self._prefix_for(table_name)

        if field_name == "id":
            return NamingValidationResult(True, EXACT, pattern="Primary key pattern")

        if field_name.endswith("_id"):
            ref = field_name.removesuffix("_id")
            return NamingValidationResult(
                True, FOREIGN_KEY, pattern=f"Foreign key pattern: {ref}_id"
            )

        if field_name.endswith("_code"):
            if field_name.removesuffix("_code") == expected:
                return NamingValidationResult(
                    True, EXACT, pattern=f"Entity code pattern: {expected}_code"
                )
            return NamingValidationResult(
                False,
                CONVENTION_MISMATCH,
                pattern="Entity code pattern",
                error=f"Code field should use prefix '{expected}'",
                suggestion=f"{expected}_code",
            )

        # A mismatched *_name prefix falls through; conventions may still
        # allow it (full_name on core_users).
        if field_name.endswith("_name") and field_name.removesuffix("_name") == expected:
            return NamingValidationResult(
                True, EXACT, pattern=f"Entity name pattern: {expected}_name"
            )

        if field_name.startswith("is_"):
            return NamingValidationResult(True, EXACT, pattern="Boolean status pattern: is_[state]")

        if field_name.endswith("_at"):
            return NamingValidationResult(True, EXACT, pattern="Timestamp pattern: [action]_at")

        if field_name in self._rules.semantic_fields:
            return NamingValidationResult(True, EXACT, pattern="Semantic naming")

        convention = self._rules.convention_for(table_name)
        if convention:
            for role, expected_name in convention.patterns.items():
                if field_name == expected_name:
                    return NamingValidationResult(
                        True, EXACT, pattern=f"Convention pattern: {role}"
                    )

        if field_name == "name" and table_name.startswith(self._rules.name_exception_prefixes):
            return NamingValidationResult(True, EXACT, pattern="Entity name field exception")

        return NamingValidationResult(
            False,
            REJECTED,
            pattern="Expected: [entity]_[attribute] or semantic naming",
            error=f"Field '{field_name}' doesn't follow naming conventions",
        )

    def validate_field_name(
        self,
        table_name: str,
        field_name: str,
        purpose: str | None = None,
    ) -> NamingValidationResult:
        result = self._match(table_name, field_name)
        if result.is_valid or result.suggestion is not None:
            return result
        return NamingValidationResult(
            False,
            result.confidence,
            pattern=result.pattern,
            error=result.error,
            suggestion=self.suggest_correct_name(table_name, field_name, purpose),
        )

    def validate_on_type(self, table_name: str, field_name: str) -> NamingValidationResult:
        """Validation as a developer types, without a declared purpose."""
        return self.validate_field_name(table_name, field_name)

    # ------------------------------------------------------------------
    # Suggestion
    # ------------------------------------------------------------------

    def suggest_correct_name(
        self,
        table_name: str,
        current_name: str,
        purpose: str | None = None,
    ) -> str:
        """
        Best-effort corrected name.  Never raises.

        A name that already validates is returned unchanged.  Otherwise the
        name is remapped step by step until it validates or stops changing,
        which makes the function idempotent.
        """
        if self._match(table_name, current_name).is_valid:
            return current_name

        if purpose:
            generated = self.generate_field_name(table_name, purpose)
            if self._match(table_name, generated).is_valid:
                return generated

        seen = {current_name}
        name = current_name
        for _ in range(self._MAX_REMAP_STEPS):
            candidate = self._remap(table_name, name)
            if candidate == name or candidate in seen:
                return candidate
            if self._match(table_name, candidate).is_valid:
                return candidate
            seen.add(candidate)
            name = candidate
        return name

    def _remap(self, table_name: str, name: str) -> str:
        entity_type = extract_entity_type(table_name)
        prefix = self._prefix_for(table_name)
        convention = self._rules.convention_for(table_name)
        patterns = convention.patterns if convention else {}

        if name.endswith("_code"):
            return f"{prefix}_code"

        if "_" not in name:
            if "name" in name:
                return patterns.get("name") or f"{prefix}_name"
            if "code" in name:
                return patterns.get("code") or f"{prefix}_code"
            if "type" in name:
                return patterns.get("type") or f"{entity_type}_type"

        if "status" in name and not name.startswith("is_"):
            return patterns.get("status") or "is_active"

        legacy = self._rules.legacy_mappings.get(name)
        if legacy:
            return legacy

        if name.startswith(f"{entity_type}_"):
            return name
        return f"{entity_type}_{name}"

    # ------------------------------------------------------------------
    # Table analysis
    # ------------------------------------------------------------------

    @staticmethod
    def analyze_field_patterns(field_names: Iterable[str]) -> FieldPatternSummary:
        names = list(field_names)
        return FieldPatternSummary(
            has_id="id" in names,
            foreign_keys=sum(1 for n in names if n.endswith("_id")),
            timestamps=sum(1 for n in names if n.endswith("_at")),
            status_fields=sum(1 for n in names if n.startswith("is_")),
            code_fields=sum(1 for n in names if n.endswith("_code")),
            name_fields=sum(1 for n in names if n.endswith("_name")),
        )

    def audit_table(self, table_name: str, field_names: Sequence[str]) -> TableAudit:
        """Validate every column of a table and report missing required ones."""
        convention = self._rules.convention_for(table_name)
        required = convention.required_fields if convention else ()
        present = set(field_names)
        return TableAudit(
            table_name=table_name,
            entity_type=extract_entity_type(table_name),
            summary=self.analyze_field_patterns(field_names),
            results={name: self.validate_field_name(table_name, name) for name in field_names},
            missing_required=tuple(f for f in required if f not in present),
        )

    # ------------------------------------------------------------------
    # Migration
    # ------------------------------------------------------------------

    def generate_migration_script(
        self,
        table_name: str,
        field_mappings: Sequence[tuple[str, str]],
    ) -> str:
        """
        Render ``ALTER TABLE ... RENAME COLUMN`` statements.

        Renamed ``*_code`` / ``*_name`` columns also get an index.  Pairs with
        an invalid identifier are emitted as a ``-- skipped`` comment only.
        """
        lines = [f"-- Naming convention migration for {_comment_safe(table_name)}", ""]
        if not is_sql_identifier(table_name):
            lines.append(f"-- skipped: invalid table name {_comment_safe(table_name)!r}")
            return "\n".join(lines) + "\n"

        renamed: list[str] = []
        for old, new in field_mappings:
            if not (is_sql_identifier(old) and is_sql_identifier(new)):
                lines.append(
                    f"-- skipped: invalid identifier in "
                    f"{_comment_safe(old)!r} -> {_comment_safe(new)!r}"
                )
                lines.append("")
                continue
            lines.append(f"-- Rename {old} to {new}")
            lines.append(f"ALTER TABLE {table_name} RENAME COLUMN {old} TO {new};")
            lines.append("")
            renamed.append(new)

        lines.append("-- Update indexes for renamed columns")
        for new in renamed:
            if new.endswith("_code") or new.endswith("_name"):
                index_name = f"idx_{table_name}_{new}"[:63]
                lines.append(
                    f"CREATE INDEX IF NOT EXISTS {index_name} ON {table_name}({new});"
                )
        return "\n".join(lines) + "\n"


def _comment_safe(text: str) -> str:
    return text.replace("\n", " ").replace("\r", " ")
