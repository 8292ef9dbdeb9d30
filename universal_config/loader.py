"""
Configuration loader (``universal_config.loader``).

Responsibility
--------------
Reads the YAML configuration file and parses each section into the frozen
types of ``universal_config.schema``.  Runtime callers use
``universal_config.get_active_config()`` instead of calling this directly.

Failure modes
-------------
* Missing file            -> ``ConfigurationError``.
* Malformed YAML          -> ``ConfigurationError`` (wrapping ``yaml.YAMLError``).
* Missing required key    -> ``ConfigurationError`` naming the section.
* Unknown enum value      -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from universal_config.schema import (
    VALIDATION_STATUSES,
    GLIntelligenceSettings,
    UniversalConfig,
)
from universal_kernel.domain.dtos import PreventionAction
from universal_kernel.domain.naming import NamingRules, TableConvention
from universal_kernel.domain.rules import (
    BusinessKeyRule,
    DuplicateRules,
    EntitySettings,
    KeySource,
)
from universal_kernel.exceptions import ConfigurationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty file yields ``{}``."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigurationError(str(path), "file not found") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(str(path), f"invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def _require(data: Mapping[str, Any], key: str, section: str) -> Any:
    if key not in data:
        raise ConfigurationError(section, f"missing required key '{key}'")
    return data[key]


def parse_table_convention(table_name: str, data: Mapping[str, Any]) -> TableConvention:
    section = f"naming.conventions.{table_name}"
    return TableConvention(
        table_name=table_name,
        prefix=str(_require(data, "prefix", section)),
        required_fields=tuple(data.get("required_fields", ())),
        patterns={str(k): str(v) for k, v in (data.get("patterns") or {}).items()},
    )


def parse_naming(data: Mapping[str, Any]) -> NamingRules:
    conventions = _require(data, "conventions", "naming")
    return NamingRules(
        conventions={
            name: parse_table_convention(name, body) for name, body in conventions.items()
        },
        semantic_fields=frozenset(data.get("semantic_fields", ())),
        semantic_mappings=dict(data.get("semantic_mappings") or {}),
        legacy_mappings=dict(data.get("legacy_mappings") or {}),
        name_exception_prefixes=tuple(data.get("name_exception_prefixes", ())),
    )


def parse_business_key_rule(entity_type: str, data: Mapping[str, Any]) -> BusinessKeyRule:
    section = f"duplicates.business_keys.{entity_type}"
    try:
        source = KeySource(_require(data, "source", section))
        action = PreventionAction(_require(data, "action", section))
    except ValueError as e:
        raise ConfigurationError(section, str(e)) from e
    fields = tuple(_require(data, "fields", section))
    if not fields:
        raise ConfigurationError(section, "fields must not be empty")
    if source is KeySource.TRANSACTION and not data.get("transaction_type"):
        raise ConfigurationError(section, "transaction rules need a transaction_type")
    return BusinessKeyRule(
        duplicate_type=str(_require(data, "duplicate_type", section)),
        source=source,
        fields=fields,
        action=action,
        message=str(_require(data, "message", section)),
        suggestions=tuple(data.get("suggestions", ())),
        transaction_type=data.get("transaction_type"),
    )


def parse_duplicates(data: Mapping[str, Any]) -> DuplicateRules:
    business_keys = data.get("business_keys") or {}
    return DuplicateRules(
        business_keys={
            entity_type: tuple(parse_business_key_rule(entity_type, r) for r in rules)
            for entity_type, rules in business_keys.items()
        },
        versioned_fields=frozenset(data.get("versioned_fields", ())),
    )


def parse_entities(data: Mapping[str, Any]) -> EntitySettings:
    defaults = EntitySettings()
    page_size = int(data.get("search_page_size", defaults.search_page_size))
    if page_size <= 0:
        raise ConfigurationError("entities", "search_page_size must be positive")
    return EntitySettings(
        search_page_size=page_size,
        audit_number_prefix=str(data.get("audit_number_prefix", defaults.audit_number_prefix)),
        history_metadata_type=str(
            data.get("history_metadata_type", defaults.history_metadata_type)
        ),
    )


def parse_gl_intelligence(data: Mapping[str, Any]) -> GLIntelligenceSettings:
    defaults = GLIntelligenceSettings()
    confidence = dict(defaults.status_confidence)
    for status, value in (data.get("status_confidence") or {}).items():
        if status not in VALIDATION_STATUSES:
            raise ConfigurationError("gl_intelligence", f"unknown status '{status}'")
        confidence[status] = float(value)

    cutoff = float(data.get("autofix_similarity_cutoff", defaults.autofix_similarity_cutoff))
    if not 0.0 < cutoff <= 1.0:
        raise ConfigurationError("gl_intelligence", "autofix_similarity_cutoff must be in (0, 1]")

    return GLIntelligenceSettings(
        entity_type=str(data.get("entity_type", defaults.entity_type)),
        relationship_type=str(data.get("relationship_type", defaults.relationship_type)),
        account_entity_type=str(data.get("account_entity_type", defaults.account_entity_type)),
        code_prefix=str(data.get("code_prefix", defaults.code_prefix)),
        status_confidence=confidence,
        penalty_per_error=float(data.get("penalty_per_error", defaults.penalty_per_error)),
        min_confidence=float(data.get("min_confidence", defaults.min_confidence)),
        autofix_similarity_cutoff=cutoff,
        max_suggestions=int(data.get("max_suggestions", defaults.max_suggestions)),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of the raw configuration."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_config(path: Path) -> UniversalConfig:
    """Parse a configuration file into a UniversalConfig."""
    raw = load_yaml_file(path)
    source = str(path)
    return UniversalConfig(
        config_id=str(_require(raw, "config_id", source)),
        version=str(_require(raw, "version", source)),
        checksum=compute_checksum(raw),
        naming=parse_naming(_require(raw, "naming", source)),
        duplicates=parse_duplicates(_require(raw, "duplicates", source)),
        entities=parse_entities(raw.get("entities") or {}),
        gl_intelligence=parse_gl_intelligence(raw.get("gl_intelligence") or {}),
    )
