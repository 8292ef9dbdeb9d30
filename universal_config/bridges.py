"""
Config -> Kernel bridges.

Build kernel services from a UniversalConfig.  These live here because the
kernel must never import universal_config.

Usage:
    config = get_active_config()
    entities = build_entity_service(session, config)
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from universal_config.schema import UniversalConfig
from universal_kernel.domain.clock import Clock
from universal_kernel.domain.naming import NamingConventionEngine
from universal_kernel.services.duplicate_prevention_service import (
    DuplicatePreventionService,
)
from universal_kernel.services.entity_service import EntityService


def build_naming_engine(config: UniversalConfig) -> NamingConventionEngine:
    return NamingConventionEngine(config.naming)


def build_duplicate_service(
    session: Session,
    config: UniversalConfig,
    clock: Clock | None = None,
) -> DuplicatePreventionService:
    return DuplicatePreventionService(session, rules=config.duplicates, clock=clock)


def build_entity_service(
    session: Session,
    config: UniversalConfig,
    clock: Clock | None = None,
) -> EntityService:
    return EntityService(
        session,
        clock=clock,
        settings=config.entities,
        duplicate_rules=config.duplicates,
    )


def build_gl_intelligence_service(
    session: Session,
    config: UniversalConfig,
    clock: Clock | None = None,
):
    """GLIntelligenceService wired with this config's entity settings and rules."""
    from universal_services.gl_intelligence_service import GLIntelligenceService

    return GLIntelligenceService(
        session,
        settings=config.gl_intelligence,
        clock=clock,
        entity_service=build_entity_service(session, config, clock),
    )
