"""Orchestration services above the universal kernel."""

from universal_services._gl_types import (
    GLFinding,
    GLIntelligence,
    GLValidationOutcome,
    ValidationStatus,
)
from universal_services.client_service import (
    ClientAnalytics,
    ClientDetails,
    ClientService,
    ClientTransactionSummary,
)
from universal_services.gl_intelligence_service import GLIntelligenceService
from universal_services.registration_orchestrator import (
    RegistrationOrchestrator,
    RegistrationOutcome,
    RegistrationStatus,
)

__all__ = [
    "ClientAnalytics",
    "ClientDetails",
    "ClientService",
    "ClientTransactionSummary",
    "GLFinding",
    "GLIntelligence",
    "GLIntelligenceService",
    "GLValidationOutcome",
    "RegistrationOrchestrator",
    "RegistrationOutcome",
    "RegistrationStatus",
    "ValidationStatus",
]
