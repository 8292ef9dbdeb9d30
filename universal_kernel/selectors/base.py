"""
Module: universal_kernel.selectors.base
Responsibility: Shared plumbing for read-only selectors over the universal
    tables, and the tenant guard every scoped read and write goes through.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Selectors never add, delete, flush or commit.
    - Selectors return DTOs (EntityInfo ...), not ORM rows.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from universal_kernel.db.base import Base
from universal_kernel.exceptions import MissingOrganizationError

ModelType = TypeVar("ModelType", bound=Base)


def require_organization(organization_id: str | None, operation: str) -> str:
    """Return ``organization_id``; MissingOrganizationError if absent or blank."""
    if organization_id is None or not str(organization_id).strip():
        raise MissingOrganizationError(operation)
    return organization_id


class BaseSelector(ABC, Generic[ModelType]):
    """The caller owns the session and its transaction scope."""

    def __init__(self, session: Session):
        self.session = session

    _require_org = staticmethod(require_organization)
