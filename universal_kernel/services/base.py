"""
BaseService -- abstract base for kernel write services.

Responsibility:
    Common constructor and session contract.  Services flush within the
    caller's transaction and never commit or roll back the outer
    transaction themselves; multi-table writes use a SAVEPOINT
    (``session.begin_nested()``) so a failure leaves nothing behind.

Architecture position:
    Kernel > Services.

Failure modes:
    - A subclass calling ``session.commit()`` breaks the caller's ability
      to compose several service calls atomically.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from universal_kernel.db.base import Base
from universal_kernel.domain.clock import Clock, SystemClock
from universal_kernel.selectors.base import require_organization

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - Never calls ``session.commit()``; the caller controls the outer
          transaction.
        - ``self.clock`` is always set (SystemClock unless injected).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    _require_org = staticmethod(require_organization)
