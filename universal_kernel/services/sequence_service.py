"""
SequenceService -- per-tenant number allocation via locked counter rows.

Responsibility:
    Allocates strictly increasing numbers for audit transactions and for
    business transactions created without an explicit number.  Each
    (organization_id, sequence name) pair has one counter row, locked with
    ``SELECT ... FOR UPDATE`` while it is incremented.

Architecture position:
    Kernel > Services.  Called by TransactionService and EntityService.

Invariants enforced:
    - Numbers are never derived from timestamps or from MAX()+1 over the
      transactions table; the counter row is the only source.
    - The increment is part of the caller's transaction: a rollback returns
      the number.

Failure modes:
    - IntegrityError on a concurrent first use of a sequence is absorbed by
      a savepoint and the locked row is re-read.
"""

from sqlalchemy import BigInteger, String, UniqueConstraint, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from universal_kernel.db.base import Base, TenantScoped
from universal_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(TenantScoped, Base):
    """Current value of one named sequence for one organization."""

    __tablename__ = "sequence_counters"

    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_sequence_counters_org_name"),
    )

    # e.g. "entity_audit", "SALE"
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Transactional sequence allocation.

    Contract:
        ``next_value(org, name)`` returns a value strictly greater than any
        value previously returned for the same pair in committed work.

    Non-goals:
        Does NOT commit.  Does NOT guarantee gap-free numbering across
        rolled-back savepoints.
    """

    AUDIT = "entity_audit"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, organization_id: str, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(
                SequenceCounter.organization_id == organization_id,
                SequenceCounter.name == name,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, organization_id: str, name: str) -> int:
        counter = self._locked_counter(organization_id, name)

        if counter is None:
            # First use; another session may be creating the same row
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(
                    organization_id=organization_id, name=name, current_value=1
                )
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"organization_id": organization_id, "sequence_name": name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"organization_id": organization_id, "sequence_name": name},
                )
                savepoint.rollback()
                counter = self._locked_counter(organization_id, name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={
                "organization_id": organization_id,
                "sequence_name": name,
                "value": counter.current_value,
            },
        )
        return counter.current_value

    def next_number(self, organization_id: str, name: str, prefix: str) -> str:
        """Allocate and format as ``{prefix}-{value:08d}``."""
        return format_sequence_number(prefix, self.next_value(organization_id, name))

    def current_value(self, organization_id: str, name: str) -> int | None:
        counter = self._session.execute(
            select(SequenceCounter).where(
                SequenceCounter.organization_id == organization_id,
                SequenceCounter.name == name,
            )
        ).scalar_one_or_none()
        return counter.current_value if counter else None


def format_sequence_number(prefix: str, value: int) -> str:
    return f"{prefix}-{value:08d}"
