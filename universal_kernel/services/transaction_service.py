"""
TransactionService -- business transactions in universal_transactions.

Responsibility:
    Records business events, numbering them from SequenceService when the
    caller does not supply a number, and attaches derived entities to a
    transaction through core_relationships.

Architecture position:
    Kernel > Services.

Invariants enforced:
    - transaction_number is unique per (organization_id, transaction_type);
      the unique constraint is authoritative and violations surface as
      DuplicateTransactionNumberError.
    - Transactions are never updated after insert.

Failure modes:
    - DuplicateTransactionNumberError on a reused number.
    - TransactionNotFoundError / EntityNotFoundError when an id is not
      visible in the organization.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from universal_kernel.domain.clock import Clock
from universal_kernel.domain.dtos import RelationshipInfo, TransactionInfo
from universal_kernel.domain.values import jsonable
from universal_kernel.exceptions import (
    DuplicateTransactionNumberError,
    EntityNotFoundError,
    InvalidEntityDataError,
    TransactionNotFoundError,
)
from universal_kernel.logging_config import get_logger
from universal_kernel.models.entity import Entity
from universal_kernel.models.relationship import EntityRelationship
from universal_kernel.models.transaction import UniversalTransaction
from universal_kernel.services.base import BaseService
from universal_kernel.services.sequence_service import SequenceService

logger = get_logger("services.transaction")


class TransactionService(BaseService[UniversalTransaction]):
    """Create and read business transactions."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        sequence_service: SequenceService | None = None,
    ):
        super().__init__(session, clock)
        self._sequences = sequence_service or SequenceService(session)

    def _get(self, transaction_id: UUID, organization_id: str) -> UniversalTransaction:
        txn = self.session.get(UniversalTransaction, transaction_id)
        if txn is None or txn.organization_id != organization_id:
            raise TransactionNotFoundError(str(transaction_id), organization_id)
        return txn

    def create_transaction(
        self,
        organization_id: str,
        transaction_type: str,
        transaction_number: str | None = None,
        transaction_date: date | None = None,
        transaction_status: str = "completed",
        transaction_data: dict[str, Any] | None = None,
        total_amount: Decimal | int | str | None = None,
        actor_id: UUID | None = None,
    ) -> TransactionInfo:
        """
        Insert a transaction.

        Without ``transaction_number`` the next number of the organization's
        ``transaction_type`` sequence is used, formatted
        ``{TYPE}-{value:08d}``.

        Raises:
            DuplicateTransactionNumberError: Number already used.
        """
        self._require_org(organization_id, "create_transaction")
        if not transaction_type:
            raise InvalidEntityDataError("transaction_type", "required")

        if transaction_number is None:
            transaction_number = self._sequences.next_number(
                organization_id, transaction_type, transaction_type.upper()
            )

        txn = UniversalTransaction(
            organization_id=organization_id,
            transaction_type=transaction_type,
            transaction_number=transaction_number,
            transaction_date=transaction_date or self.clock.today(),
            transaction_status=transaction_status,
            total_amount=Decimal(str(total_amount)) if total_amount is not None else Decimal("0"),
            transaction_data=jsonable(transaction_data or {}),
            created_by_id=actor_id,
        )
        try:
            with self.session.begin_nested():
                self.session.add(txn)
                self.session.flush()
        except IntegrityError as e:
            logger.warning(
                "transaction_number_conflict",
                extra={
                    "organization_id": organization_id,
                    "transaction_type": transaction_type,
                    "transaction_number": transaction_number,
                },
            )
            raise DuplicateTransactionNumberError(
                organization_id, transaction_type, transaction_number
            ) from e

        logger.info(
            "transaction_created",
            extra={
                "organization_id": organization_id,
                "transaction_id": str(txn.id),
                "transaction_type": transaction_type,
                "transaction_number": transaction_number,
            },
        )
        return TransactionInfo.from_model(txn)

    def get_transaction(self, transaction_id: UUID, organization_id: str) -> TransactionInfo:
        self._require_org(organization_id, "get_transaction")
        return TransactionInfo.from_model(self._get(transaction_id, organization_id))

    def list_transactions(
        self,
        organization_id: str,
        transaction_type: str | None = None,
        limit: int | None = None,
    ) -> list[TransactionInfo]:
        """Transactions of an organization, newest first."""
        self._require_org(organization_id, "list_transactions")
        stmt = select(UniversalTransaction).where(
            UniversalTransaction.organization_id == organization_id
        )
        if transaction_type is not None:
            stmt = stmt.where(UniversalTransaction.transaction_type == transaction_type)
        stmt = stmt.order_by(
            UniversalTransaction.transaction_date.desc(),
            UniversalTransaction.created_at.desc(),
            UniversalTransaction.transaction_number.desc(),
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [TransactionInfo.from_model(t) for t in self.session.execute(stmt).scalars()]

    def attach_entity(
        self,
        transaction_id: UUID,
        entity_id: UUID,
        relationship_type: str,
        organization_id: str,
        relationship_data: dict[str, Any] | None = None,
    ) -> RelationshipInfo:
        """
        Link a transaction to an entity of the same organization.

        The edge runs transaction -> entity; transactions stay immutable
        while derived records hang off them.
        """
        self._require_org(organization_id, "attach_entity")
        self._get(transaction_id, organization_id)
        entity = self.session.get(Entity, entity_id)
        if entity is None or entity.organization_id != organization_id:
            raise EntityNotFoundError(str(entity_id), organization_id)

        rel = EntityRelationship(
            organization_id=organization_id,
            source_entity_id=transaction_id,
            target_entity_id=entity_id,
            relationship_type=relationship_type,
            relationship_data=jsonable(relationship_data or {}),
            is_active=True,
        )
        self.session.add(rel)
        self.session.flush()
        logger.info(
            "transaction_entity_attached",
            extra={
                "organization_id": organization_id,
                "transaction_id": str(transaction_id),
                "entity_id": str(entity_id),
                "relationship_type": relationship_type,
            },
        )
        return RelationshipInfo.from_model(rel)

    def attached_entity_ids(
        self,
        transaction_id: UUID,
        relationship_type: str,
        organization_id: str,
    ) -> list[UUID]:
        """Active targets of active edges of one type from a transaction, oldest first."""
        self._require_org(organization_id, "attached_entity_ids")
        return list(
            self.session.execute(
                select(EntityRelationship.target_entity_id)
                .join(Entity, Entity.id == EntityRelationship.target_entity_id)
                .where(
                    EntityRelationship.organization_id == organization_id,
                    EntityRelationship.source_entity_id == transaction_id,
                    EntityRelationship.relationship_type == relationship_type,
                    EntityRelationship.is_active == True,  # noqa: E712
                    Entity.is_active == True,  # noqa: E712
                )
                .order_by(EntityRelationship.created_at, EntityRelationship.id)
            ).scalars()
        )
