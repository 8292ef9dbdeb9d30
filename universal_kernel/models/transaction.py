"""
Module: universal_kernel.models.transaction
Responsibility: ORM persistence for universal_transactions -- records of
    business events (sales, receipts, invoices) and the audit rows written by
    every entity create/update/delete.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - transaction_number is unique per (organization_id, transaction_type)
      (uq_universal_transactions_number).
    - Immutable by convention: services insert transactions and never update
      them.  Derived data (GL intelligence) is attached through relationships.
"""

from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Date, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from universal_kernel.db.base import TenantScoped, TrackedBase


class UniversalTransaction(TenantScoped, TrackedBase):
    """A business event or write-audit record."""

    __tablename__ = "universal_transactions"

    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "transaction_type",
            "transaction_number",
            name="uq_universal_transactions_number",
        ),
        Index("idx_universal_transactions_org_date", "organization_id", "transaction_date"),
    )

    transaction_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    transaction_number: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    transaction_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    transaction_status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="completed",
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    transaction_data: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )

    def __repr__(self) -> str:
        return f"<UniversalTransaction {self.transaction_type}:{self.transaction_number}>"
