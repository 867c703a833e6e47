"""
Module: condo_kernel.models.balance
Responsibility: ORM persistence for per-house running balances and the
    append-only allocation ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One HouseBalance per house (UNIQUE house_id).
    - 0 <= accumulated_cents < 1, credit_balance >= 0, debit_balance >= 0
      (database CHECK constraints).
    - PaymentAllocation rows are append-only: ORM listeners reject UPDATE
      and DELETE.

Failure modes:
    - IntegrityError when a balance update would break a CHECK range or on
      a concurrent first insert of the same house balance (the service
      retries the lookup).
    - ImmutabilityViolationError on allocation UPDATE/DELETE.

Audit relevance:
    Summing PaymentAllocation rows per (house, period, concept) and
    comparing with HousePeriodCharge reproduces every balance.  record_id
    is the PaymentRecord id, or the system record id for credit
    application.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
    event,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from condo_kernel.db.base import Base, UUIDString
from condo_kernel.exceptions import ImmutabilityViolationError
from condo_kernel.models.period import CONCEPT_CHECK


class HouseBalance(Base):
    """
    Running balance of one house.

    Contract:
        Row-locked (SELECT ... FOR UPDATE) by every writer before any
        charge or allocation work for the house.
    """

    __tablename__ = "house_balances"

    __table_args__ = (
        UniqueConstraint("house_id", name="uq_house_balance_house"),
        CheckConstraint(
            "accumulated_cents >= 0 AND accumulated_cents < 1",
            name="chk_balance_cents_range",
        ),
        CheckConstraint("credit_balance >= 0", name="chk_balance_credit"),
        CheckConstraint("debit_balance >= 0", name="chk_balance_debit"),
    )

    house_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("houses.id"),
        nullable=False,
    )

    accumulated_cents: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        default=Decimal("0"),
        nullable=False,
    )

    credit_balance: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        default=Decimal("0"),
        nullable=False,
    )

    debit_balance: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        default=Decimal("0"),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<HouseBalance house={self.house_id} cents={self.accumulated_cents} "
            f"credit={self.credit_balance} debit={self.debit_balance}>"
        )


class PaymentAllocation(Base):
    """
    Money applied to one concept of one period.  Append-only.

    Guarantees:
        - expected_amount is what was outstanding before this allocation.
        - payment_status is derived from allocated vs expected.
    """

    __tablename__ = "payment_allocations"

    __table_args__ = (
        CheckConstraint(CONCEPT_CHECK, name="chk_allocation_concept"),
        CheckConstraint("allocated_amount > 0", name="chk_allocation_positive"),
        CheckConstraint(
            "payment_status IN ('complete', 'partial', 'overpaid')",
            name="chk_allocation_status",
        ),
        Index("idx_allocation_house_period", "house_id", "period_id"),
        Index("idx_allocation_record", "record_id"),
    )

    # No FK: credit application uses the system record id.
    record_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    house_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("houses.id"),
        nullable=False,
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("periods.id"),
        nullable=False,
    )

    concept_type: Mapped[str] = mapped_column(String(30), nullable=False)

    allocated_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    expected_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    payment_status: Mapped[str] = mapped_column(String(20), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentAllocation record={self.record_id} {self.concept_type} "
            f"{self.allocated_amount}/{self.expected_amount}>"
        )


# =============================================================================
# ORM-Level Immutability for Allocations (Append-Only)
# =============================================================================


@event.listens_for(PaymentAllocation, "before_update")
def prevent_allocation_update(mapper, connection, target):
    """Prevent updates to allocation rows."""
    raise ImmutabilityViolationError(
        entity_type="PaymentAllocation",
        entity_id=str(target.id),
        reason="Payment allocations are append-only -- cannot modify",
    )


@event.listens_for(PaymentAllocation, "before_delete")
def prevent_allocation_delete(mapper, connection, target):
    """Prevent deletion of allocation rows."""
    raise ImmutabilityViolationError(
        entity_type="PaymentAllocation",
        entity_id=str(target.id),
        reason="Payment allocations are append-only -- cannot delete",
    )
