"""
Module: condo_kernel.models.reconciliation
Responsibility: ORM persistence for the outcome of reconciling a deposit
    (TransactionStatus), the operator audit trail
    (ManualValidationApproval) and the settlement record that links a
    confirmed deposit to a house (PaymentRecord).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One TransactionStatus per deposit (UNIQUE bank_transaction_id).
    - ManualValidationApproval is append-only: ORM listeners reject UPDATE
      and DELETE, and UNIQUE(transaction_status_id, action) means each
      operator action is recorded at most once per case.
    - One PaymentRecord per deposit (UNIQUE bank_transaction_id).  A
      deposit is therefore allocated at most once regardless of the route
      that confirmed it.

Failure modes:
    - IntegrityError on a second status row, approval row or payment
      record for the same deposit.
    - ImmutabilityViolationError on approval UPDATE/DELETE.

Audit relevance:
    TransactionStatus.metadata keeps every candidate the matcher scored,
    so an operator decision can always be compared with what the matcher
    saw.  Approvals record who decided what and when.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condo_kernel.db.base import Base, TrackedBase, UUIDString
from condo_kernel.exceptions import ImmutabilityViolationError
from condo_kernel.models.bank import BankTransaction, Voucher


class TransactionStatus(TrackedBase):
    """
    Reconciliation outcome of one deposit.

    Contract:
        validation_status is one of confirmed / not-found / conflict /
        requires-manual.  review_status is null until the deposit enters
        the manual queue, then pending / approved / rejected.

    Guarantees:
        - Exactly one row per bank transaction.
        - match_metadata is replaced wholesale, never mutated in place.
    """

    __tablename__ = "transaction_statuses"

    __table_args__ = (
        UniqueConstraint("bank_transaction_id", name="uq_tx_status_bank_tx"),
        CheckConstraint(
            "validation_status IN ('confirmed', 'not-found', 'conflict', 'requires-manual')",
            name="chk_tx_status_validation",
        ),
        CheckConstraint(
            "review_status IS NULL OR review_status IN ('pending', 'approved', 'rejected')",
            name="chk_tx_status_review",
        ),
        Index("idx_tx_status_validation", "validation_status"),
        Index("idx_tx_status_review", "review_status"),
    )

    bank_transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("bank_transactions.id"),
        nullable=False,
    )

    voucher_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("vouchers.id"),
        nullable=True,
    )

    validation_status: Mapped[str] = mapped_column(String(20), nullable=False)

    review_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    identified_house_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    cents_house_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    concept_house_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # "metadata" is reserved on declarative classes.
    match_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )

    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # When the deposit entered the manual queue; review latency is measured from here.
    review_requested_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    bank_transaction: Mapped[BankTransaction] = relationship(
        foreign_keys=[bank_transaction_id],
    )

    voucher: Mapped[Voucher | None] = relationship(foreign_keys=[voucher_id])

    approvals: Mapped[list[ManualValidationApproval]] = relationship(
        back_populates="transaction_status",
        order_by="ManualValidationApproval.decided_at",
    )

    def __repr__(self) -> str:
        return (
            f"<TransactionStatus tx={self.bank_transaction_id} "
            f"{self.validation_status} review={self.review_status}>"
        )


class ManualValidationApproval(Base):
    """
    One operator decision on a deposit.  Append-only.

    Contract:
        voucher_id is null for reject and assign_house actions.

    Guarantees:
        - UNIQUE(transaction_status_id, action).
        - Immutable once flushed.
    """

    __tablename__ = "manual_validation_approvals"

    __table_args__ = (
        UniqueConstraint(
            "transaction_status_id", "action",
            name="uq_manual_approval_case_action",
        ),
        CheckConstraint(
            "action IN ('approve', 'reject', 'assign_house', 'match_voucher')",
            name="chk_manual_approval_action",
        ),
        Index("idx_manual_approval_decided_at", "decided_at"),
    )

    transaction_status_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transaction_statuses.id"),
        nullable=False,
    )

    bank_transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("bank_transactions.id"),
        nullable=False,
    )

    voucher_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("vouchers.id"),
        nullable=True,
    )

    action: Mapped[str] = mapped_column(String(20), nullable=False)

    approved_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    decided_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    transaction_status: Mapped[TransactionStatus] = relationship(
        back_populates="approvals",
    )

    def __repr__(self) -> str:
        return (
            f"<ManualValidationApproval case={self.transaction_status_id} "
            f"action={self.action}>"
        )


class PaymentRecord(TrackedBase):
    """
    Settlement of one confirmed deposit to a house.

    Its id is the record_id carried by every PaymentAllocation the
    deposit produced.
    """

    __tablename__ = "payment_records"

    __table_args__ = (
        UniqueConstraint("bank_transaction_id", name="uq_payment_record_bank_tx"),
        Index("idx_payment_record_house", "house_id"),
    )

    house_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("houses.id"),
        nullable=False,
    )

    bank_transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("bank_transactions.id"),
        nullable=False,
    )

    voucher_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("vouchers.id"),
        nullable=True,
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    def __repr__(self) -> str:
        return f"<PaymentRecord house={self.house_id} {self.amount}>"


# =============================================================================
# ORM-Level Immutability for Approvals (Append-Only)
# =============================================================================


@event.listens_for(ManualValidationApproval, "before_update")
def prevent_approval_update(mapper, connection, target):
    """Prevent updates to manual validation approvals."""
    raise ImmutabilityViolationError(
        entity_type="ManualValidationApproval",
        entity_id=str(target.id),
        reason="Manual validation approvals are immutable -- cannot modify",
    )


@event.listens_for(ManualValidationApproval, "before_delete")
def prevent_approval_delete(mapper, connection, target):
    """Prevent deletion of manual validation approvals."""
    raise ImmutabilityViolationError(
        entity_type="ManualValidationApproval",
        entity_id=str(target.id),
        reason="Manual validation approvals are immutable -- cannot delete",
    )
