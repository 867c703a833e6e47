"""
Module: condo_kernel.models.bank
Responsibility: ORM persistence for bank transactions (deposits) and
    resident-submitted payment vouchers.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - confirmation_status is set once and never reverted: a before_update
      listener rejects any True -> False change on either table.
    - Voucher confirmation codes are unique when present.

Failure modes:
    - ImmutabilityViolationError when an ORM flush would un-confirm a
      deposit or voucher.

Audit relevance:
    Rows are created upstream (bank import, voucher intake).  The
    reconciliation core only reads them and flips confirmation_status.
"""

import datetime as dt
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
    event,
    func,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column

from condo_kernel.db.base import Base
from condo_kernel.exceptions import ImmutabilityViolationError


class BankTransaction(Base):
    """
    One line of a bank statement.

    Only deposits (is_deposit=True) take part in reconciliation.
    """

    __tablename__ = "bank_transactions"

    __table_args__ = (
        Index("idx_bank_tx_date", "date"),
        Index("idx_bank_tx_confirmation", "is_deposit", "confirmation_status"),
    )

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)

    time: Mapped[dt.time | None] = mapped_column(Time, nullable=True)

    concept: Mapped[str | None] = mapped_column(Text, nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), default="MXN", nullable=False)

    is_deposit: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    confirmation_status: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<BankTransaction {self.date} {self.amount}>"


class Voucher(Base):
    """A payment receipt submitted by a resident, pending confirmation."""

    __tablename__ = "vouchers"

    __table_args__ = (
        UniqueConstraint("confirmation_code", name="uq_voucher_confirmation_code"),
        Index("idx_voucher_confirmation", "confirmation_status"),
        Index("idx_voucher_amount", "amount"),
    )

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)

    time: Mapped[dt.time | None] = mapped_column(Time, nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    house_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    confirmation_status: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    confirmation_code: Mapped[str | None] = mapped_column(String(40), nullable=True)

    receipt_reference: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Voucher {self.date} {self.amount} house={self.house_number}>"


def _reject_unconfirm(entity_type: str):
    def listener(mapper, connection, target):
        history = inspect(target).attrs.confirmation_status.history
        if history.deleted and history.deleted[0] and not target.confirmation_status:
            raise ImmutabilityViolationError(
                entity_type=entity_type,
                entity_id=str(target.id),
                reason="confirmation_status cannot be reverted once confirmed",
            )

    return listener


event.listen(BankTransaction, "before_update", _reject_unconfirm("BankTransaction"))
event.listen(Voucher, "before_update", _reject_unconfirm("Voucher"))
