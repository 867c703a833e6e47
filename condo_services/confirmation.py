"""
condo_services.confirmation -- The single path by which a deposit becomes money.

Responsibility:
    Confirms a deposit for a house: flips the confirmation flags of the
    deposit (and its voucher, if any), records the PaymentRecord, marks the
    TransactionStatus confirmed and hands the amount to the allocation
    service.  Auto-confirmation, manual approval, house assignment and
    voucher matching all go through here.

Architecture position:
    Services -- stateful orchestration.  Called by the reconciliation,
    manual validation and queue services, never directly by callers.

Invariants enforced:
    - A deposit and a voucher are each confirmed at most once; the check
      happens before anything is written.
    - The house is created on first use (under the system user).
    - Confirmation and allocation share the caller's SAVEPOINT: a failed
      allocation leaves the deposit unconfirmed.
    - Allocation targets the period of the deposit date, not the period
      in which the deposit happens to be reconciled.

Failure modes:
    - DepositAlreadyConfirmedError, VoucherAlreadyConfirmedError.
    - InvalidHouseNumberError for a house number outside the bounds.
    - Any allocation error, propagated unchanged.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from condo_kernel.domain.clock import Clock, SystemClock
from condo_kernel.domain.reconciliation import ConfirmationResult, ValidationStatus
from condo_kernel.exceptions import (
    DepositAlreadyConfirmedError,
    VoucherAlreadyConfirmedError,
)
from condo_kernel.logging_config import get_logger
from condo_kernel.models.bank import BankTransaction, Voucher
from condo_kernel.models.reconciliation import PaymentRecord, TransactionStatus
from condo_kernel.services.house_service import HouseService
from condo_services.allocation_service import AllocationService

logger = get_logger("services.confirmation")


class DepositConfirmer:
    """
    Deposit confirmation and hand-off to allocation.

    Contract:
        Receives the deposit row, its TransactionStatus row (created by the
        caller when missing), the house number and optionally the voucher.

    Non-goals:
        - Does NOT open its own SAVEPOINT; callers own the unit of work.
        - Does NOT record operator approvals.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        house_service: HouseService | None = None,
        allocation_service: AllocationService | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.houses = house_service or HouseService(session, self.clock)
        self.allocation = allocation_service or AllocationService(session, self.clock)

    def confirm(
        self,
        deposit: BankTransaction,
        status: TransactionStatus,
        house_number: int,
        actor_id: UUID,
        voucher: Voucher | None = None,
    ) -> ConfirmationResult:
        if deposit.confirmation_status:
            raise DepositAlreadyConfirmedError(str(deposit.id))
        if voucher is not None and voucher.confirmation_status:
            raise VoucherAlreadyConfirmedError(str(voucher.id))

        house = self.houses.get_or_create_house(house_number)

        deposit.confirmation_status = True
        if voucher is not None:
            voucher.confirmation_status = True

        status.validation_status = ValidationStatus.CONFIRMED.value
        status.voucher_id = voucher.id if voucher is not None else None
        status.identified_house_number = house_number
        status.processed_at = self.clock.now()
        status.updated_by_id = actor_id

        record = PaymentRecord(
            house_id=house.id,
            bank_transaction_id=deposit.id,
            voucher_id=voucher.id if voucher is not None else None,
            amount=deposit.amount,
            payment_date=deposit.date,
            created_by_id=actor_id,
        )
        self.session.add(record)
        self.session.flush()

        allocation = self.allocation.allocate(
            house.id, deposit.amount, record.id, payment_date=deposit.date,
        )

        logger.info(
            "deposit_confirmed",
            extra={
                "deposit_id": str(deposit.id),
                "voucher_id": str(voucher.id) if voucher is not None else None,
                "house_number": house_number,
                "record_id": str(record.id),
                "amount": str(deposit.amount),
            },
        )
        return ConfirmationResult(
            transaction_id=deposit.id,
            voucher_id=voucher.id if voucher is not None else None,
            house_number=house_number,
            record_id=record.id,
            allocation=allocation,
        )
