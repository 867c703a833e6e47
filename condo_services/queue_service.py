"""
condo_services.queue_service -- Unclaimed deposits and unfunded vouchers.

Responsibility:
    Exposes the two operator queues (deposits with no voucher, vouchers
    with no deposit) and the two operator actions that clear them:
    assigning a house directly to a deposit, and pairing a voucher with a
    deposit by hand.

Architecture position:
    Services -- stateful orchestration.  Reads go through QueueSelector;
    writes go through the DepositConfirmer.

Invariants enforced:
    - Only deposits in the unclaimed queue (not-found or conflict, still
      unconfirmed) can be assigned or matched.
    - The house number is validated before any row is locked or written.
    - Each action writes one append-only approval row and runs in its own
      SAVEPOINT together with the confirmation and allocation.

Failure modes:
    - InvalidHouseNumberError, BankTransactionNotFoundError,
      VoucherNotFoundError, DepositAlreadyConfirmedError,
      VoucherAlreadyConfirmedError, DepositNotUnclaimedError.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from condo_kernel.domain.clock import Clock, SystemClock
from condo_kernel.domain.houses import HouseNumberBounds
from condo_kernel.domain.reconciliation import (
    UNCLAIMED_STATUSES,
    ConfirmationResult,
    ManualAction,
    Page,
    UnclaimedDeposit,
    UnclaimedDepositFilters,
    UnfundedVoucher,
    UnfundedVoucherFilters,
    ValidationStatus,
)
from condo_kernel.exceptions import (
    BankTransactionNotFoundError,
    DepositAlreadyConfirmedError,
    DepositNotUnclaimedError,
    VoucherAlreadyConfirmedError,
    VoucherNotFoundError,
)
from condo_kernel.logging_config import get_logger
from condo_kernel.models.bank import BankTransaction, Voucher
from condo_kernel.models.reconciliation import (
    ManualValidationApproval,
    TransactionStatus,
)
from condo_kernel.selectors.queue_selector import QueueSelector
from condo_services.confirmation import DepositConfirmer

logger = get_logger("services.queue")


class QueueService:
    """
    Operator queues.

    Contract:
        Listing methods are read-only.  ``assign_house`` and
        ``match_voucher_to_deposit`` confirm the deposit and allocate its
        amount to the house.

    Non-goals:
        - Does NOT unconfirm anything; confirmation is one-way.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        bounds: HouseNumberBounds | None = None,
        confirmer: DepositConfirmer | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.bounds = bounds or HouseNumberBounds()
        self.confirmer = confirmer or DepositConfirmer(session, self.clock)
        self.selector = QueueSelector(session)

    def get_unclaimed_deposits(
        self,
        filters: UnclaimedDepositFilters | None = None,
    ) -> Page[UnclaimedDeposit]:
        return self.selector.get_unclaimed_deposits(filters or UnclaimedDepositFilters())

    def get_unfunded_vouchers(
        self,
        filters: UnfundedVoucherFilters | None = None,
    ) -> Page[UnfundedVoucher]:
        return self.selector.get_unfunded_vouchers(filters or UnfundedVoucherFilters())

    def assign_house(
        self,
        transaction_id: UUID,
        house_number: int,
        actor_id: UUID,
        notes: str | None = None,
    ) -> ConfirmationResult:
        """Confirm an unclaimed deposit for a house, with no voucher."""
        self.bounds.validate(house_number)

        with self.session.begin_nested():
            deposit, status = self._lock_unclaimed(transaction_id)
            result = self.confirmer.confirm(deposit, status, house_number, actor_id)
            status.reason = f"House {house_number} assigned manually"
            self._record_action(status, ManualAction.ASSIGN_HOUSE, actor_id, notes)

        logger.info(
            "deposit_house_assigned",
            extra={
                "deposit_id": str(transaction_id),
                "house_number": house_number,
                "actor_id": str(actor_id),
            },
        )
        return result

    def match_voucher_to_deposit(
        self,
        voucher_id: UUID,
        transaction_id: UUID,
        house_number: int,
        actor_id: UUID,
        notes: str | None = None,
    ) -> ConfirmationResult:
        """Pair an unfunded voucher with an unclaimed deposit and confirm both."""
        self.bounds.validate(house_number)

        with self.session.begin_nested():
            voucher = self.session.execute(
                select(Voucher)
                .where(Voucher.id == voucher_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if voucher is None:
                raise VoucherNotFoundError(str(voucher_id))
            if voucher.confirmation_status:
                raise VoucherAlreadyConfirmedError(str(voucher_id))

            deposit, status = self._lock_unclaimed(transaction_id)
            if voucher.amount != deposit.amount:
                logger.warning(
                    "manual_match_amount_mismatch",
                    extra={
                        "deposit_id": str(transaction_id),
                        "voucher_id": str(voucher_id),
                        "deposit_amount": str(deposit.amount),
                        "voucher_amount": str(voucher.amount),
                    },
                )

            result = self.confirmer.confirm(
                deposit, status, house_number, actor_id, voucher=voucher,
            )
            status.reason = f"Voucher matched manually for house {house_number}"
            self._record_action(
                status, ManualAction.MATCH_VOUCHER, actor_id, notes, voucher_id=voucher_id,
            )

        logger.info(
            "voucher_matched_manually",
            extra={
                "deposit_id": str(transaction_id),
                "voucher_id": str(voucher_id),
                "house_number": house_number,
                "actor_id": str(actor_id),
            },
        )
        return result

    # =========================================================================
    # Internals
    # =========================================================================

    def _lock_unclaimed(
        self,
        transaction_id: UUID,
    ) -> tuple[BankTransaction, TransactionStatus]:
        deposit = self.session.execute(
            select(BankTransaction)
            .where(BankTransaction.id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if deposit is None:
            raise BankTransactionNotFoundError(str(transaction_id))
        if deposit.confirmation_status:
            raise DepositAlreadyConfirmedError(str(transaction_id))

        status = self.session.execute(
            select(TransactionStatus)
            .where(TransactionStatus.bank_transaction_id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if status is None:
            raise DepositNotUnclaimedError(str(transaction_id), None)
        if ValidationStatus(status.validation_status) not in UNCLAIMED_STATUSES:
            raise DepositNotUnclaimedError(str(transaction_id), status.validation_status)
        return deposit, status

    def _record_action(
        self,
        status: TransactionStatus,
        action: ManualAction,
        actor_id: UUID,
        notes: str | None,
        voucher_id: UUID | None = None,
    ) -> None:
        self.session.add(ManualValidationApproval(
            transaction_status_id=status.id,
            bank_transaction_id=status.bank_transaction_id,
            voucher_id=voucher_id,
            action=action.value,
            approved_by_id=actor_id,
            notes=notes,
            decided_at=self.clock.now(),
        ))
        self.session.flush()
