"""
Module: condo_kernel.selectors.queue_selector
Responsibility: Read-only listings of the two reconciliation queues:
    unclaimed deposits (no voucher found, or conflicting house signals)
    and unfunded vouchers (no confirmed deposit behind them).
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Unclaimed membership is exactly UNCLAIMED_STATUSES on an
      unconfirmed deposit.
    - Pagination is clamped (page >= 1, limit 1..100, default 20).
    - Ordering is deterministic: the sort key, then id.

Failure modes:
    - None beyond database errors; empty pages are valid results.
"""

from sqlalchemy import and_, exists, or_, select

from condo_kernel.domain.reconciliation import (
    UNCLAIMED_STATUSES,
    DepositSort,
    Page,
    UnclaimedDeposit,
    UnclaimedDepositFilters,
    UnfundedVoucher,
    UnfundedVoucherFilters,
    ValidationStatus,
    clamp_pagination,
)
from condo_kernel.models.bank import BankTransaction, Voucher
from condo_kernel.models.reconciliation import TransactionStatus
from condo_kernel.selectors.base import BaseSelector


class QueueSelector(BaseSelector[TransactionStatus]):
    """
    Unclaimed deposit and unfunded voucher listings.

    Guarantees:
        - The house filter matches either the cents hint or the number
          found in the concept text.
        - Newest first for date sort, largest first for amount sort.
    """

    def get_unclaimed_deposits(
        self,
        filters: UnclaimedDepositFilters,
    ) -> Page[UnclaimedDeposit]:
        page, limit = clamp_pagination(filters.page, filters.limit)

        statuses = (
            [filters.validation_status.value]
            if filters.validation_status in UNCLAIMED_STATUSES
            else [s.value for s in UNCLAIMED_STATUSES]
        )

        stmt = (
            select(TransactionStatus, BankTransaction)
            .join(
                BankTransaction,
                BankTransaction.id == TransactionStatus.bank_transaction_id,
            )
            .where(
                TransactionStatus.validation_status.in_(statuses),
                BankTransaction.is_deposit.is_(True),
                BankTransaction.confirmation_status.is_(False),
            )
        )
        if filters.start_date is not None:
            stmt = stmt.where(BankTransaction.date >= filters.start_date)
        if filters.end_date is not None:
            stmt = stmt.where(BankTransaction.date <= filters.end_date)
        if filters.house_number is not None:
            stmt = stmt.where(
                or_(
                    TransactionStatus.cents_house_number == filters.house_number,
                    TransactionStatus.concept_house_number == filters.house_number,
                )
            )

        total = self._count(stmt)

        match filters.sort_by:
            case DepositSort.AMOUNT:
                stmt = stmt.order_by(BankTransaction.amount.desc(), BankTransaction.id)
            case DepositSort.DATE:
                stmt = stmt.order_by(
                    BankTransaction.date.desc(),
                    BankTransaction.time.desc(),
                    BankTransaction.id,
                )

        rows = self.session.execute(
            stmt.offset((page - 1) * limit).limit(limit)
        ).all()

        items = tuple(
            UnclaimedDeposit(
                transaction_id=tx.id,
                amount=tx.amount,
                date=tx.date,
                time=tx.time,
                concept=tx.concept,
                validation_status=ValidationStatus(status.validation_status),
                reason=status.reason,
                suggested_house_number=status.cents_house_number,
                concept_house_number=status.concept_house_number,
                processed_at=status.processed_at,
            )
            for status, tx in rows
        )
        return Page(items=items, total_count=total, page=page, limit=limit)

    def get_unfunded_vouchers(
        self,
        filters: UnfundedVoucherFilters,
    ) -> Page[UnfundedVoucher]:
        page, limit = clamp_pagination(filters.page, filters.limit)

        confirmed_link = exists().where(
            and_(
                TransactionStatus.voucher_id == Voucher.id,
                TransactionStatus.validation_status == ValidationStatus.CONFIRMED.value,
            )
        )
        stmt = select(Voucher).where(
            Voucher.confirmation_status.is_(False),
            ~confirmed_link,
        )
        if filters.start_date is not None:
            stmt = stmt.where(Voucher.date >= filters.start_date)
        if filters.end_date is not None:
            stmt = stmt.where(Voucher.date <= filters.end_date)

        total = self._count(stmt)

        match filters.sort_by:
            case DepositSort.AMOUNT:
                stmt = stmt.order_by(Voucher.amount.desc(), Voucher.id)
            case DepositSort.DATE:
                stmt = stmt.order_by(Voucher.date.desc(), Voucher.time.desc(), Voucher.id)

        vouchers = self.session.execute(
            stmt.offset((page - 1) * limit).limit(limit)
        ).scalars()

        items = tuple(
            UnfundedVoucher(
                voucher_id=v.id,
                amount=v.amount,
                date=v.date,
                time=v.time,
                house_number=v.house_number,
                confirmation_code=v.confirmation_code,
                receipt_reference=v.receipt_reference,
            )
            for v in vouchers
        )
        return Page(items=items, total_count=total, page=page, limit=limit)
