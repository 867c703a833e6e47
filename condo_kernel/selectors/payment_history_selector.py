"""
Module: condo_kernel.selectors.payment_history_selector
Responsibility: Read-only payment history of one house: the allocation
    ledger joined to the payment it came from, and a per-period summary
    of expected vs paid with the debt trend.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Ledger rows are ordered by period start, then concept priority,
      then creation time.
    - The per-period summary covers the most recent ``limit_months``
      periods (1..60, default 12) that start on or before today and hold
      a materialized charge for the house; it is returned oldest first.
    - Expected amounts use ``amount_due``, so a condoned penalty counts
      as nothing owed.

Failure modes:
    - HouseNotFoundError, UnknownPeriodError, InvalidHistoryRangeError.
"""

from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from condo_kernel.domain.clock import Clock, SystemClock
from condo_kernel.domain.payments import (
    ConceptType,
    HousePaymentHistory,
    PaymentHistory,
    PaymentHistoryItem,
    PaymentStatus,
    PeriodPaymentSummary,
    concept_rank,
)
from condo_kernel.exceptions import (
    HouseNotFoundError,
    InvalidHistoryRangeError,
    UnknownPeriodError,
)
from condo_kernel.models.balance import PaymentAllocation
from condo_kernel.models.house import House
from condo_kernel.models.period import HousePeriodCharge, Period
from condo_kernel.models.reconciliation import PaymentRecord
from condo_kernel.selectors.base import BaseSelector

MIN_HISTORY_MONTHS = 1
MAX_HISTORY_MONTHS = 60
DEFAULT_HISTORY_MONTHS = 12

ZERO = Decimal("0")


class PaymentHistorySelector(BaseSelector[PaymentAllocation]):
    """
    Per-house payment history.

    Guarantees:
        - Allocations made by credit application have no payment record;
          they are listed with ``payment_date`` None.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self.clock = clock or SystemClock()

    def get_payment_history(
        self,
        house_id: UUID,
        period_id: UUID | None = None,
    ) -> PaymentHistory:
        """Every allocation of the house, or only those of ``period_id``."""
        house = self._require_house(house_id)
        if period_id is not None and self.session.get(Period, period_id) is None:
            raise UnknownPeriodError(str(period_id))

        stmt = (
            select(PaymentAllocation, Period, PaymentRecord.payment_date)
            .join(Period, Period.id == PaymentAllocation.period_id)
            .outerjoin(PaymentRecord, PaymentRecord.id == PaymentAllocation.record_id)
            .where(PaymentAllocation.house_id == house_id)
        )
        if period_id is not None:
            stmt = stmt.where(PaymentAllocation.period_id == period_id)
        rows = self.session.execute(stmt).all()

        rows.sort(
            key=lambda row: (
                row[1].start_date,
                concept_rank(ConceptType(row[0].concept_type)),
                row[0].created_at,
            )
        )
        payments = tuple(
            PaymentHistoryItem(
                allocation_id=allocation.id,
                record_id=allocation.record_id,
                payment_date=payment_date,
                period_id=period.id,
                period_label=period.label,
                concept_type=ConceptType(allocation.concept_type),
                allocated_amount=allocation.allocated_amount,
                expected_amount=allocation.expected_amount,
                payment_status=PaymentStatus(allocation.payment_status),
            )
            for allocation, period, payment_date in rows
        )
        return PaymentHistory(
            house_id=house_id,
            house_number=house.number_house,
            payments=payments,
        )

    def get_house_payment_history(
        self,
        house_id: UUID,
        limit_months: int = DEFAULT_HISTORY_MONTHS,
    ) -> HousePaymentHistory:
        if not MIN_HISTORY_MONTHS <= limit_months <= MAX_HISTORY_MONTHS:
            raise InvalidHistoryRangeError(
                limit_months, MIN_HISTORY_MONTHS, MAX_HISTORY_MONTHS,
            )
        house = self._require_house(house_id)

        periods = list(
            self.session.execute(
                select(Period)
                .where(
                    Period.start_date <= self.clock.today(),
                    Period.id.in_(
                        select(HousePeriodCharge.period_id).where(
                            HousePeriodCharge.house_id == house_id
                        )
                    ),
                )
                .order_by(Period.start_date.desc())
                .limit(limit_months)
            ).scalars()
        )
        periods.reverse()
        period_ids = [p.id for p in periods]

        expected: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        paid: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        if period_ids:
            for charge in self.session.execute(
                select(HousePeriodCharge).where(
                    HousePeriodCharge.house_id == house_id,
                    HousePeriodCharge.period_id.in_(period_ids),
                )
            ).scalars():
                expected[charge.period_id] += charge.amount_due
            for period_id, amount in self.session.execute(
                select(PaymentAllocation.period_id, PaymentAllocation.allocated_amount)
                .where(
                    PaymentAllocation.house_id == house_id,
                    PaymentAllocation.period_id.in_(period_ids),
                )
            ):
                paid[period_id] += amount

        return HousePaymentHistory(
            house_id=house_id,
            house_number=house.number_house,
            periods=tuple(
                PeriodPaymentSummary(
                    period_id=period.id,
                    period_label=period.label,
                    expected=expected[period.id],
                    paid=paid[period.id],
                )
                for period in periods
            ),
        )

    def _require_house(self, house_id: UUID) -> House:
        house = self.session.get(House, house_id)
        if house is None:
            raise HouseNotFoundError(str(house_id))
        return house
