"""
HouseBalanceService -- per-house balance lock, debit recompute and reads.

Responsibility:
    Owns the HouseBalance row of each house: creating it on first use,
    locking it so allocation work for one house is serialized, recomputing
    the debit from materialized charges and exposing the balance and the
    per-period payment detail.

Architecture position:
    Kernel > Services -- imperative shell.  The allocation and credit
    services call ``lock_balance`` before touching charges or allocations.

Invariants enforced:
    - Single writer per house: ``lock_balance`` reads the row with
      ``SELECT ... FOR UPDATE``.  A first-use insert race is resolved with
      a SAVEPOINT and an IntegrityError retry.
    - debit_balance = sum of outstanding materialized charges in periods
      starting on or before the clock's date.  Charges of later periods
      (materialized by lookahead) are not yet owed.
    - A condoned charge owes nothing (HousePeriodCharge.amount_due).
    - House status precedence: in-debt over credited over balanced.

Failure modes:
    - HouseNotFoundError for unknown house ids.
    - UnknownPeriodError from get_period_details for unknown periods.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from condo_kernel.domain.payments import (
    ConceptPaymentDetail,
    ConceptType,
    HouseBalanceInfo,
    HouseStatus,
    concept_rank,
)
from condo_kernel.exceptions import HouseNotFoundError, UnknownPeriodError
from condo_kernel.logging_config import get_logger
from condo_kernel.models.balance import HouseBalance, PaymentAllocation
from condo_kernel.models.house import House
from condo_kernel.models.period import HousePeriodCharge, Period
from condo_kernel.services.base import BaseService

logger = get_logger("services.balance")

ZERO = Decimal("0")


class HouseBalanceService(BaseService[HouseBalance]):
    """
    House balance access.

    Contract:
        ``lock_balance`` must be the first statement of any unit of work
        that changes a house's money.

    Guarantees:
        - ``get_house_balance`` returns zeros for a house never paid into.
        - ``recompute_debit`` is derived, never accumulated.

    Non-goals:
        - Does NOT distribute money; see the allocation service.
    """

    def lock_balance(self, house_id: UUID) -> HouseBalance:
        """Get-or-create the HouseBalance row and hold its row lock."""
        balance = self._select_for_update(house_id)
        if balance is not None:
            return balance

        savepoint = self.session.begin_nested()
        try:
            balance = HouseBalance(
                house_id=house_id,
                accumulated_cents=ZERO,
                credit_balance=ZERO,
                debit_balance=ZERO,
            )
            self.session.add(balance)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            logger.debug(
                "house_balance_race_retry",
                extra={"house_id": str(house_id)},
            )
            savepoint.rollback()
            self.session.expire_all()
            balance = self._select_for_update(house_id)
            if balance is None:
                raise
        return balance

    def recompute_debit(self, house_id: UUID, as_of: date | None = None) -> Decimal:
        """
        Outstanding amount of materialized charges in periods starting on
        or before ``as_of`` (default: today).
        """
        return sum(
            (owed for _, owed in self._outstanding_charges(house_id, as_of)),
            ZERO,
        )

    def periods_in_arrears(self, house_id: UUID, as_of: date | None = None) -> list[Period]:
        """Periods up to ``as_of`` with an outstanding charge, oldest first."""
        periods = {
            period.id: period
            for period, _ in self._outstanding_charges(house_id, as_of)
        }
        return sorted(periods.values(), key=lambda p: p.start_date)

    def allocated_totals(
        self,
        house_id: UUID,
        period_ids: set[UUID] | None = None,
    ) -> dict[tuple[UUID, str], Decimal]:
        """Sum of allocations per (period_id, concept_type)."""
        stmt = select(
            PaymentAllocation.period_id,
            PaymentAllocation.concept_type,
            PaymentAllocation.allocated_amount,
        ).where(PaymentAllocation.house_id == house_id)
        if period_ids is not None:
            if not period_ids:
                return {}
            stmt = stmt.where(PaymentAllocation.period_id.in_(period_ids))

        totals: dict[tuple[UUID, str], Decimal] = defaultdict(lambda: ZERO)
        for period_id, concept_type, amount in self.session.execute(stmt):
            totals[(period_id, concept_type)] += amount
        return dict(totals)

    def get_house_balance(self, house_id: UUID) -> HouseBalanceInfo:
        house = self.session.get(House, house_id)
        if house is None:
            raise HouseNotFoundError(str(house_id))

        balance = self.session.execute(
            select(HouseBalance).where(HouseBalance.house_id == house_id)
        ).scalar_one_or_none()

        if balance is None:
            cents = credit = debit = ZERO
        else:
            cents = balance.accumulated_cents
            credit = balance.credit_balance
            debit = balance.debit_balance

        return HouseBalanceInfo(
            house_id=house_id,
            house_number=house.number_house,
            accumulated_cents=cents,
            credit_balance=credit,
            debit_balance=debit,
            net_balance=credit - debit,
            status=HouseStatus.classify(debit, credit),
        )

    def get_period_details(
        self,
        house_id: UUID,
        period_id: UUID | None = None,
    ) -> list[ConceptPaymentDetail]:
        """
        Expected vs paid per concept for every period with a materialized
        charge (or only ``period_id``), oldest period first.
        """
        if self.session.get(House, house_id) is None:
            raise HouseNotFoundError(str(house_id))
        if period_id is not None and self.session.get(Period, period_id) is None:
            raise UnknownPeriodError(str(period_id))

        stmt = (
            select(HousePeriodCharge, Period)
            .join(Period, Period.id == HousePeriodCharge.period_id)
            .where(HousePeriodCharge.house_id == house_id)
        )
        if period_id is not None:
            stmt = stmt.where(HousePeriodCharge.period_id == period_id)
        rows = self.session.execute(stmt).all()

        paid = self.allocated_totals(house_id, {p.id for _, p in rows})
        details = [
            ConceptPaymentDetail(
                period_id=period.id,
                period_label=period.label,
                concept_type=ConceptType(charge.concept_type),
                expected_amount=charge.amount_due,
                paid_amount=paid.get((period.id, charge.concept_type), ZERO),
            )
            for charge, period in rows
        ]
        start_by_period = {p.id: p.start_date for _, p in rows}
        details.sort(
            key=lambda d: (start_by_period[d.period_id], concept_rank(d.concept_type))
        )
        return details

    def _outstanding_charges(
        self,
        house_id: UUID,
        as_of: date | None,
    ) -> list[tuple[Period, Decimal]]:
        as_of = as_of or self.clock.today()
        rows = self.session.execute(
            select(HousePeriodCharge, Period)
            .join(Period, Period.id == HousePeriodCharge.period_id)
            .where(
                HousePeriodCharge.house_id == house_id,
                Period.start_date <= as_of,
            )
        ).all()
        if not rows:
            return []

        paid = self.allocated_totals(house_id, {p.id for _, p in rows})
        outstanding = []
        for charge, period in rows:
            owed = charge.amount_due - paid.get((period.id, charge.concept_type), ZERO)
            if owed > 0:
                outstanding.append((period, owed))
        return outstanding

    def _select_for_update(self, house_id: UUID) -> HouseBalance | None:
        return self.session.execute(
            select(HouseBalance)
            .where(HouseBalance.house_id == house_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
