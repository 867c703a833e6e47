"""
condo_services.allocation_service -- Distribute a confirmed payment to a house.

Responsibility:
    Turns one confirmed amount into PaymentAllocation rows: locks the
    house balance, collects the allocation window (earlier periods still
    owing money, the target period and a bounded run of later periods),
    asks the allocation engine for a plan and persists it together with
    the balance deltas.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes ``condo_engines.allocation.PaymentAllocationEngine`` with the
    kernel PeriodService and HouseBalanceService.

Invariants enforced:
    - Single writer per house: the HouseBalance row lock is taken before
      any charge or allocation is read.
    - Atomic distribution: the whole allocation runs inside one SAVEPOINT;
      if any step raises, no allocation row and no balance delta survives.
    - Conservation: allocated + surplus credit + cents added == amount
      (checked by the engine before anything is written).
    - Arrears first: earlier periods with outstanding materialized charges
      are always in the window, so a payment never skips older debt.
    - Debit is recomputed from charges as of the clock's date after the
      allocation, never accumulated, whichever period was targeted.

Failure modes:
    - NonPositiveAllocationError for amount <= 0.
    - HouseNotFoundError for unknown houses.
    - UnknownPeriodError for an explicit period id that does not exist.
    - PeriodConfigNotFoundError when a period's charges cannot be derived.

Audit relevance:
    Every row carries the payment record id, the outstanding amount at the
    time of payment and the derived status.  ``allocation_completed`` logs
    the full split.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from condo_engines.allocation import AllocationPlan, ChargeLine, PaymentAllocationEngine
from condo_kernel.db.types import ZERO
from condo_kernel.domain.clock import Clock, SystemClock
from condo_kernel.domain.payments import (
    AllocationDetail,
    AllocationOutcome,
    ChargeFallbacks,
    ConceptType,
)
from condo_kernel.exceptions import HouseNotFoundError, NonPositiveAllocationError
from condo_kernel.logging_config import get_logger
from condo_kernel.models.balance import PaymentAllocation
from condo_kernel.models.house import House
from condo_kernel.models.period import Period
from condo_kernel.services.balance_service import HouseBalanceService
from condo_kernel.services.period_service import PeriodService

logger = get_logger("services.allocation")


class AllocationService:
    """
    FIFO payment distribution for one house.

    Contract:
        ``allocate(house_id, amount, record_id)`` distributes ``amount``
        oldest period first over the earlier periods still owing money,
        the target period and at most ``max_periods`` later periods that
        already exist.  The target is ``period_id`` when given, else the
        period of ``payment_date`` (created when a config covers it), else
        the current period.

    Guarantees:
        - Either every allocation row and balance change is written, or
          none is.
        - Returns the resulting balance figures so callers need not re-read.

    Non-goals:
        - Does NOT decide which house a deposit belongs to.
        - Does NOT create future periods; lookahead covers existing ones.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        fallbacks: ChargeFallbacks | None = None,
        period_service: PeriodService | None = None,
        balance_service: HouseBalanceService | None = None,
        engine: PaymentAllocationEngine | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.fallbacks = fallbacks or ChargeFallbacks()
        self.periods = period_service or PeriodService(session, self.clock, self.fallbacks)
        self.balances = balance_service or HouseBalanceService(session, self.clock)
        self.engine = engine or PaymentAllocationEngine()

    def allocate(
        self,
        house_id: UUID,
        amount: Decimal,
        record_id: UUID,
        period_id: UUID | None = None,
        payment_date: date | None = None,
    ) -> AllocationOutcome:
        if amount <= 0:
            raise NonPositiveAllocationError(str(amount))

        with self.session.begin_nested():
            outcome = self._allocate(
                house_id, amount, record_id, period_id, payment_date,
            )

        logger.info(
            "allocation_completed",
            extra={
                "house_id": str(house_id),
                "record_id": str(record_id),
                "amount": str(amount),
                "total_allocated": str(outcome.total_allocated),
                "surplus_credit": str(outcome.surplus_credit),
                "cents_added": str(outcome.cents_added),
                "cents_converted": str(outcome.cents_converted),
                "allocation_count": len(outcome.allocations),
                "debit_balance": str(outcome.debit_balance),
            },
        )
        return outcome

    # =========================================================================
    # Internals
    # =========================================================================

    def _allocate(
        self,
        house_id: UUID,
        amount: Decimal,
        record_id: UUID,
        period_id: UUID | None,
        payment_date: date | None,
    ) -> AllocationOutcome:
        if self.session.get(House, house_id) is None:
            raise HouseNotFoundError(str(house_id))

        balance = self.balances.lock_balance(house_id)

        target = self._target_period(period_id, payment_date)
        window = self._window(house_id, target)

        plan = self.engine.plan(
            amount,
            self._charge_lines(house_id, window),
            balance.accumulated_cents,
        )

        details = self._persist(house_id, record_id, plan)

        balance.accumulated_cents = plan.accumulated_cents_after
        balance.credit_balance = balance.credit_balance + plan.credit_increase
        self.session.flush()

        balance.debit_balance = self.balances.recompute_debit(house_id)
        self.session.flush()

        return AllocationOutcome(
            house_id=house_id,
            record_id=record_id,
            amount=amount,
            total_allocated=plan.total_allocated,
            surplus_credit=plan.surplus_credit,
            cents_added=plan.cents_added,
            cents_converted=plan.cents_converted,
            accumulated_cents=balance.accumulated_cents,
            credit_balance=balance.credit_balance,
            debit_balance=balance.debit_balance,
            allocations=details,
        )

    def _target_period(self, period_id: UUID | None, payment_date: date | None) -> Period:
        if period_id is not None:
            return self.periods.get_period(period_id)
        if payment_date is not None:
            period = self.periods.find_period(payment_date.year, payment_date.month)
            if period is None and self.periods.find_config_for_date(
                payment_date.replace(day=1)
            ) is not None:
                period = self.periods.ensure_period(payment_date.year, payment_date.month)
            if period is not None:
                return period
            logger.warning(
                "payment_period_unavailable",
                extra={"payment_date": str(payment_date)},
            )
        return self.periods.current_period()

    def _window(self, house_id: UUID, target: Period) -> list[Period]:
        """Arrears, target and lookahead periods, oldest first, no repeats."""
        by_id = {p.id: p for p in self.balances.periods_in_arrears(house_id)}
        by_id[target.id] = target
        for period in self.periods.periods_after(
            target, self.fallbacks.max_periods_for_distribution,
        ):
            by_id[period.id] = period
        return sorted(by_id.values(), key=lambda p: p.start_date)

    def _charge_lines(self, house_id: UUID, periods: list[Period]) -> list[ChargeLine]:
        charges_by_period = {
            period.id: self.periods.expected_charges(house_id, period)
            for period in periods
        }
        paid = self.balances.allocated_totals(house_id, set(charges_by_period))

        lines = []
        for period in periods:
            for charge in charges_by_period[period.id]:
                lines.append(ChargeLine(
                    period_id=period.id,
                    period_label=period.label,
                    period_start=period.start_date,
                    concept_type=ConceptType(charge.concept_type),
                    expected_amount=charge.amount_due,
                    already_paid=paid.get((period.id, charge.concept_type), ZERO),
                ))
        return lines

    def _persist(
        self,
        house_id: UUID,
        record_id: UUID,
        plan: AllocationPlan,
    ) -> tuple[AllocationDetail, ...]:
        details = []
        for line in plan.lines:
            self.session.add(PaymentAllocation(
                record_id=record_id,
                house_id=house_id,
                period_id=line.period_id,
                concept_type=line.concept_type.value,
                allocated_amount=line.allocated_amount,
                expected_amount=line.expected_amount,
                payment_status=line.payment_status.value,
            ))
            details.append(AllocationDetail(
                period_id=line.period_id,
                period_label=line.period_label,
                concept_type=line.concept_type,
                allocated_amount=line.allocated_amount,
                expected_amount=line.expected_amount,
                payment_status=line.payment_status,
            ))
        if details:
            self.session.flush()
        return tuple(details)
