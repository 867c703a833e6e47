"""
condo_services.credit_service -- Apply accumulated credit to unpaid maintenance.

Responsibility:
    When a house's credit balance reaches the configured threshold, uses it
    to pay the maintenance charge of its periods, oldest first.

Architecture position:
    Services -- stateful orchestration over kernel services.

Invariants enforced:
    - Runs under the house balance row lock, inside one SAVEPOINT.
    - Only whole credit is applied and only to maintenance.
    - Idempotent per period: a period whose maintenance already received a
      credit application is skipped.
    - Credit allocations carry SYSTEM_RECORD_ID as their record id.

Failure modes:
    - HouseNotFoundError for unknown houses.
    - PeriodConfigNotFoundError when a period's maintenance charge cannot
      be derived.

Audit relevance:
    ``credit_applied`` records credit before and after and the number of
    periods covered.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from condo_kernel.db.types import ZERO
from condo_kernel.domain.clock import Clock, SystemClock
from condo_kernel.domain.payments import (
    AllocationDetail,
    ChargeFallbacks,
    ConceptType,
    CreditApplicationResult,
    PaymentStatus,
)
from condo_kernel.domain.sentinels import SYSTEM_RECORD_ID
from condo_kernel.exceptions import HouseNotFoundError
from condo_kernel.logging_config import get_logger
from condo_kernel.models.balance import PaymentAllocation
from condo_kernel.models.house import House
from condo_kernel.models.period import Period
from condo_kernel.services.balance_service import HouseBalanceService
from condo_kernel.services.period_service import PeriodService

logger = get_logger("services.credit")


class CreditApplicationService:
    """
    Credit auto-application.

    Contract:
        ``apply_credit_to_periods(house_id)`` is safe to call after every
        allocation; below the threshold it changes nothing and says why.

    Non-goals:
        - Does NOT apply credit to water, extraordinary fees or penalties.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        fallbacks: ChargeFallbacks | None = None,
        period_service: PeriodService | None = None,
        balance_service: HouseBalanceService | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.fallbacks = fallbacks or ChargeFallbacks()
        self.periods = period_service or PeriodService(session, self.clock, self.fallbacks)
        self.balances = balance_service or HouseBalanceService(session, self.clock)

    def apply_credit_to_periods(self, house_id: UUID) -> CreditApplicationResult:
        if self.session.get(House, house_id) is None:
            raise HouseNotFoundError(str(house_id))

        with self.session.begin_nested():
            result = self._apply(house_id)

        if result.skipped_reason is not None:
            logger.debug(
                "credit_application_skipped",
                extra={
                    "house_id": str(house_id),
                    "credit_balance": str(result.credit_before),
                    "reason": result.skipped_reason,
                },
            )
        else:
            logger.info(
                "credit_applied",
                extra={
                    "house_id": str(house_id),
                    "credit_before": str(result.credit_before),
                    "credit_after": str(result.credit_after),
                    "total_applied": str(result.total_applied),
                    "periods_covered": result.periods_covered,
                    "periods_partially_covered": result.periods_partially_covered,
                },
            )
        return result

    def _threshold(self) -> Decimal:
        config = self.periods.find_config_for_date(self.clock.today())
        if config is None:
            return self.fallbacks.cents_credit_threshold
        return config.cents_credit_threshold

    def _apply(self, house_id: UUID) -> CreditApplicationResult:
        balance = self.balances.lock_balance(house_id)
        credit_before = balance.credit_balance
        threshold = self._threshold()

        if credit_before <= 0 or credit_before < threshold:
            return CreditApplicationResult(
                house_id=house_id,
                credit_before=credit_before,
                credit_after=credit_before,
                total_applied=ZERO,
                allocations=(),
                periods_covered=0,
                periods_partially_covered=0,
                skipped_reason=f"Credit {credit_before} below threshold {threshold}",
            )

        already_applied = set(
            self.session.execute(
                select(PaymentAllocation.period_id).where(
                    PaymentAllocation.house_id == house_id,
                    PaymentAllocation.record_id == SYSTEM_RECORD_ID,
                    PaymentAllocation.concept_type == ConceptType.MAINTENANCE.value,
                )
            ).scalars()
        )
        periods = list(
            self.session.execute(select(Period).order_by(Period.start_date)).scalars()
        )

        remaining = credit_before
        details: list[AllocationDetail] = []
        covered = partial = 0
        for period in periods:
            if remaining <= 0:
                break
            if period.id in already_applied:
                continue

            maintenance = next(
                (
                    c for c in self.periods.expected_charges(house_id, period)
                    if c.concept_type == ConceptType.MAINTENANCE.value
                ),
                None,
            )
            if maintenance is None:
                continue
            paid = self.balances.allocated_totals(house_id, {period.id}).get(
                (period.id, ConceptType.MAINTENANCE.value), ZERO,
            )
            outstanding = maintenance.amount_due - paid
            if outstanding <= 0:
                continue

            take = min(remaining, outstanding)
            status = PaymentStatus.derive(take, outstanding)
            self.session.add(PaymentAllocation(
                record_id=SYSTEM_RECORD_ID,
                house_id=house_id,
                period_id=period.id,
                concept_type=ConceptType.MAINTENANCE.value,
                allocated_amount=take,
                expected_amount=outstanding,
                payment_status=status.value,
            ))
            details.append(AllocationDetail(
                period_id=period.id,
                period_label=period.label,
                concept_type=ConceptType.MAINTENANCE,
                allocated_amount=take,
                expected_amount=outstanding,
                payment_status=status,
            ))
            remaining -= take
            if status is PaymentStatus.COMPLETE:
                covered += 1
            else:
                partial += 1

        total_applied = credit_before - remaining
        balance.credit_balance = remaining
        self.session.flush()

        if details:
            balance.debit_balance = self.balances.recompute_debit(house_id)
            self.session.flush()

        return CreditApplicationResult(
            house_id=house_id,
            credit_before=credit_before,
            credit_after=remaining,
            total_applied=total_applied,
            allocations=tuple(details),
            periods_covered=covered,
            periods_partially_covered=partial,
            skipped_reason=None if details else "No unpaid maintenance charges",
        )
