"""
condo_services.charge_adjustment_service -- Operator corrections to charges.

Responsibility:
    Two operator actions on the expected charges of a house: recording a
    debt the house carried before it was managed here (initial debt), and
    forgiving a late-payment penalty (condonation).  Both leave the
    house's debit balance recomputed.

Architecture position:
    Services -- stateful orchestration over the kernel PeriodService and
    HouseBalanceService.

Invariants enforced:
    - Charges stay append-only: an initial debt is a new charge with
      source ``manual``, and a condonation stamps ``condoned_at`` on the
      penalty charge instead of deleting it.
    - Only a penalty that received no money can be condoned, and only once.
    - Initial debts are positive whole amounts and never replace a charge
      that already exists.
    - Runs under the house balance row lock, inside one SAVEPOINT.

Failure modes:
    - HouseNotFoundError, UnknownPeriodError.
    - InvalidAmountError for a non-positive or fractional initial debt.
    - ChargeAlreadyExistsError when the concept is already charged.
    - ChargeNotFoundError when the period has no penalty to condone.
    - ChargeAlreadyCondonedError, PenaltyAlreadyPaidError.

Audit relevance:
    ``initial_debt_set`` and ``penalty_condoned`` carry the actor, and the
    charge keeps ``created_by_id`` / ``condoned_by_id``.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from condo_kernel.db.types import is_whole_units
from condo_kernel.domain.clock import Clock, SystemClock
from condo_kernel.domain.payments import (
    ChargeAdjustment,
    ChargeFallbacks,
    ChargeSource,
    ConceptType,
)
from condo_kernel.domain.sentinels import SYSTEM_USER_ID
from condo_kernel.exceptions import (
    ChargeAlreadyCondonedError,
    ChargeAlreadyExistsError,
    ChargeNotFoundError,
    HouseNotFoundError,
    InvalidAmountError,
    PenaltyAlreadyPaidError,
)
from condo_kernel.logging_config import LogContext, get_logger
from condo_kernel.models.house import House
from condo_kernel.models.period import HousePeriodCharge
from condo_kernel.services.balance_service import HouseBalanceService
from condo_kernel.services.period_service import PeriodService

logger = get_logger("services.charge_adjustment")


class ChargeAdjustmentService:
    """
    Initial debt and penalty condonation.

    Contract:
        Both actions return the adjusted charge figures together with the
        house's debit balance after the adjustment.
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
        self.periods = period_service or PeriodService(
            session, self.clock, fallbacks or ChargeFallbacks(),
        )
        self.balances = balance_service or HouseBalanceService(session, self.clock)

    def set_initial_debt(
        self,
        house_id: UUID,
        year: int,
        month: int,
        amount: Decimal,
        concept_type: ConceptType = ConceptType.MAINTENANCE,
        actor_id: UUID = SYSTEM_USER_ID,
    ) -> ChargeAdjustment:
        """
        Record what the house owed for one concept of a (possibly past)
        period.  The period is created if missing.
        """
        if amount <= 0 or not is_whole_units(amount):
            raise InvalidAmountError(str(amount), field="initial_debt")

        with LogContext.bind(house_id=house_id, actor_id=actor_id):
            with self.session.begin_nested():
                self._require_house(house_id)
                balance = self.balances.lock_balance(house_id)
                period = self.periods.ensure_period(year, month, actor_id)

                existing = self.periods.find_charge(house_id, period.id, concept_type)
                if existing is not None:
                    raise ChargeAlreadyExistsError(
                        str(existing.id), concept_type.value, str(existing.expected_amount),
                    )

                self.session.add(HousePeriodCharge(
                    house_id=house_id,
                    period_id=period.id,
                    concept_type=concept_type.value,
                    expected_amount=amount,
                    source=ChargeSource.MANUAL.value,
                    created_by_id=actor_id,
                ))
                self.session.flush()

                balance.debit_balance = self.balances.recompute_debit(house_id)
                self.session.flush()

            logger.info(
                "initial_debt_set",
                extra={
                    "period": period.label,
                    "concept_type": concept_type.value,
                    "amount": str(amount),
                    "debit_balance": str(balance.debit_balance),
                },
            )

        return ChargeAdjustment(
            house_id=house_id,
            period_id=period.id,
            period_label=period.label,
            concept_type=concept_type,
            amount=amount,
            debit_balance=balance.debit_balance,
        )

    def condone_penalty(
        self,
        house_id: UUID,
        period_id: UUID,
        actor_id: UUID = SYSTEM_USER_ID,
    ) -> ChargeAdjustment:
        """Forgive the unpaid late-payment penalty of one period."""
        with LogContext.bind(house_id=house_id, actor_id=actor_id):
            with self.session.begin_nested():
                self._require_house(house_id)
                balance = self.balances.lock_balance(house_id)
                period = self.periods.get_period(period_id)

                penalty = self.periods.find_charge(house_id, period_id, ConceptType.PENALTIES)
                if penalty is None:
                    raise ChargeNotFoundError(
                        str(house_id), period.label, ConceptType.PENALTIES.value,
                    )
                if penalty.condoned_at is not None:
                    raise ChargeAlreadyCondonedError(str(penalty.id))
                paid = self.periods.paid_for(house_id, period_id, ConceptType.PENALTIES)
                if paid > 0:
                    raise PenaltyAlreadyPaidError(str(penalty.id), str(paid))

                penalty.condoned_at = self.clock.now()
                penalty.condoned_by_id = actor_id
                penalty.updated_by_id = actor_id
                self.session.flush()

                balance.debit_balance = self.balances.recompute_debit(house_id)
                self.session.flush()

            logger.info(
                "penalty_condoned",
                extra={
                    "period": period.label,
                    "charge_id": str(penalty.id),
                    "amount": str(penalty.expected_amount),
                    "debit_balance": str(balance.debit_balance),
                },
            )

        return ChargeAdjustment(
            house_id=house_id,
            period_id=period.id,
            period_label=period.label,
            concept_type=ConceptType.PENALTIES,
            amount=penalty.expected_amount,
            debit_balance=balance.debit_balance,
        )

    def _require_house(self, house_id: UUID) -> House:
        house = self.session.get(House, house_id)
        if house is None:
            raise HouseNotFoundError(str(house_id))
        return house
