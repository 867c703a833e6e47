"""
PeriodService -- billing periods, charge configuration and expected charges.

Responsibility:
    Owns the period calendar, the effective-dated PeriodConfig history,
    per-house overrides and the lazy materialization of HousePeriodCharge
    rows.  Also assesses late penalties.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the allocation and
    credit services before any money is distributed.

Invariants enforced:
    - Expected-charge precedence: override > period-config default >
      hard-coded fallback (ChargeFallbacks).
    - Water and extraordinary fee are charged only when the period's flag
      is set.  Penalty charges exist only through assess_late_penalty.
    - Charges are materialized once; an existing row is never rewritten.
    - At most one active PeriodConfig is open-ended: creating a config
      closes the prior open-ended one to ``effective_from - 1 day``.

Failure modes:
    - UnknownPeriodError for an unknown period id.
    - PeriodConfigNotFoundError when no active config covers a period's
      start date and charges must be derived.
    - InvalidPeriodConfigError for inverted ranges, negative amounts,
      fractional charge amounts or a
      config that would start on or before the open-ended one it closes.
    - ImmutabilityViolationError when overriding a charge already
      materialized.

Audit relevance:
    Every materialized charge records its source, and config closures are
    logged as ``period_config_closed``.
"""

import calendar
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from condo_kernel.db.types import is_whole_units
from condo_kernel.domain.clock import Clock
from condo_kernel.domain.payments import (
    CONCEPT_PRIORITY,
    ChargeFallbacks,
    ChargeSource,
    ConceptType,
    concept_rank,
)
from condo_kernel.domain.sentinels import SYSTEM_USER_ID
from condo_kernel.exceptions import (
    ImmutabilityViolationError,
    InvalidPeriodConfigError,
    PeriodConfigNotFoundError,
    UnknownPeriodError,
)
from condo_kernel.logging_config import get_logger
from condo_kernel.models.balance import PaymentAllocation
from condo_kernel.models.period import (
    HousePeriodCharge,
    HousePeriodOverride,
    Period,
    PeriodConfig,
)
from condo_kernel.services.base import BaseService

logger = get_logger("services.period")


def period_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of a month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


class PeriodService(BaseService[Period]):
    """
    Period calendar and expected-charge derivation.

    Contract:
        ``expected_charges(house_id, period)`` returns the materialized
        charges of the house for the period, materializing the missing
        ones first.  Callers hold the house's balance lock.

    Guarantees:
        - Charge rows are created at most once per (house, period, concept).
        - ``ensure_period`` is idempotent.

    Non-goals:
        - Does NOT distribute money; see the allocation service.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        fallbacks: ChargeFallbacks | None = None,
    ):
        super().__init__(session, clock)
        self.fallbacks = fallbacks or ChargeFallbacks()

    # =========================================================================
    # Periods
    # =========================================================================

    def get_period(self, period_id: UUID) -> Period:
        period = self.session.get(Period, period_id)
        if period is None:
            raise UnknownPeriodError(str(period_id))
        return period

    def find_period(self, year: int, month: int) -> Period | None:
        return self.session.execute(
            select(Period).where(Period.year == year, Period.month == month)
        ).scalar_one_or_none()

    def ensure_period(
        self,
        year: int,
        month: int,
        actor_id: UUID = SYSTEM_USER_ID,
    ) -> Period:
        """
        Return the (year, month) period, creating it if missing.

        A new period takes its concept flags from the config governing its
        start date: water and extraordinary fee are active when that config
        sets a positive default for them.
        """
        if not 1 <= month <= 12:
            raise UnknownPeriodError(f"{year:04d}-{month:02d}")

        period = self.find_period(year, month)
        if period is not None:
            return period

        start_date, end_date = period_bounds(year, month)
        config = self.find_config_for_date(start_date)
        water_active = bool(config and (config.default_water_amount or 0) > 0)
        extraordinary_active = bool(
            config and (config.default_extraordinary_fee_amount or 0) > 0
        )

        savepoint = self.session.begin_nested()
        try:
            period = Period(
                year=year,
                month=month,
                start_date=start_date,
                end_date=end_date,
                water_active=water_active,
                extraordinary_fee_active=extraordinary_active,
                created_by_id=actor_id,
            )
            self.session.add(period)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            return self.session.execute(
                select(Period).where(Period.year == year, Period.month == month)
            ).scalar_one()

        logger.info(
            "period_created",
            extra={
                "period": period.label,
                "water_active": water_active,
                "extraordinary_fee_active": extraordinary_active,
            },
        )
        return period

    def current_period(self) -> Period:
        """The period containing the clock's date, created if missing."""
        today = self.clock.today()
        return self.ensure_period(today.year, today.month)

    def set_concept_flags(
        self,
        period_id: UUID,
        water_active: bool,
        extraordinary_fee_active: bool,
        actor_id: UUID = SYSTEM_USER_ID,
    ) -> Period:
        """
        Toggle the water / extraordinary fee flags of a period.

        Only affects charges materialized afterwards.
        """
        period = self.get_period(period_id)
        period.water_active = water_active
        period.extraordinary_fee_active = extraordinary_fee_active
        period.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "period_flags_updated",
            extra={
                "period": period.label,
                "water_active": water_active,
                "extraordinary_fee_active": extraordinary_fee_active,
            },
        )
        return period

    def periods_after(self, period: Period, limit: int) -> list[Period]:
        """Existing periods strictly after ``period``, oldest first."""
        return list(
            self.session.execute(
                select(Period)
                .where(Period.start_date > period.start_date)
                .order_by(Period.start_date)
                .limit(limit)
            ).scalars()
        )

    # =========================================================================
    # Configuration
    # =========================================================================

    def create_period_config(
        self,
        effective_from: date,
        *,
        effective_until: date | None = None,
        default_maintenance_amount: Decimal | None = None,
        default_water_amount: Decimal | None = None,
        default_extraordinary_fee_amount: Decimal | None = None,
        payment_due_day: int | None = None,
        late_payment_penalty_amount: Decimal | None = None,
        cents_credit_threshold: Decimal | None = None,
        actor_id: UUID = SYSTEM_USER_ID,
    ) -> PeriodConfig:
        """
        Create an active config, closing the prior open-ended one.

        Unset due day, penalty and threshold take the fallback values.
        Unset default amounts stay null and resolve to the fallback at
        charge derivation time.
        """
        if effective_until is not None and effective_until < effective_from:
            raise InvalidPeriodConfigError(
                f"effective_until {effective_until} precedes "
                f"effective_from {effective_from}"
            )
        for name, value in (
            ("default_maintenance_amount", default_maintenance_amount),
            ("default_water_amount", default_water_amount),
            ("default_extraordinary_fee_amount", default_extraordinary_fee_amount),
            ("late_payment_penalty_amount", late_payment_penalty_amount),
            ("cents_credit_threshold", cents_credit_threshold),
        ):
            if value is not None and value < 0:
                raise InvalidPeriodConfigError(f"{name} must not be negative")
        for name, value in (
            ("default_maintenance_amount", default_maintenance_amount),
            ("default_water_amount", default_water_amount),
            ("default_extraordinary_fee_amount", default_extraordinary_fee_amount),
            ("late_payment_penalty_amount", late_payment_penalty_amount),
        ):
            if value is not None and not is_whole_units(value):
                raise InvalidPeriodConfigError(f"{name} must be a whole amount")
        due_day = payment_due_day or self.fallbacks.payment_due_day
        if not 1 <= due_day <= 31:
            raise InvalidPeriodConfigError(f"payment_due_day {due_day} out of range")

        open_configs = self.session.execute(
            select(PeriodConfig)
            .where(
                PeriodConfig.is_active.is_(True),
                PeriodConfig.effective_until.is_(None),
            )
            .with_for_update()
        ).scalars().all()

        for prior in open_configs:
            if prior.effective_from >= effective_from:
                raise InvalidPeriodConfigError(
                    f"new config starting {effective_from} does not follow "
                    f"open-ended config starting {prior.effective_from}"
                )
            prior.effective_until = effective_from - timedelta(days=1)
            prior.updated_by_id = actor_id
            logger.info(
                "period_config_closed",
                extra={
                    "config_id": str(prior.id),
                    "effective_from": prior.effective_from,
                    "effective_until": prior.effective_until,
                },
            )

        config = PeriodConfig(
            effective_from=effective_from,
            effective_until=effective_until,
            default_maintenance_amount=default_maintenance_amount,
            default_water_amount=default_water_amount,
            default_extraordinary_fee_amount=default_extraordinary_fee_amount,
            payment_due_day=due_day,
            late_payment_penalty_amount=(
                late_payment_penalty_amount
                if late_payment_penalty_amount is not None
                else self.fallbacks.late_payment_penalty_amount
            ),
            cents_credit_threshold=(
                cents_credit_threshold
                if cents_credit_threshold is not None
                else self.fallbacks.cents_credit_threshold
            ),
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(config)
        self.session.flush()

        logger.info(
            "period_config_created",
            extra={
                "config_id": str(config.id),
                "effective_from": effective_from,
                "effective_until": effective_until,
            },
        )
        return config

    def find_config_for_date(self, as_of: date) -> PeriodConfig | None:
        """The active config covering ``as_of``; latest start wins."""
        return self.session.execute(
            select(PeriodConfig)
            .where(
                PeriodConfig.is_active.is_(True),
                PeriodConfig.effective_from <= as_of,
                (PeriodConfig.effective_until.is_(None))
                | (PeriodConfig.effective_until >= as_of),
            )
            .order_by(PeriodConfig.effective_from.desc())
            .limit(1)
        ).scalar_one_or_none()

    def require_config_for_date(self, as_of: date) -> PeriodConfig:
        config = self.find_config_for_date(as_of)
        if config is None:
            raise PeriodConfigNotFoundError(as_of.isoformat())
        return config

    # =========================================================================
    # Overrides and expected charges
    # =========================================================================

    def set_override(
        self,
        house_id: UUID,
        period_id: UUID,
        concept_type: ConceptType,
        custom_amount: Decimal,
        reason: str | None = None,
        actor_id: UUID = SYSTEM_USER_ID,
    ) -> HousePeriodOverride:
        """Set the custom amount one house owes for one concept of a period."""
        if custom_amount < 0:
            raise InvalidPeriodConfigError("override amount must not be negative")
        if not is_whole_units(custom_amount):
            raise InvalidPeriodConfigError("override amount must be a whole amount")
        self.get_period(period_id)

        existing_charge = self.find_charge(house_id, period_id, concept_type)
        if existing_charge is not None:
            raise ImmutabilityViolationError(
                entity_type="HousePeriodCharge",
                entity_id=str(existing_charge.id),
                reason="Expected charge already materialized; override has no effect",
            )

        override = self.session.execute(
            select(HousePeriodOverride).where(
                HousePeriodOverride.house_id == house_id,
                HousePeriodOverride.period_id == period_id,
                HousePeriodOverride.concept_type == concept_type.value,
            )
        ).scalar_one_or_none()

        if override is None:
            override = HousePeriodOverride(
                house_id=house_id,
                period_id=period_id,
                concept_type=concept_type.value,
                custom_amount=custom_amount,
                reason=reason,
                created_by_id=actor_id,
            )
            self.session.add(override)
        else:
            override.custom_amount = custom_amount
            override.reason = reason
            override.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "house_period_override_set",
            extra={
                "house_id": str(house_id),
                "period_id": str(period_id),
                "concept_type": concept_type.value,
                "custom_amount": custom_amount,
            },
        )
        return override

    def expected_charges(self, house_id: UUID, period: Period) -> list[HousePeriodCharge]:
        """
        Materialized charges of a house for a period, in concept priority
        order.  Missing charges are derived and written first.  A period
        that already holds manual charges and has no config keeps just
        those.
        """
        existing = {
            charge.concept_type: charge
            for charge in self._charges_for(house_id, period.id)
        }

        missing = [
            concept
            for concept in CONCEPT_PRIORITY
            if concept.value not in existing and concept is not ConceptType.PENALTIES
        ]
        if missing:
            seeded = bool(existing)
            overrides = {
                o.concept_type: o.custom_amount
                for o in self.session.execute(
                    select(HousePeriodOverride).where(
                        HousePeriodOverride.house_id == house_id,
                        HousePeriodOverride.period_id == period.id,
                    )
                ).scalars()
            }
            config = None
            created = []
            for concept in missing:
                if concept.value in overrides:
                    amount, source = overrides[concept.value], ChargeSource.OVERRIDE
                elif not self._concept_applies(period, concept):
                    continue
                else:
                    if config is None:
                        config = (
                            self.find_config_for_date(period.start_date) if seeded
                            else self.require_config_for_date(period.start_date)
                        )
                    if config is None:
                        continue
                    amount, source = self._configured_amount(config, concept)
                if amount <= 0:
                    continue
                charge = HousePeriodCharge(
                    house_id=house_id,
                    period_id=period.id,
                    concept_type=concept.value,
                    expected_amount=amount,
                    source=source.value,
                    created_by_id=SYSTEM_USER_ID,
                )
                self.session.add(charge)
                existing[concept.value] = charge
                created.append(concept.value)
            if created:
                self.session.flush()
                logger.debug(
                    "charges_materialized",
                    extra={
                        "house_id": str(house_id),
                        "period": period.label,
                        "concepts": created,
                    },
                )

        return sorted(
            existing.values(),
            key=lambda c: concept_rank(ConceptType(c.concept_type)),
        )

    def assess_late_penalty(
        self,
        house_id: UUID,
        period_id: UUID,
        actor_id: UUID = SYSTEM_USER_ID,
    ) -> HousePeriodCharge | None:
        """
        Materialize the late-payment penalty for a house and period.

        Applies when the clock is past the period's due day and the
        maintenance charge is not fully paid.  Idempotent: an existing
        penalty charge is returned unchanged.  Returns None when no
        penalty is due.
        """
        period = self.get_period(period_id)

        existing = self.find_charge(house_id, period_id, ConceptType.PENALTIES)
        if existing is not None:
            return existing

        config = self.require_config_for_date(period.start_date)
        due_day = min(config.payment_due_day, period.end_date.day)
        due_date = date(period.year, period.month, due_day)
        if self.clock.today() <= due_date:
            return None

        maintenance = next(
            (
                c for c in self.expected_charges(house_id, period)
                if c.concept_type == ConceptType.MAINTENANCE.value
            ),
            None,
        )
        if maintenance is None:
            return None
        paid = self.paid_for(house_id, period_id, ConceptType.MAINTENANCE)
        if paid >= maintenance.amount_due:
            return None

        amount = config.late_payment_penalty_amount
        if amount <= 0:
            return None

        charge = HousePeriodCharge(
            house_id=house_id,
            period_id=period_id,
            concept_type=ConceptType.PENALTIES.value,
            expected_amount=amount,
            source=ChargeSource.PENALTY.value,
            created_by_id=actor_id,
        )
        self.session.add(charge)
        self.session.flush()

        logger.info(
            "late_penalty_assessed",
            extra={
                "house_id": str(house_id),
                "period": period.label,
                "amount": amount,
            },
        )
        return charge

    # =========================================================================
    # Charge lookups
    # =========================================================================

    def find_charge(
        self,
        house_id: UUID,
        period_id: UUID,
        concept: ConceptType,
    ) -> HousePeriodCharge | None:
        return self.session.execute(
            select(HousePeriodCharge).where(
                HousePeriodCharge.house_id == house_id,
                HousePeriodCharge.period_id == period_id,
                HousePeriodCharge.concept_type == concept.value,
            )
        ).scalar_one_or_none()

    def paid_for(self, house_id: UUID, period_id: UUID, concept: ConceptType) -> Decimal:
        """Total allocated so far to one concept of one period."""
        allocations = self.session.execute(
            select(PaymentAllocation.allocated_amount).where(
                PaymentAllocation.house_id == house_id,
                PaymentAllocation.period_id == period_id,
                PaymentAllocation.concept_type == concept.value,
            )
        ).scalars()
        return sum(allocations, Decimal("0"))

    # =========================================================================
    # Internals
    # =========================================================================

    def _concept_applies(self, period: Period, concept: ConceptType) -> bool:
        match concept:
            case ConceptType.MAINTENANCE:
                return True
            case ConceptType.WATER:
                return period.water_active
            case ConceptType.EXTRAORDINARY_FEE:
                return period.extraordinary_fee_active
            case ConceptType.PENALTIES | ConceptType.OTHER:
                return False

    def _configured_amount(
        self,
        config: PeriodConfig,
        concept: ConceptType,
    ) -> tuple[Decimal, ChargeSource]:
        configured = config.default_amount_for(concept.value)
        if configured is not None:
            return configured, ChargeSource.PERIOD_CONFIG
        return self.fallbacks.amount_for(concept), ChargeSource.FALLBACK

    def _charges_for(self, house_id: UUID, period_id: UUID) -> list[HousePeriodCharge]:
        return list(
            self.session.execute(
                select(HousePeriodCharge).where(
                    HousePeriodCharge.house_id == house_id,
                    HousePeriodCharge.period_id == period_id,
                )
            ).scalars()
        )

