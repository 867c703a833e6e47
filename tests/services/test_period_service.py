"""
Tests for PeriodService -- calendar, configuration history and expected charges.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from condo_kernel.domain.payments import ChargeFallbacks, ChargeSource, ConceptType
from condo_kernel.exceptions import (
    ImmutabilityViolationError,
    InvalidPeriodConfigError,
    PeriodConfigNotFoundError,
    UnknownPeriodError,
)
from condo_kernel.services.period_service import PeriodService, period_bounds


@pytest.fixture
def house(house_service):
    return house_service.get_or_create_house(30)


def _concepts(charges):
    return [(c.concept_type, c.expected_amount) for c in charges]


class TestPeriods:

    def test_period_bounds(self):
        assert period_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
        assert period_bounds(2025, 12) == (date(2025, 12, 1), date(2025, 12, 31))

    def test_ensure_period_idempotent(self, period_service, period_config):
        first = period_service.ensure_period(2025, 6)
        second = period_service.ensure_period(2025, 6)
        assert first.id == second.id
        assert first.label == "2025-06"

    def test_invalid_month(self, period_service):
        with pytest.raises(UnknownPeriodError):
            period_service.ensure_period(2025, 13)

    def test_current_period_follows_clock(self, period_service, deterministic_clock):
        assert period_service.current_period().label == "2025-03"

    def test_unknown_period_id(self, period_service):
        with pytest.raises(UnknownPeriodError):
            period_service.get_period(uuid4())

    def test_flags_taken_from_config(self, period_service):
        period_service.create_period_config(
            date(2025, 1, 1),
            default_maintenance_amount=Decimal("800"),
            default_water_amount=Decimal("120"),
        )

        period = period_service.ensure_period(2025, 4)

        assert period.water_active is True
        assert period.extraordinary_fee_active is False

    def test_period_without_config_has_no_flags(self, period_service):
        period = period_service.ensure_period(2024, 1)
        assert period.water_active is False

    def test_periods_after_ordered_and_limited(self, period_service, period_config):
        march = period_service.ensure_period(2025, 3)
        period_service.ensure_period(2025, 6)
        period_service.ensure_period(2025, 4)
        period_service.ensure_period(2025, 5)

        after = period_service.periods_after(march, 2)

        assert [p.label for p in after] == ["2025-04", "2025-05"]


class TestConfigHistory:

    def test_new_config_closes_open_ended(self, period_service, period_config):
        later = period_service.create_period_config(
            date(2025, 6, 1), default_maintenance_amount=Decimal("900"),
        )

        assert period_config.effective_until == date(2025, 5, 31)
        assert period_service.find_config_for_date(date(2025, 5, 31)).id == period_config.id
        assert period_service.find_config_for_date(date(2025, 6, 1)).id == later.id

    def test_closing_logged(self, period_service, period_config, captured_logs):
        period_service.create_period_config(date(2025, 6, 1))
        assert any(r["message"] == "period_config_closed" for r in captured_logs())

    def test_config_must_follow_open_ended(self, period_service, period_config):
        with pytest.raises(InvalidPeriodConfigError):
            period_service.create_period_config(date(2024, 12, 1))

    def test_inverted_range(self, period_service):
        with pytest.raises(InvalidPeriodConfigError):
            period_service.create_period_config(
                date(2025, 3, 1), effective_until=date(2025, 2, 1),
            )

    def test_negative_amount(self, period_service):
        with pytest.raises(InvalidPeriodConfigError):
            period_service.create_period_config(
                date(2025, 3, 1), default_water_amount=Decimal("-1"),
            )

    @pytest.mark.parametrize(
        "field", ["default_maintenance_amount", "late_payment_penalty_amount"],
    )
    def test_fractional_charge_amount(self, period_service, field):
        with pytest.raises(InvalidPeriodConfigError, match="whole amount"):
            period_service.create_period_config(date(2025, 3, 1), **{field: Decimal("800.50")})

    def test_fractional_cents_threshold_allowed(self, period_service):
        config = period_service.create_period_config(
            date(2025, 3, 1), cents_credit_threshold=Decimal("0.50"),
        )
        assert config.cents_credit_threshold == Decimal("0.50")

    @pytest.mark.parametrize("due_day", [32, -1])
    def test_due_day_range(self, period_service, due_day):
        with pytest.raises(InvalidPeriodConfigError):
            period_service.create_period_config(date(2025, 3, 1), payment_due_day=due_day)

    def test_unset_values_take_fallbacks(self, session, deterministic_clock):
        service = PeriodService(
            session,
            deterministic_clock,
            ChargeFallbacks(payment_due_day=10, cents_credit_threshold=Decimal("50")),
        )

        config = service.create_period_config(date(2025, 1, 1))

        assert config.payment_due_day == 10
        assert config.cents_credit_threshold == Decimal("50")
        assert config.default_maintenance_amount is None

    def test_require_config_missing(self, period_service):
        with pytest.raises(PeriodConfigNotFoundError):
            period_service.require_config_for_date(date(2025, 3, 1))


class TestExpectedCharges:

    def test_maintenance_from_config(self, period_service, period_config, house):
        period = period_service.ensure_period(2025, 3)

        charges = period_service.expected_charges(house.id, period)

        assert _concepts(charges) == [("maintenance", Decimal("800"))]
        assert charges[0].source == ChargeSource.PERIOD_CONFIG.value

    def test_unset_default_uses_fallback(self, period_service, house):
        period_service.create_period_config(date(2025, 1, 1))
        period = period_service.ensure_period(2025, 3)

        charges = period_service.expected_charges(house.id, period)

        assert _concepts(charges) == [("maintenance", Decimal("800"))]
        assert charges[0].source == ChargeSource.FALLBACK.value

    def test_override_wins(self, period_service, period_config, house):
        period = period_service.ensure_period(2025, 3)
        period_service.set_override(
            house.id, period.id, ConceptType.MAINTENANCE, Decimal("400"), reason="Agreement",
        )

        charges = period_service.expected_charges(house.id, period)

        assert _concepts(charges) == [("maintenance", Decimal("400"))]
        assert charges[0].source == ChargeSource.OVERRIDE.value

    def test_override_applies_even_when_flag_off(self, period_service, period_config, house):
        period = period_service.ensure_period(2025, 3)
        period_service.set_override(house.id, period.id, ConceptType.WATER, Decimal("60"))

        charges = period_service.expected_charges(house.id, period)

        assert _concepts(charges) == [
            ("maintenance", Decimal("800")), ("water", Decimal("60")),
        ]

    def test_override_after_materialization_rejected(
        self, period_service, period_config, house,
    ):
        period = period_service.ensure_period(2025, 3)
        period_service.expected_charges(house.id, period)

        with pytest.raises(ImmutabilityViolationError):
            period_service.set_override(
                house.id, period.id, ConceptType.MAINTENANCE, Decimal("400"),
            )

    def test_fractional_override_rejected(self, period_service, period_config, house):
        period = period_service.ensure_period(2025, 3)

        with pytest.raises(InvalidPeriodConfigError, match="whole amount"):
            period_service.set_override(
                house.id, period.id, ConceptType.MAINTENANCE, Decimal("400.25"),
            )

        assert _concepts(period_service.expected_charges(house.id, period)) == [
            ("maintenance", Decimal("800")),
        ]

    def test_flag_toggle_affects_later_materialization(
        self, period_service, period_config, house, house_service,
    ):
        period = period_service.ensure_period(2025, 3)
        period_service.expected_charges(house.id, period)

        period_service.set_concept_flags(period.id, water_active=True, extraordinary_fee_active=False)
        other = house_service.get_or_create_house(31)

        assert _concepts(period_service.expected_charges(house.id, period)) == [
            ("maintenance", Decimal("800")),
        ]
        # Flag on, but the config default for water is unset, so fallback 0 is skipped
        assert _concepts(period_service.expected_charges(other.id, period)) == [
            ("maintenance", Decimal("800")),
        ]

    def test_materialized_once(self, period_service, period_config, house):
        period = period_service.ensure_period(2025, 3)
        first = period_service.expected_charges(house.id, period)
        second = period_service.expected_charges(house.id, period)
        assert [c.id for c in first] == [c.id for c in second]

    def test_missing_config_raises(self, period_service, house):
        period = period_service.ensure_period(2025, 3)
        with pytest.raises(PeriodConfigNotFoundError):
            period_service.expected_charges(house.id, period)


class TestLatePenalty:

    def test_penalty_after_due_day(self, period_service, period_config, house):
        period = period_service.ensure_period(2025, 3)

        charge = period_service.assess_late_penalty(house.id, period.id)

        assert charge is not None
        assert charge.concept_type == "penalties"
        assert charge.expected_amount == Decimal("100")
        assert charge.source == ChargeSource.PENALTY.value

    def test_penalty_idempotent(self, period_service, period_config, house):
        period = period_service.ensure_period(2025, 3)
        first = period_service.assess_late_penalty(house.id, period.id)
        assert period_service.assess_late_penalty(house.id, period.id).id == first.id

    def test_no_penalty_before_due_day(
        self, period_service, period_config, house, deterministic_clock,
    ):
        deterministic_clock.set_time(deterministic_clock.now().replace(day=10))
        period = period_service.ensure_period(2025, 3)
        assert period_service.assess_late_penalty(house.id, period.id) is None

    def test_no_penalty_when_paid(self, services, period_service, period_config, house):
        services.allocation.allocate(house.id, Decimal("800"), uuid4())
        period = period_service.find_period(2025, 3)
        assert period_service.assess_late_penalty(house.id, period.id) is None

    def test_penalty_paid_first(self, services, period_service, period_config, house):
        period = period_service.ensure_period(2025, 3)
        period_service.assess_late_penalty(house.id, period.id)

        outcome = services.allocation.allocate(house.id, Decimal("850"), uuid4())

        assert [(a.concept_type.value, a.allocated_amount) for a in outcome.allocations] == [
            ("penalties", Decimal("100")), ("maintenance", Decimal("750")),
        ]
