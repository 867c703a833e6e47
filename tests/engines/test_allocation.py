"""
Tests for the payment allocation engine.

Covers:
- FIFO across periods and concept priority within a period
- Partial payments and already-paid charges
- Cents bucket and whole-unit conversion to credit
- Conservation of the distributed amount
- Edge cases and error handling
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from condo_engines.allocation import (
    ChargeLine,
    PaymentAllocationEngine,
    accumulate_cents,
)
from condo_kernel.domain.payments import ConceptType, PaymentStatus
from condo_kernel.exceptions import InvalidAmountError, NonPositiveAllocationError

MARCH = uuid4()
APRIL = uuid4()


def _line(period_id, concept, expected, paid="0", start=None, label=None) -> ChargeLine:
    start = start or (date(2025, 3, 1) if period_id == MARCH else date(2025, 4, 1))
    return ChargeLine(
        period_id=period_id,
        period_label=label or start.strftime("%Y-%m"),
        period_start=start,
        concept_type=concept,
        expected_amount=Decimal(expected),
        already_paid=Decimal(paid),
    )


class TestFifoAllocation:
    """Whole units fill charges oldest period first."""

    def setup_method(self):
        self.engine = PaymentAllocationEngine()

    def test_exact_payment_completes_charge(self):
        plan = self.engine.plan(
            Decimal("800.00"), [_line(MARCH, ConceptType.MAINTENANCE, "800")],
        )
        assert len(plan.lines) == 1
        assert plan.lines[0].allocated_amount == Decimal("800")
        assert plan.lines[0].payment_status is PaymentStatus.COMPLETE
        assert plan.surplus_credit == Decimal("0")
        assert plan.cents_added == Decimal("0")

    def test_remainder_flows_to_next_period(self):
        plan = self.engine.plan(
            Decimal("1500.15"),
            [
                _line(APRIL, ConceptType.MAINTENANCE, "800"),
                _line(MARCH, ConceptType.MAINTENANCE, "800"),
            ],
        )
        assert [line.period_id for line in plan.lines] == [MARCH, APRIL]
        assert plan.lines[0].payment_status is PaymentStatus.COMPLETE
        assert plan.lines[1].allocated_amount == Decimal("700")
        assert plan.lines[1].payment_status is PaymentStatus.PARTIAL
        assert plan.cents_added == Decimal("0.15")
        assert plan.surplus_credit == Decimal("0")

    def test_surplus_becomes_credit(self):
        plan = self.engine.plan(
            Decimal("1500.15"), [_line(MARCH, ConceptType.MAINTENANCE, "800")],
        )
        assert plan.total_allocated == Decimal("800")
        assert plan.surplus_credit == Decimal("700")
        assert plan.credit_increase == Decimal("700")

    def test_concept_priority_within_period(self):
        plan = self.engine.plan(
            Decimal("1000"),
            [
                _line(MARCH, ConceptType.WATER, "200"),
                _line(MARCH, ConceptType.EXTRAORDINARY_FEE, "500"),
                _line(MARCH, ConceptType.MAINTENANCE, "800"),
                _line(MARCH, ConceptType.PENALTIES, "100"),
            ],
        )
        assert [line.concept_type for line in plan.lines] == [
            ConceptType.PENALTIES,
            ConceptType.MAINTENANCE,
            ConceptType.WATER,
        ]
        assert [line.allocated_amount for line in plan.lines] == [
            Decimal("100"), Decimal("800"), Decimal("100"),
        ]
        assert plan.lines[-1].payment_status is PaymentStatus.PARTIAL

    def test_already_paid_charge_skipped(self):
        plan = self.engine.plan(
            Decimal("800"),
            [
                _line(MARCH, ConceptType.MAINTENANCE, "800", paid="800"),
                _line(APRIL, ConceptType.MAINTENANCE, "800"),
            ],
        )
        assert [line.period_id for line in plan.lines] == [APRIL]

    def test_partially_paid_charge_records_outstanding(self):
        plan = self.engine.plan(
            Decimal("500"),
            [_line(MARCH, ConceptType.MAINTENANCE, "800", paid="300")],
        )
        line = plan.lines[0]
        assert line.allocated_amount == Decimal("500")
        assert line.expected_amount == Decimal("500")
        assert line.payment_status is PaymentStatus.COMPLETE

    def test_no_charges_everything_is_credit(self):
        plan = self.engine.plan(Decimal("250.40"), [])
        assert plan.lines == ()
        assert plan.surplus_credit == Decimal("250")
        assert plan.cents_added == Decimal("0.40")

    def test_cents_only_amount(self):
        plan = self.engine.plan(
            Decimal("0.15"), [_line(MARCH, ConceptType.MAINTENANCE, "800")],
        )
        assert plan.lines == ()
        assert plan.cents_added == Decimal("0.15")


class TestCentsBucket:
    """Sub-unit cents accumulate; each whole unit becomes credit."""

    def setup_method(self):
        self.engine = PaymentAllocationEngine()

    def test_accumulate_without_crossing(self):
        assert accumulate_cents(Decimal("0.10"), Decimal("0.15")) == (
            Decimal("0.25"), Decimal("0"),
        )

    def test_accumulate_crossing_unit(self):
        new, converted = accumulate_cents(Decimal("0.85"), Decimal("0.30"))
        assert new == Decimal("0.15")
        assert converted == Decimal("1")

    def test_bucket_overflow_adds_one_unit_of_credit(self):
        plan = self.engine.plan(
            Decimal("800.30"),
            [_line(MARCH, ConceptType.MAINTENANCE, "800")],
            accumulated_cents=Decimal("0.85"),
        )
        assert plan.accumulated_cents_before == Decimal("0.85")
        assert plan.accumulated_cents_after == Decimal("0.15")
        assert plan.cents_converted == Decimal("1")
        assert plan.credit_increase == Decimal("1")

    @given(
        current=st.decimals(min_value=Decimal("0"), max_value=Decimal("0.99"), places=2),
        added=st.decimals(min_value=Decimal("0"), max_value=Decimal("0.99"), places=2),
    )
    def test_bucket_stays_below_one(self, current, added):
        new, converted = accumulate_cents(current, added)
        assert Decimal("0") <= new < Decimal("1")
        assert new + converted == current + added


class TestConservation:

    @given(
        amount=st.decimals(
            min_value=Decimal("0.01"),
            max_value=Decimal("100000"),
            places=2,
            allow_nan=False,
            allow_infinity=False,
        ),
        charges=st.lists(
            st.tuples(
                st.sampled_from([MARCH, APRIL]),
                st.sampled_from(list(ConceptType)),
                st.integers(min_value=0, max_value=3000),
            ),
            max_size=6,
            unique_by=lambda t: (t[0], t[1]),
        ),
    )
    def test_amount_is_conserved(self, amount, charges):
        lines = [_line(p, c, str(e)) for p, c, e in charges]
        plan = PaymentAllocationEngine().plan(amount, lines)

        assert plan.total_allocated + plan.surplus_credit + plan.cents_added == amount
        for line in plan.lines:
            assert Decimal("0") < line.allocated_amount <= line.expected_amount


class TestErrors:

    def setup_method(self):
        self.engine = PaymentAllocationEngine()

    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    def test_non_positive_amount(self, amount):
        with pytest.raises(NonPositiveAllocationError):
            self.engine.plan(Decimal(amount), [])

    def test_more_than_two_decimals(self):
        with pytest.raises(InvalidAmountError):
            self.engine.plan(Decimal("10.005"), [])

    def test_amount_from_numeric_column_accepted(self):
        # Numeric(38, 9) columns return nine decimal places
        plan = self.engine.plan(Decimal("800.150000000"), [])
        assert plan.cents_added == Decimal("0.15")
