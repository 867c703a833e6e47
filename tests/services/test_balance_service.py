"""Tests for HouseBalanceService reads and the balance row lock."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from condo_kernel.domain.payments import ConceptType, HouseStatus
from condo_kernel.exceptions import HouseNotFoundError, UnknownPeriodError


@pytest.fixture
def house(house_service):
    return house_service.get_or_create_house(44)


class TestHouseStatus:

    @pytest.mark.parametrize(
        ("debit", "credit", "expected"),
        [
            ("300", "0", HouseStatus.IN_DEBT),
            ("300", "50", HouseStatus.IN_DEBT),
            ("0", "50", HouseStatus.CREDITED),
            ("0", "0", HouseStatus.BALANCED),
        ],
    )
    def test_classify(self, debit, credit, expected):
        assert HouseStatus.classify(Decimal(debit), Decimal(credit)) is expected


class TestGetHouseBalance:

    def test_never_paid_is_zero(self, balance_service, house):
        info = balance_service.get_house_balance(house.id)
        assert info.house_number == 44
        assert info.credit_balance == Decimal("0")
        assert info.status is HouseStatus.BALANCED

    def test_after_partial_payment(self, services, balance_service, period_config, house):
        services.allocation.allocate(house.id, Decimal("500.25"), uuid4())

        info = balance_service.get_house_balance(house.id)

        assert info.debit_balance == Decimal("300")
        assert info.accumulated_cents == Decimal("0.25")
        assert info.net_balance == Decimal("-300")
        assert info.status is HouseStatus.IN_DEBT

    def test_unknown_house(self, balance_service):
        with pytest.raises(HouseNotFoundError):
            balance_service.get_house_balance(uuid4())


class TestLockBalance:

    def test_get_or_create(self, balance_service, house):
        first = balance_service.lock_balance(house.id)
        second = balance_service.lock_balance(house.id)
        assert first.id == second.id
        assert first.credit_balance == Decimal("0")


class TestPeriodDetails:

    def test_expected_vs_paid(
        self, services, balance_service, period_service, period_config, house,
    ):
        period_service.ensure_period(2025, 4)
        services.allocation.allocate(house.id, Decimal("1000"), uuid4())

        details = balance_service.get_period_details(house.id)

        assert [(d.period_label, d.concept_type) for d in details] == [
            ("2025-03", ConceptType.MAINTENANCE),
            ("2025-04", ConceptType.MAINTENANCE),
        ]
        assert details[0].is_paid
        assert details[1].paid_amount == Decimal("200")
        assert details[1].outstanding == Decimal("600")

    def test_single_period(
        self, services, balance_service, period_service, period_config, house,
    ):
        april = period_service.ensure_period(2025, 4)
        services.allocation.allocate(house.id, Decimal("1000"), uuid4())

        details = balance_service.get_period_details(house.id, april.id)

        assert [d.period_id for d in details] == [april.id]

    def test_unknown_period(self, balance_service, house):
        with pytest.raises(UnknownPeriodError):
            balance_service.get_period_details(house.id, uuid4())


class TestDebit:

    def test_recompute_debit_defaults_to_today(
        self, services, balance_service, period_service, period_config, house,
    ):
        period_service.ensure_period(2025, 4)
        services.allocation.allocate(house.id, Decimal("100"), uuid4())

        assert balance_service.recompute_debit(house.id) == Decimal("700")
        assert balance_service.recompute_debit(house.id, date(2025, 4, 1)) == Decimal("1500")
        assert balance_service.recompute_debit(house.id, date(2025, 2, 28)) == Decimal("0")

    def test_debit_follows_clock(
        self, services, balance_service, period_service, period_config, house,
        deterministic_clock,
    ):
        period_service.ensure_period(2025, 4)
        services.allocation.allocate(house.id, Decimal("800"), uuid4())
        assert balance_service.recompute_debit(house.id) == Decimal("0")

        deterministic_clock.set_time(datetime(2025, 4, 5, 12, 0, tzinfo=timezone.utc))

        assert balance_service.recompute_debit(house.id) == Decimal("800")

    def test_periods_in_arrears(
        self, services, balance_service, period_service, period_config, house,
    ):
        january = period_service.ensure_period(2025, 1)
        february = period_service.ensure_period(2025, 2)
        services.allocation.allocate(
            house.id, Decimal("800"), uuid4(), period_id=january.id,
        )

        arrears = balance_service.periods_in_arrears(house.id)

        assert [p.id for p in arrears] == [february.id]
        assert balance_service.periods_in_arrears(house.id, date(2025, 1, 31)) == []
