"""
Tests for QueueService -- unclaimed deposits and unfunded vouchers.

Covers:
- Listing filters, sorting and pagination
- assign_house(): confirmation, allocation, audit row, guards
- match_voucher_to_deposit(): pairing, amount mismatch warning, guards
"""

from datetime import date, time
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from condo_kernel.domain.reconciliation import (
    DepositSort,
    ManualAction,
    UnclaimedDepositFilters,
    UnfundedVoucherFilters,
    ValidationStatus,
)
from condo_kernel.exceptions import (
    BankTransactionNotFoundError,
    DepositAlreadyConfirmedError,
    DepositNotUnclaimedError,
    InvalidHouseNumberError,
    VoucherAlreadyConfirmedError,
    VoucherNotFoundError,
)
from condo_kernel.models.reconciliation import ManualValidationApproval


@pytest.fixture
def unclaimed(services, period_config, create_deposit):
    """Three not-found deposits on different days."""
    deposits = [
        create_deposit("500.00", on=date(2025, 3, 1)),
        create_deposit("900.00", on=date(2025, 3, 10)),
        create_deposit("700.00", on=date(2025, 3, 18)),
    ]
    services.reconciliation.reconcile()
    return deposits


class TestUnclaimedListing:

    def test_default_sort_newest_first(self, services, unclaimed):
        page = services.queues.get_unclaimed_deposits()
        assert [d.transaction_id for d in page.items] == [
            unclaimed[2].id, unclaimed[1].id, unclaimed[0].id,
        ]
        assert page.total_count == 3

    def test_sort_by_amount(self, services, unclaimed):
        page = services.queues.get_unclaimed_deposits(
            UnclaimedDepositFilters(sort_by=DepositSort.AMOUNT)
        )
        assert [d.amount for d in page.items] == [
            Decimal("900"), Decimal("700"), Decimal("500"),
        ]

    def test_date_range(self, services, unclaimed):
        page = services.queues.get_unclaimed_deposits(
            UnclaimedDepositFilters(start_date=date(2025, 3, 5), end_date=date(2025, 3, 15))
        )
        assert [d.transaction_id for d in page.items] == [unclaimed[1].id]

    def test_pagination(self, services, unclaimed):
        page = services.queues.get_unclaimed_deposits(UnclaimedDepositFilters(page=2, limit=2))
        assert page.total_count == 3
        assert page.total_pages == 2
        assert len(page.items) == 1

    def test_invalid_limit_falls_back_to_default(self, services, unclaimed):
        page = services.queues.get_unclaimed_deposits(UnclaimedDepositFilters(page=0, limit=500))
        assert page.page == 1
        assert page.limit == 20

    def test_status_filter(self, services, unclaimed):
        page = services.queues.get_unclaimed_deposits(
            UnclaimedDepositFilters(validation_status=ValidationStatus.CONFLICT)
        )
        assert page.total_count == 0

    def test_confirmed_deposits_leave_queue(self, services, unclaimed, test_actor_id):
        services.queues.assign_house(unclaimed[0].id, 5, test_actor_id)
        assert services.queues.get_unclaimed_deposits().total_count == 2


class TestUnfundedListing:

    def test_lists_unconfirmed_vouchers(self, services, create_voucher):
        v1 = create_voucher("100.00", on=date(2025, 3, 1), confirmation_code="A1")
        v2 = create_voucher("300.00", on=date(2025, 3, 5), house_number=9)

        page = services.queues.get_unfunded_vouchers()

        assert [v.voucher_id for v in page.items] == [v2.id, v1.id]
        assert page.items[1].confirmation_code == "A1"
        assert page.items[0].house_number == 9

    def test_date_filter_and_amount_sort(self, services, create_voucher):
        create_voucher("100.00", on=date(2025, 2, 1))
        create_voucher("300.00", on=date(2025, 3, 5))
        create_voucher("200.00", on=date(2025, 3, 6))

        page = services.queues.get_unfunded_vouchers(
            UnfundedVoucherFilters(start_date=date(2025, 3, 1), sort_by=DepositSort.AMOUNT)
        )

        assert [v.amount for v in page.items] == [Decimal("300"), Decimal("200")]


class TestAssignHouse:

    def test_assign_confirms_and_allocates(
        self, services, session, unclaimed, status_of, balance_service, test_actor_id,
    ):
        deposit = unclaimed[1]

        result = services.queues.assign_house(deposit.id, 8, test_actor_id, notes="Phone call")

        assert result.house_number == 8
        assert result.voucher_id is None
        assert result.allocation.total_allocated == Decimal("800")
        assert result.allocation.surplus_credit == Decimal("100")
        assert deposit.confirmation_status is True

        status = status_of(deposit.id)
        assert status.validation_status == ValidationStatus.CONFIRMED.value
        assert status.identified_house_number == 8
        assert status.reason == "House 8 assigned manually"

        approval = session.execute(
            select(ManualValidationApproval).where(
                ManualValidationApproval.bank_transaction_id == deposit.id
            )
        ).scalar_one()
        assert approval.action == ManualAction.ASSIGN_HOUSE.value
        assert approval.approved_by_id == test_actor_id
        assert approval.notes == "Phone call"

        balance = balance_service.get_house_balance(result.allocation.house_id)
        assert balance.credit_balance == Decimal("100")

    def test_invalid_house_rejected(self, services, unclaimed, test_actor_id):
        with pytest.raises(InvalidHouseNumberError):
            services.queues.assign_house(unclaimed[0].id, 67, test_actor_id)
        assert unclaimed[0].confirmation_status is False

    def test_unknown_deposit(self, services, period_config, test_actor_id):
        with pytest.raises(BankTransactionNotFoundError):
            services.queues.assign_house(uuid4(), 5, test_actor_id)

    def test_assign_twice_conflicts(self, services, unclaimed, test_actor_id):
        services.queues.assign_house(unclaimed[0].id, 5, test_actor_id)
        with pytest.raises(DepositAlreadyConfirmedError):
            services.queues.assign_house(unclaimed[0].id, 6, test_actor_id)

    def test_unreconciled_deposit_not_unclaimed(
        self, services, period_config, create_deposit, test_actor_id,
    ):
        deposit = create_deposit("400.00")
        with pytest.raises(DepositNotUnclaimedError) as exc_info:
            services.queues.assign_house(deposit.id, 5, test_actor_id)
        assert exc_info.value.validation_status is None

    def test_manual_case_not_assignable(
        self, services, period_config, create_deposit, create_voucher, test_actor_id,
    ):
        deposit = create_deposit("800.00")
        create_voucher("800.00")
        create_voucher("800.00")
        services.reconciliation.reconcile()

        with pytest.raises(DepositNotUnclaimedError) as exc_info:
            services.queues.assign_house(deposit.id, 5, test_actor_id)
        assert exc_info.value.validation_status == ValidationStatus.REQUIRES_MANUAL.value

    def test_assign_logged(self, services, unclaimed, test_actor_id, captured_logs):
        services.queues.assign_house(unclaimed[0].id, 5, test_actor_id)
        logs = [r for r in captured_logs() if r["message"] == "deposit_house_assigned"]
        assert len(logs) == 1
        assert logs[0]["house_number"] == 5


class TestMatchVoucher:

    def test_match_confirms_both(
        self, services, session, unclaimed, create_voucher, status_of, test_actor_id,
    ):
        deposit = unclaimed[2]
        voucher = create_voucher("700.00", on=date(2025, 3, 25), at=time(8, 0))

        result = services.queues.match_voucher_to_deposit(
            voucher.id, deposit.id, 21, test_actor_id,
        )

        assert result.voucher_id == voucher.id
        assert deposit.confirmation_status is True
        assert voucher.confirmation_status is True
        status = status_of(deposit.id)
        assert status.voucher_id == voucher.id
        assert status.reason == "Voucher matched manually for house 21"
        approval = session.execute(
            select(ManualValidationApproval).where(
                ManualValidationApproval.bank_transaction_id == deposit.id
            )
        ).scalar_one()
        assert approval.action == ManualAction.MATCH_VOUCHER.value
        assert approval.voucher_id == voucher.id
        assert services.queues.get_unfunded_vouchers().total_count == 0

    def test_amount_mismatch_only_warns(
        self, services, unclaimed, create_voucher, test_actor_id, captured_logs,
    ):
        voucher = create_voucher("650.00")

        services.queues.match_voucher_to_deposit(voucher.id, unclaimed[2].id, 21, test_actor_id)

        warnings = [r for r in captured_logs() if r["message"] == "manual_match_amount_mismatch"]
        assert len(warnings) == 1
        assert warnings[0]["level"] == "WARNING"

    def test_unknown_voucher(self, services, unclaimed, test_actor_id):
        with pytest.raises(VoucherNotFoundError):
            services.queues.match_voucher_to_deposit(uuid4(), unclaimed[0].id, 5, test_actor_id)

    def test_confirmed_voucher_rejected(
        self, services, unclaimed, create_voucher, test_actor_id,
    ):
        voucher = create_voucher("500.00")
        services.queues.match_voucher_to_deposit(voucher.id, unclaimed[0].id, 5, test_actor_id)

        with pytest.raises(VoucherAlreadyConfirmedError):
            services.queues.match_voucher_to_deposit(voucher.id, unclaimed[1].id, 6, test_actor_id)
        assert unclaimed[1].confirmation_status is False
