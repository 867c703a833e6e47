"""
ORM-level guarantees of the condo models.

Covers:
- Append-only allocations and approvals
- Write-once expected charge amounts and one-way condonation
- Confirmation flags that cannot be reverted
- One status row and one payment record per deposit
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from condo_kernel.domain.sentinels import SYSTEM_USER_ID
from condo_kernel.exceptions import ImmutabilityViolationError
from condo_kernel.models.balance import PaymentAllocation
from condo_kernel.models.period import HousePeriodCharge
from condo_kernel.models.reconciliation import (
    ManualValidationApproval,
    PaymentRecord,
    TransactionStatus,
)


@pytest.fixture
def house(house_service):
    return house_service.get_or_create_house(7)


@pytest.fixture
def allocation(session, services, period_config, house) -> PaymentAllocation:
    outcome = services.allocation.allocate(house.id, Decimal("500"), uuid4())
    return session.execute(
        select(PaymentAllocation).where(PaymentAllocation.record_id == outcome.record_id)
    ).scalar_one()


@pytest.fixture
def status(session, create_deposit) -> TransactionStatus:
    deposit = create_deposit("100.00")
    row = TransactionStatus(
        bank_transaction_id=deposit.id,
        validation_status="not-found",
        created_by_id=SYSTEM_USER_ID,
    )
    session.add(row)
    session.flush()
    return row


class TestAllocationImmutability:

    def test_update_rejected(self, session, allocation):
        with pytest.raises(ImmutabilityViolationError), session.begin_nested():
            allocation.allocated_amount = Decimal("1")
            session.flush()

    def test_delete_rejected(self, session, allocation):
        with pytest.raises(ImmutabilityViolationError), session.begin_nested():
            session.delete(allocation)
            session.flush()


class TestChargeImmutability:

    def test_amount_write_once(self, session, allocation):
        charge = session.execute(
            select(HousePeriodCharge).where(HousePeriodCharge.house_id == allocation.house_id)
        ).scalar_one()

        with pytest.raises(ImmutabilityViolationError) as exc_info, session.begin_nested():
            charge.expected_amount = Decimal("1")
            session.flush()

        assert exc_info.value.entity_type == "HousePeriodCharge"

    def test_delete_rejected(self, session, allocation):
        charge = session.execute(
            select(HousePeriodCharge).where(HousePeriodCharge.house_id == allocation.house_id)
        ).scalar_one()

        with pytest.raises(ImmutabilityViolationError), session.begin_nested():
            session.delete(charge)
            session.flush()

    def test_condonation_zeroes_amount_due(self, session, allocation):
        charge = session.execute(
            select(HousePeriodCharge).where(HousePeriodCharge.house_id == allocation.house_id)
        ).scalar_one()
        assert charge.amount_due == Decimal("800")

        charge.condoned_at = datetime(2025, 3, 20, tzinfo=timezone.utc)
        charge.condoned_by_id = SYSTEM_USER_ID
        session.flush()

        assert charge.amount_due == Decimal("0")
        assert charge.expected_amount == Decimal("800")

    def test_condonation_cannot_be_revoked(self, session, allocation):
        charge = session.execute(
            select(HousePeriodCharge).where(HousePeriodCharge.house_id == allocation.house_id)
        ).scalar_one()
        charge.condoned_at = datetime(2025, 3, 20, tzinfo=timezone.utc)
        session.flush()

        with pytest.raises(ImmutabilityViolationError), session.begin_nested():
            charge.condoned_at = None
            session.flush()


class TestApprovalImmutability:

    @pytest.fixture
    def approval(self, session, status):
        row = ManualValidationApproval(
            transaction_status_id=status.id,
            bank_transaction_id=status.bank_transaction_id,
            action="reject",
            approved_by_id=SYSTEM_USER_ID,
            rejection_reason="Not ours",
            decided_at=datetime(2025, 3, 20, tzinfo=timezone.utc),
        )
        session.add(row)
        session.flush()
        return row

    def test_update_rejected(self, session, approval):
        with pytest.raises(ImmutabilityViolationError), session.begin_nested():
            approval.notes = "changed my mind"
            session.flush()

    def test_delete_rejected(self, session, approval):
        with pytest.raises(ImmutabilityViolationError), session.begin_nested():
            session.delete(approval)
            session.flush()

    def test_one_row_per_action(self, session, status, approval):
        with pytest.raises(IntegrityError), session.begin_nested():
            session.add(ManualValidationApproval(
                transaction_status_id=status.id,
                bank_transaction_id=status.bank_transaction_id,
                action="reject",
                approved_by_id=SYSTEM_USER_ID,
                decided_at=datetime(2025, 3, 21, tzinfo=timezone.utc),
            ))
            session.flush()


class TestConfirmationFlags:

    def test_deposit_cannot_be_unconfirmed(self, session, create_deposit):
        deposit = create_deposit("100.00")
        deposit.confirmation_status = True
        session.flush()

        with pytest.raises(ImmutabilityViolationError), session.begin_nested():
            deposit.confirmation_status = False
            session.flush()

    def test_voucher_cannot_be_unconfirmed(self, session, create_voucher):
        voucher = create_voucher("100.00")
        voucher.confirmation_status = True
        session.flush()

        with pytest.raises(ImmutabilityViolationError), session.begin_nested():
            voucher.confirmation_status = False
            session.flush()

    def test_other_fields_still_editable(self, session, create_voucher):
        voucher = create_voucher("100.00")
        voucher.confirmation_status = True
        session.flush()

        voucher.house_number = 9
        session.flush()


class TestOnePerDeposit:

    def test_single_status_row(self, session, status):
        with pytest.raises(IntegrityError), session.begin_nested():
            session.add(TransactionStatus(
                bank_transaction_id=status.bank_transaction_id,
                validation_status="conflict",
                created_by_id=SYSTEM_USER_ID,
            ))
            session.flush()

    def test_single_payment_record(self, session, status, house):
        def _record():
            return PaymentRecord(
                house_id=house.id,
                bank_transaction_id=status.bank_transaction_id,
                amount=Decimal("100"),
                payment_date=date(2025, 3, 15),
                created_by_id=SYSTEM_USER_ID,
            )

        session.add(_record())
        session.flush()

        with pytest.raises(IntegrityError), session.begin_nested():
            session.add(_record())
            session.flush()

    def test_validation_status_checked(self, session, create_deposit):
        deposit = create_deposit("100.00")
        with pytest.raises(IntegrityError), session.begin_nested():
            session.add(TransactionStatus(
                bank_transaction_id=deposit.id,
                validation_status="maybe",
                created_by_id=SYSTEM_USER_ID,
            ))
            session.flush()
