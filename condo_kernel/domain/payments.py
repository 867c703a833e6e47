"""
Payment domain types (``condo_kernel.domain.payments``).

Responsibility
--------------
Pure value objects for charge concepts, allocation status derivation, house
balance status, hard-coded charge fallbacks and the DTOs returned by the
allocation, balance, credit and period services.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Concept priority -- ``CONCEPT_PRIORITY`` is the single ordering used by
  FIFO distribution: penalties, maintenance, water, extraordinary fee, other.
* Payment status is derived purely from allocated vs expected
  (``PaymentStatus.derive``).
* House status precedence: in-debt over credited over balanced
  (``HouseStatus.classify``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from condo_kernel.domain.sentinels import SYSTEM_RECORD_ID


class ConceptType(str, Enum):
    """Charge category a payment can settle."""

    PENALTIES = "penalties"
    MAINTENANCE = "maintenance"
    WATER = "water"
    EXTRAORDINARY_FEE = "extraordinary_fee"
    OTHER = "other"


CONCEPT_PRIORITY: tuple[ConceptType, ...] = (
    ConceptType.PENALTIES,
    ConceptType.MAINTENANCE,
    ConceptType.WATER,
    ConceptType.EXTRAORDINARY_FEE,
    ConceptType.OTHER,
)


def concept_rank(concept: ConceptType) -> int:
    """Position of ``concept`` in the FIFO priority order."""
    return CONCEPT_PRIORITY.index(concept)


class PaymentStatus(str, Enum):
    """Settlement status of one allocation row."""

    COMPLETE = "complete"
    PARTIAL = "partial"
    OVERPAID = "overpaid"

    @classmethod
    def derive(cls, allocated: Decimal, expected: Decimal) -> PaymentStatus:
        """Status from allocated vs expected, nothing else."""
        if allocated > expected:
            return cls.OVERPAID
        if allocated == expected:
            return cls.COMPLETE
        return cls.PARTIAL


class ChargeSource(str, Enum):
    """Where a materialized expected charge came from."""

    OVERRIDE = "override"
    PERIOD_CONFIG = "period_config"
    FALLBACK = "fallback"
    PENALTY = "penalty"
    MANUAL = "manual"


class HouseStatus(str, Enum):
    IN_DEBT = "in-debt"
    CREDITED = "credited"
    BALANCED = "balanced"

    @classmethod
    def classify(cls, debit_balance: Decimal, credit_balance: Decimal) -> HouseStatus:
        if debit_balance > 0:
            return cls.IN_DEBT
        if credit_balance > 0:
            return cls.CREDITED
        return cls.BALANCED


@dataclass(frozen=True)
class ChargeFallbacks:
    """
    Hard-coded defaults used when a PeriodConfig leaves a value unset.

    Contract:
        Last step of the expected-charge precedence
        (override > period-config default > fallback).
    """

    maintenance_amount: Decimal = Decimal("800")
    water_amount: Decimal = Decimal("0")
    extraordinary_fee_amount: Decimal = Decimal("0")
    late_payment_penalty_amount: Decimal = Decimal("100")
    cents_credit_threshold: Decimal = Decimal("100")
    payment_due_day: int = 15
    max_periods_for_distribution: int = 12

    def amount_for(self, concept: ConceptType) -> Decimal:
        match concept:
            case ConceptType.MAINTENANCE:
                return self.maintenance_amount
            case ConceptType.WATER:
                return self.water_amount
            case ConceptType.EXTRAORDINARY_FEE:
                return self.extraordinary_fee_amount
            case ConceptType.PENALTIES:
                return self.late_payment_penalty_amount
            case ConceptType.OTHER:
                return Decimal("0")


# =========================================================================
# DTOs
# =========================================================================


@dataclass(frozen=True)
class AllocationDetail:
    """One allocation row produced by an allocation or credit application."""

    period_id: UUID
    period_label: str
    concept_type: ConceptType
    allocated_amount: Decimal
    expected_amount: Decimal
    payment_status: PaymentStatus


@dataclass(frozen=True)
class AllocationOutcome:
    """
    Result of distributing one confirmed amount to a house.

    Guarantees:
        ``total_allocated + surplus_credit + cents_added == amount``.
    """

    house_id: UUID
    record_id: UUID
    amount: Decimal
    total_allocated: Decimal
    surplus_credit: Decimal
    cents_added: Decimal
    cents_converted: Decimal
    accumulated_cents: Decimal
    credit_balance: Decimal
    debit_balance: Decimal
    allocations: tuple[AllocationDetail, ...]


@dataclass(frozen=True)
class HouseBalanceInfo:
    house_id: UUID
    house_number: int
    accumulated_cents: Decimal
    credit_balance: Decimal
    debit_balance: Decimal
    net_balance: Decimal
    status: HouseStatus


@dataclass(frozen=True)
class ConceptPaymentDetail:
    """Expected vs paid for one concept of one period."""

    period_id: UUID
    period_label: str
    concept_type: ConceptType
    expected_amount: Decimal
    paid_amount: Decimal

    @property
    def outstanding(self) -> Decimal:
        return max(self.expected_amount - self.paid_amount, Decimal("0"))

    @property
    def is_paid(self) -> bool:
        return self.paid_amount >= self.expected_amount


@dataclass(frozen=True)
class CreditApplicationResult:
    house_id: UUID
    credit_before: Decimal
    credit_after: Decimal
    total_applied: Decimal
    allocations: tuple[AllocationDetail, ...]
    periods_covered: int
    periods_partially_covered: int
    skipped_reason: str | None = None


class DebtTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    WORSENING = "worsening"

    @classmethod
    def between(cls, oldest_debt: Decimal, newest_debt: Decimal) -> DebtTrend:
        """Compare the debt of the oldest and newest period with a 10% band."""
        if newest_debt < oldest_debt * Decimal("0.9"):
            return cls.IMPROVING
        if newest_debt > oldest_debt * Decimal("1.1"):
            return cls.WORSENING
        return cls.STABLE


@dataclass(frozen=True)
class PaymentHistoryItem:
    """One allocation row with the payment it came from."""

    allocation_id: UUID
    record_id: UUID
    payment_date: date | None
    period_id: UUID
    period_label: str
    concept_type: ConceptType
    allocated_amount: Decimal
    expected_amount: Decimal
    payment_status: PaymentStatus

    @property
    def from_credit(self) -> bool:
        """Paid by credit auto-application rather than by a deposit."""
        return self.record_id == SYSTEM_RECORD_ID


@dataclass(frozen=True)
class PaymentHistory:
    house_id: UUID
    house_number: int
    payments: tuple[PaymentHistoryItem, ...]

    @property
    def total_payments(self) -> int:
        return len(self.payments)

    @property
    def total_paid(self) -> Decimal:
        return sum((p.allocated_amount for p in self.payments), Decimal("0"))


@dataclass(frozen=True)
class PeriodPaymentSummary:
    period_id: UUID
    period_label: str
    expected: Decimal
    paid: Decimal

    @property
    def debt(self) -> Decimal:
        return max(self.expected - self.paid, Decimal("0"))

    @property
    def is_paid(self) -> bool:
        return self.debt == 0

    @property
    def payment_percentage(self) -> Decimal:
        if self.expected <= 0:
            return Decimal("0")
        return (self.paid / self.expected * 100).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class HousePaymentHistory:
    """Per-period expected vs paid over the most recent periods, oldest first."""

    house_id: UUID
    house_number: int
    periods: tuple[PeriodPaymentSummary, ...]

    @property
    def total_expected(self) -> Decimal:
        return sum((p.expected for p in self.periods), Decimal("0"))

    @property
    def total_paid(self) -> Decimal:
        return sum((p.paid for p in self.periods), Decimal("0"))

    @property
    def total_debt(self) -> Decimal:
        return sum((p.debt for p in self.periods), Decimal("0"))

    @property
    def average_payment_percentage(self) -> Decimal:
        if self.total_expected <= 0:
            return Decimal("0")
        return (self.total_paid / self.total_expected * 100).quantize(Decimal("0.01"))

    @property
    def debt_trend(self) -> DebtTrend:
        if len(self.periods) < 2:
            return DebtTrend.STABLE
        return DebtTrend.between(self.periods[0].debt, self.periods[-1].debt)


@dataclass(frozen=True)
class ChargeAdjustment:
    """Result of setting an initial debt or condoning a penalty."""

    house_id: UUID
    period_id: UUID
    period_label: str
    concept_type: ConceptType
    amount: Decimal
    debit_balance: Decimal
