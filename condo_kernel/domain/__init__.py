"""
Pure domain layer.

This module contains value objects, enums and state machines with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from condo_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from condo_kernel.domain.houses import HouseNumberBounds
from condo_kernel.domain.payments import (
    CONCEPT_PRIORITY,
    AllocationDetail,
    AllocationOutcome,
    ChargeFallbacks,
    ChargeSource,
    ConceptPaymentDetail,
    ConceptType,
    CreditApplicationResult,
    HouseBalanceInfo,
    HouseStatus,
    PaymentStatus,
    PaymentHistory,
    PaymentHistoryItem,
    HousePaymentHistory,
    PeriodPaymentSummary,
    DebtTrend,
    ChargeAdjustment,
)
from condo_kernel.domain.reconciliation import (
    REVIEW_TRANSITIONS,
    TERMINAL_REVIEW_STATUSES,
    UNCLAIMED_STATUSES,
    CandidateSnapshot,
    ConfirmationResult,
    DepositSort,
    ItemFailure,
    ManualAction,
    ManualCase,
    ManualCaseFilters,
    ManualCaseSort,
    ManualReviewStatus,
    ManualValidationStats,
    Page,
    ReconciliationSummary,
    UnclaimedDeposit,
    UnclaimedDepositFilters,
    UnfundedVoucher,
    UnfundedVoucherFilters,
    ValidationStatus,
)
from condo_kernel.domain.sentinels import SYSTEM_RECORD_ID, SYSTEM_USER_ID

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "HouseNumberBounds",
    "CONCEPT_PRIORITY",
    "AllocationDetail",
    "AllocationOutcome",
    "ChargeFallbacks",
    "ChargeSource",
    "ConceptPaymentDetail",
    "ConceptType",
    "CreditApplicationResult",
    "HouseBalanceInfo",
    "HouseStatus",
    "PaymentStatus",
    "PaymentHistory",
    "PaymentHistoryItem",
    "HousePaymentHistory",
    "PeriodPaymentSummary",
    "DebtTrend",
    "ChargeAdjustment",
    "REVIEW_TRANSITIONS",
    "TERMINAL_REVIEW_STATUSES",
    "UNCLAIMED_STATUSES",
    "CandidateSnapshot",
    "ConfirmationResult",
    "DepositSort",
    "ItemFailure",
    "ManualAction",
    "ManualCase",
    "ManualCaseFilters",
    "ManualCaseSort",
    "ManualReviewStatus",
    "ManualValidationStats",
    "Page",
    "ReconciliationSummary",
    "UnclaimedDeposit",
    "UnclaimedDepositFilters",
    "UnfundedVoucher",
    "UnfundedVoucherFilters",
    "ValidationStatus",
    "SYSTEM_RECORD_ID",
    "SYSTEM_USER_ID",
]
