"""
Reconciliation domain types (``condo_kernel.domain.reconciliation``).

Responsibility
--------------
Pure value objects for deposit/voucher reconciliation: the validation status
of a deposit, the manual review state machine, queue filters and the DTOs
returned by selectors and services.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Manual review lifecycle -- ``REVIEW_TRANSITIONS`` defines the only valid
  transitions; approved and rejected are terminal.
* Unclaimed queue membership is exactly ``UNCLAIMED_STATUSES``.
* Pagination is clamped: page >= 1, 1 <= limit <= 100 (default 20).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from math import ceil
from typing import Any, Generic, TypeVar
from uuid import UUID

from condo_kernel.domain.payments import AllocationOutcome

T = TypeVar("T")

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100


# =========================================================================
# Deposit validation status
# =========================================================================


class ValidationStatus(str, Enum):
    """Outcome of reconciling one deposit."""

    CONFIRMED = "confirmed"
    NOT_FOUND = "not-found"
    CONFLICT = "conflict"
    REQUIRES_MANUAL = "requires-manual"


UNCLAIMED_STATUSES: frozenset[ValidationStatus] = frozenset({
    ValidationStatus.NOT_FOUND,
    ValidationStatus.CONFLICT,
})


# =========================================================================
# Manual review lifecycle
# =========================================================================


class ManualReviewStatus(str, Enum):
    """Manual validation case lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


REVIEW_TRANSITIONS: dict[ManualReviewStatus, frozenset[ManualReviewStatus]] = {
    ManualReviewStatus.PENDING: frozenset({
        ManualReviewStatus.APPROVED,
        ManualReviewStatus.REJECTED,
    }),
    ManualReviewStatus.APPROVED: frozenset(),
    ManualReviewStatus.REJECTED: frozenset(),
}

TERMINAL_REVIEW_STATUSES: frozenset[ManualReviewStatus] = frozenset({
    ManualReviewStatus.APPROVED,
    ManualReviewStatus.REJECTED,
})


def can_transition(current: ManualReviewStatus, target: ManualReviewStatus) -> bool:
    """True if ``current -> target`` is a valid review transition."""
    return target in REVIEW_TRANSITIONS[current]


class ManualAction(str, Enum):
    """Operator action recorded in the approval audit trail."""

    APPROVE = "approve"
    REJECT = "reject"
    ASSIGN_HOUSE = "assign_house"
    MATCH_VOUCHER = "match_voucher"


# =========================================================================
# Matching metadata
# =========================================================================


@dataclass(frozen=True)
class CandidateSnapshot:
    """
    One voucher candidate as stored in a deposit's matching metadata.

    Serialized to plain JSON (strings for ids and decimals) so metadata is
    portable across PostgreSQL JSON and SQLite.
    """

    voucher_id: UUID
    score: Decimal
    date_difference_hours: Decimal
    voucher_house_number: int | None = None

    def to_json(self) -> dict[str, Any]:
        return {
            "voucher_id": str(self.voucher_id),
            "score": str(self.score),
            "date_difference_hours": str(self.date_difference_hours),
            "voucher_house_number": self.voucher_house_number,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> CandidateSnapshot:
        return cls(
            voucher_id=UUID(data["voucher_id"]),
            score=Decimal(data["score"]),
            date_difference_hours=Decimal(data["date_difference_hours"]),
            voucher_house_number=data.get("voucher_house_number"),
        )


def candidates_from_metadata(metadata: dict[str, Any] | None) -> tuple[CandidateSnapshot, ...]:
    """Read the candidate list out of a TransactionStatus metadata blob."""
    if not metadata:
        return ()
    return tuple(
        CandidateSnapshot.from_json(item) for item in metadata.get("candidates", [])
    )


# =========================================================================
# Batch reconciliation summary
# =========================================================================


@dataclass(frozen=True)
class ItemFailure:
    """A deposit whose reconciliation raised; its SAVEPOINT was rolled back."""

    deposit_id: UUID
    error_code: str
    message: str


@dataclass(frozen=True)
class ReconciliationSummary:
    """
    Result of one ``reconcile`` run.

    Contract:
        ``matched``, ``unclaimed`` and ``manual_cases`` hold deposit ids;
        ``unfunded`` holds voucher ids still unconfirmed after the run.
    """

    matched: tuple[UUID, ...] = ()
    unclaimed: tuple[UUID, ...] = ()
    unfunded: tuple[UUID, ...] = ()
    manual_cases: tuple[UUID, ...] = ()
    failures: tuple[ItemFailure, ...] = ()
    deposits_considered: int = 0

    @property
    def matched_count(self) -> int:
        return len(self.matched)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)


# =========================================================================
# Queues and listings
# =========================================================================


class DepositSort(str, Enum):
    DATE = "date"
    AMOUNT = "amount"


class ManualCaseSort(str, Enum):
    DATE = "date"
    SIMILARITY = "similarity"
    CANDIDATES = "candidates"


def clamp_pagination(page: int, limit: int) -> tuple[int, int]:
    """Normalize paging input: page < 1 -> 1, limit outside 1..100 -> 20."""
    if page < 1:
        page = 1
    if limit < 1 or limit > MAX_PAGE_LIMIT:
        limit = DEFAULT_PAGE_LIMIT
    return page, limit


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a paginated listing."""

    items: tuple[T, ...]
    total_count: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return ceil(self.total_count / self.limit) if self.limit else 0


@dataclass(frozen=True)
class UnclaimedDepositFilters:
    """``validation_status=None`` means both not-found and conflict."""

    start_date: date | None = None
    end_date: date | None = None
    validation_status: ValidationStatus | None = None
    house_number: int | None = None
    page: int = 1
    limit: int = DEFAULT_PAGE_LIMIT
    sort_by: DepositSort = DepositSort.DATE


@dataclass(frozen=True)
class UnfundedVoucherFilters:
    start_date: date | None = None
    end_date: date | None = None
    page: int = 1
    limit: int = DEFAULT_PAGE_LIMIT
    sort_by: DepositSort = DepositSort.DATE


@dataclass(frozen=True)
class ManualCaseFilters:
    start_date: date | None = None
    end_date: date | None = None
    house_number: int | None = None
    page: int = 1
    limit: int = DEFAULT_PAGE_LIMIT
    sort_by: ManualCaseSort = ManualCaseSort.DATE


@dataclass(frozen=True)
class UnclaimedDeposit:
    transaction_id: UUID
    amount: Decimal
    date: date
    time: time | None
    concept: str | None
    validation_status: ValidationStatus
    reason: str | None
    suggested_house_number: int | None
    concept_house_number: int | None
    processed_at: datetime | None


@dataclass(frozen=True)
class UnfundedVoucher:
    voucher_id: UUID
    amount: Decimal
    date: date
    time: time | None
    house_number: int | None
    confirmation_code: str | None
    receipt_reference: str | None


@dataclass(frozen=True)
class ManualCase:
    """A deposit waiting for (or resolved by) operator review."""

    case_id: UUID
    transaction_id: UUID
    amount: Decimal
    date: date
    time: time | None
    concept: str | None
    identified_house_number: int | None
    reason: str | None
    review_status: ManualReviewStatus
    candidates: tuple[CandidateSnapshot, ...]
    created_at: datetime | None

    @property
    def top_similarity(self) -> Decimal:
        if not self.candidates:
            return Decimal("0")
        return max(c.score for c in self.candidates)

    @property
    def candidate_count(self) -> int:
        return len(self.candidates)


@dataclass(frozen=True)
class ManualValidationStats:
    total_pending: int
    total_approved: int
    total_rejected: int
    approval_rate: Decimal
    average_minutes_to_resolve: Decimal | None
    pending_last_24_hours: int = 0
    distribution_by_house_range: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ConfirmationResult:
    """Outcome of confirming a deposit by any route (auto, approve, assign)."""

    transaction_id: UUID
    voucher_id: UUID | None
    house_number: int
    record_id: UUID
    allocation: AllocationOutcome
