"""
Module: condo_kernel.selectors.manual_case_selector
Responsibility: Read-only access to manual validation cases and the
    operator statistics over them.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - A case is a TransactionStatus whose review_status is not null.
    - Listing returns pending cases only; resolved cases are reachable by
      id through ``get_case``.
    - Similarity and candidate-count sorts read the candidate snapshots in
      the matching metadata, so they are applied in Python after the SQL
      filters.

Failure modes:
    - ManualCaseNotFoundError from ``get_case`` for unknown ids.

Audit relevance:
    Statistics are computed from the append-only approvals table, so they
    cannot drift from the decisions actually recorded.
"""

from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import func, select

from condo_kernel.domain.houses import HouseNumberBounds
from condo_kernel.domain.reconciliation import (
    ManualAction,
    ManualCase,
    ManualCaseFilters,
    ManualCaseSort,
    ManualReviewStatus,
    ManualValidationStats,
    Page,
    candidates_from_metadata,
    clamp_pagination,
)
from condo_kernel.exceptions import ManualCaseNotFoundError
from condo_kernel.models.bank import BankTransaction
from condo_kernel.models.reconciliation import (
    ManualValidationApproval,
    TransactionStatus,
)
from condo_kernel.selectors.base import BaseSelector

UNKNOWN_RANGE = "unknown"


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ManualCaseSelector(BaseSelector[TransactionStatus]):
    """
    Manual validation case reads.

    Guarantees:
        - Date sort: newest deposit first.
        - Similarity sort: lowest top score first (hardest cases first).
        - Candidate sort: most candidates first.
    """

    def get_case(self, case_id: UUID) -> ManualCase:
        row = self.session.execute(
            select(TransactionStatus, BankTransaction)
            .join(
                BankTransaction,
                BankTransaction.id == TransactionStatus.bank_transaction_id,
            )
            .where(
                TransactionStatus.id == case_id,
                TransactionStatus.review_status.is_not(None),
            )
        ).one_or_none()
        if row is None:
            raise ManualCaseNotFoundError(str(case_id))
        return self._to_case(*row)

    def list_pending(self, filters: ManualCaseFilters) -> Page[ManualCase]:
        page, limit = clamp_pagination(filters.page, filters.limit)

        stmt = (
            select(TransactionStatus, BankTransaction)
            .join(
                BankTransaction,
                BankTransaction.id == TransactionStatus.bank_transaction_id,
            )
            .where(TransactionStatus.review_status == ManualReviewStatus.PENDING.value)
        )
        if filters.start_date is not None:
            stmt = stmt.where(BankTransaction.date >= filters.start_date)
        if filters.end_date is not None:
            stmt = stmt.where(BankTransaction.date <= filters.end_date)
        if filters.house_number is not None:
            stmt = stmt.where(
                TransactionStatus.identified_house_number == filters.house_number
            )

        cases = [self._to_case(status, tx) for status, tx in self.session.execute(stmt)]

        match filters.sort_by:
            case ManualCaseSort.SIMILARITY:
                cases.sort(key=lambda c: (c.top_similarity, c.date, str(c.case_id)))
            case ManualCaseSort.CANDIDATES:
                cases.sort(key=lambda c: (-c.candidate_count, c.date, str(c.case_id)))
            case ManualCaseSort.DATE:
                cases.sort(key=lambda c: str(c.case_id))
                cases.sort(key=lambda c: (c.date, c.time is not None, c.time), reverse=True)

        offset = (page - 1) * limit
        return Page(
            items=tuple(cases[offset:offset + limit]),
            total_count=len(cases),
            page=page,
            limit=limit,
        )

    def statistics(
        self,
        now: datetime,
        bounds: HouseNumberBounds | None = None,
    ) -> ManualValidationStats:
        bounds = bounds or HouseNumberBounds()

        counts = dict(
            self.session.execute(
                select(TransactionStatus.review_status, func.count())
                .where(TransactionStatus.review_status.is_not(None))
                .group_by(TransactionStatus.review_status)
            ).all()
        )
        pending = counts.get(ManualReviewStatus.PENDING.value, 0)
        approved = counts.get(ManualReviewStatus.APPROVED.value, 0)
        rejected = counts.get(ManualReviewStatus.REJECTED.value, 0)

        decided = approved + rejected
        approval_rate = (
            (Decimal(approved) / Decimal(decided)).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP
            )
            if decided
            else Decimal("0")
        )

        latencies = [
            _as_utc(decided_at) - _as_utc(requested_at)
            for decided_at, requested_at in self.session.execute(
                select(
                    ManualValidationApproval.decided_at,
                    TransactionStatus.review_requested_at,
                )
                .join(
                    TransactionStatus,
                    TransactionStatus.id == ManualValidationApproval.transaction_status_id,
                )
                .where(
                    ManualValidationApproval.action.in_(
                        [ManualAction.APPROVE.value, ManualAction.REJECT.value]
                    ),
                    TransactionStatus.review_requested_at.is_not(None),
                )
            )
        ]
        average_minutes = None
        if latencies:
            total_seconds = sum(delta.total_seconds() for delta in latencies)
            average_minutes = (
                Decimal(str(total_seconds)) / Decimal(60) / Decimal(len(latencies))
            ).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

        pending_rows = self.session.execute(
            select(
                TransactionStatus.identified_house_number,
                TransactionStatus.review_requested_at,
            )
            .where(TransactionStatus.review_status == ManualReviewStatus.PENDING.value)
        ).all()

        cutoff = _as_utc(now) - timedelta(hours=24)
        recent = sum(
            1 for _, requested_at in pending_rows
            if requested_at is not None and _as_utc(requested_at) >= cutoff
        )

        distribution = {label: 0 for label in bounds.range_labels()}
        for house_number, _ in pending_rows:
            if house_number is not None and bounds.contains(house_number):
                label = bounds.range_label(house_number)
            else:
                label = UNKNOWN_RANGE
            distribution[label] = distribution.get(label, 0) + 1

        return ManualValidationStats(
            total_pending=pending,
            total_approved=approved,
            total_rejected=rejected,
            approval_rate=approval_rate,
            average_minutes_to_resolve=average_minutes,
            pending_last_24_hours=recent,
            distribution_by_house_range=distribution,
        )

    def _to_case(self, status: TransactionStatus, tx: BankTransaction) -> ManualCase:
        return ManualCase(
            case_id=status.id,
            transaction_id=tx.id,
            amount=tx.amount,
            date=tx.date,
            time=tx.time,
            concept=tx.concept,
            identified_house_number=status.identified_house_number,
            reason=status.reason,
            review_status=ManualReviewStatus(status.review_status),
            candidates=candidates_from_metadata(status.match_metadata),
            created_at=status.review_requested_at,
        )
