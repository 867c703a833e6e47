"""
condo_services.manual_validation_service -- Operator review of ambiguous deposits.

Responsibility:
    Lists pending manual cases, reports review statistics and applies the
    operator's decision: approve a case with one of its candidate vouchers
    (which confirms and allocates), or reject it (which sends the deposit
    to the unclaimed queue without moving money).

Architecture position:
    Services -- stateful orchestration.  Reads go through
    ManualCaseSelector; approvals go through the DepositConfirmer.

Invariants enforced:
    - Review lifecycle: pending -> approved | rejected; both terminal.
    - The case row is locked (SELECT ... FOR UPDATE) before its status is
      checked, so two concurrent approvals cannot both succeed.
    - An approved voucher must be one of the case's recorded candidates.
    - Every decision writes one append-only approval row.

Failure modes:
    - ManualCaseNotFoundError, CaseAlreadyResolvedError,
      VoucherNotCandidateError, VoucherNotFoundError,
      VoucherAlreadyConfirmedError, HouseNumberRequiredError,
      InvalidHouseNumberError.

Audit relevance:
    Approval rows record who decided, when, which voucher and the notes or
    rejection reason.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from condo_kernel.domain.clock import Clock, SystemClock
from condo_kernel.domain.houses import HouseNumberBounds
from condo_kernel.domain.reconciliation import (
    ConfirmationResult,
    ManualAction,
    ManualCase,
    ManualCaseFilters,
    ManualReviewStatus,
    ManualValidationStats,
    Page,
    ValidationStatus,
    can_transition,
    candidates_from_metadata,
)
from condo_kernel.exceptions import (
    CaseAlreadyResolvedError,
    HouseNumberRequiredError,
    ManualCaseNotFoundError,
    VoucherAlreadyConfirmedError,
    VoucherNotCandidateError,
    VoucherNotFoundError,
)
from condo_kernel.logging_config import LogContext, get_logger
from condo_kernel.models.bank import BankTransaction, Voucher
from condo_kernel.models.reconciliation import (
    ManualValidationApproval,
    TransactionStatus,
)
from condo_kernel.selectors.manual_case_selector import ManualCaseSelector
from condo_services.confirmation import DepositConfirmer

logger = get_logger("services.manual_validation")


class ManualValidationService:
    """
    Manual validation cases.

    Contract:
        A case is the TransactionStatus of a deposit whose review status is
        set.  ``approve_case`` and ``reject_case`` are valid only while the
        case is pending.

    Guarantees:
        - A second decision on the same case raises CaseAlreadyResolvedError
          and changes nothing.
        - Rejection never creates a payment record or allocation.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        bounds: HouseNumberBounds | None = None,
        confirmer: DepositConfirmer | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.bounds = bounds or HouseNumberBounds()
        self.confirmer = confirmer or DepositConfirmer(session, self.clock)
        self.selector = ManualCaseSelector(session)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_cases(self, filters: ManualCaseFilters | None = None) -> Page[ManualCase]:
        return self.selector.list_pending(filters or ManualCaseFilters())

    def get_case(self, case_id: UUID) -> ManualCase:
        return self.selector.get_case(case_id)

    def get_statistics(self) -> ManualValidationStats:
        return self.selector.statistics(self.clock.now(), self.bounds)

    # =========================================================================
    # Decisions
    # =========================================================================

    def approve_case(
        self,
        case_id: UUID,
        voucher_id: UUID,
        actor_id: UUID,
        notes: str | None = None,
        house_number: int | None = None,
    ) -> ConfirmationResult:
        """
        Confirm the case's deposit with ``voucher_id``.

        The house is ``house_number`` when given, else the house identified
        for the deposit, else the voucher's house.
        """
        with LogContext.bind(case_id=str(case_id), actor_id=str(actor_id)):
            with self.session.begin_nested():
                status = self._lock_pending(case_id, ManualReviewStatus.APPROVED)

                candidate_ids = {
                    c.voucher_id for c in candidates_from_metadata(status.match_metadata)
                }
                if voucher_id not in candidate_ids:
                    raise VoucherNotCandidateError(str(case_id), str(voucher_id))

                voucher = self.session.execute(
                    select(Voucher)
                    .where(Voucher.id == voucher_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one_or_none()
                if voucher is None:
                    raise VoucherNotFoundError(str(voucher_id))
                if voucher.confirmation_status:
                    raise VoucherAlreadyConfirmedError(str(voucher_id))

                deposit = self.session.get(BankTransaction, status.bank_transaction_id)

                resolved_house = house_number
                if resolved_house is None:
                    resolved_house = status.identified_house_number
                if resolved_house is None:
                    resolved_house = voucher.house_number
                if resolved_house is None:
                    raise HouseNumberRequiredError(str(deposit.id))
                self.bounds.validate(resolved_house)

                result = self.confirmer.confirm(
                    deposit, status, resolved_house, actor_id, voucher=voucher,
                )
                status.review_status = ManualReviewStatus.APPROVED.value
                status.reason = "Approved by operator"
                self._record_decision(
                    status, ManualAction.APPROVE, actor_id, notes, voucher_id=voucher_id,
                )

            logger.info(
                "manual_case_approved",
                extra={
                    "case_id": str(case_id),
                    "voucher_id": str(voucher_id),
                    "house_number": resolved_house,
                },
            )
        return result

    def reject_case(
        self,
        case_id: UUID,
        rejection_reason: str,
        actor_id: UUID,
        notes: str | None = None,
    ) -> ManualCase:
        """Reject the case; its deposit moves to the unclaimed queue."""
        with LogContext.bind(case_id=str(case_id), actor_id=str(actor_id)):
            with self.session.begin_nested():
                status = self._lock_pending(case_id, ManualReviewStatus.REJECTED)

                status.validation_status = ValidationStatus.NOT_FOUND.value
                status.review_status = ManualReviewStatus.REJECTED.value
                status.reason = f"Rejected by operator: {rejection_reason}"
                status.processed_at = self.clock.now()
                status.updated_by_id = actor_id
                self._record_decision(
                    status,
                    ManualAction.REJECT,
                    actor_id,
                    notes,
                    rejection_reason=rejection_reason,
                )

            logger.info(
                "manual_case_rejected",
                extra={"case_id": str(case_id), "reason": rejection_reason},
            )
        return self.selector.get_case(case_id)

    # =========================================================================
    # Internals
    # =========================================================================

    def _lock_pending(
        self,
        case_id: UUID,
        target: ManualReviewStatus,
    ) -> TransactionStatus:
        status = self.session.execute(
            select(TransactionStatus)
            .where(TransactionStatus.id == case_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if status is None or status.review_status is None:
            raise ManualCaseNotFoundError(str(case_id))

        current = ManualReviewStatus(status.review_status)
        if not can_transition(current, target):
            raise CaseAlreadyResolvedError(str(case_id), current.value)
        return status

    def _record_decision(
        self,
        status: TransactionStatus,
        action: ManualAction,
        actor_id: UUID,
        notes: str | None,
        voucher_id: UUID | None = None,
        rejection_reason: str | None = None,
    ) -> None:
        self.session.add(ManualValidationApproval(
            transaction_status_id=status.id,
            bank_transaction_id=status.bank_transaction_id,
            voucher_id=voucher_id,
            action=action.value,
            approved_by_id=actor_id,
            notes=notes,
            rejection_reason=rejection_reason,
            decided_at=self.clock.now(),
        ))
        self.session.flush()
