"""
condo_services.reconciliation_service -- Batch deposit/voucher reconciliation.

Responsibility:
    Runs the matcher over every unconfirmed deposit in a date range,
    auto-confirms the clear matches (which allocates the money), opens
    manual cases for ambiguous ones and parks the rest in the unclaimed
    queue.  Reports matched, unclaimed, manual and unfunded ids.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes ``condo_engines.matching.DepositMatcher`` (pure) with the
    DepositConfirmer and the ORM.

Invariants enforced:
    - SAVEPOINT per deposit: a deposit whose processing raises is rolled
      back alone and reported as an ItemFailure; the run continues.
    - A voucher is consumed by at most one deposit per run, and only once
      the deposit's SAVEPOINT has committed.
    - Operator-owned deposits (any review status set) are never touched.
    - Idempotence: confirmed deposits are skipped, so a second run with no
      new data changes nothing and creates no allocation rows.
    - Deposits are processed oldest first, in chunks.

Failure modes:
    - Per-deposit errors are captured, not raised.  error_code is the
      kernel error code, or UNHANDLED_EXCEPTION for anything else.

Audit relevance:
    Each deposit's TransactionStatus stores the decision metadata (both
    house signals, every candidate with its score, the tie count) and the
    reason shown to operators.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from condo_engines.matching import (
    DepositMatcher,
    DepositSnapshot,
    MatchDecision,
    MatchDecisionType,
    VoucherSnapshot,
)
from condo_kernel.domain.clock import Clock, SystemClock
from condo_kernel.domain.reconciliation import (
    ItemFailure,
    ManualReviewStatus,
    ReconciliationSummary,
)
from condo_kernel.domain.sentinels import SYSTEM_USER_ID
from condo_kernel.exceptions import CondoKernelError
from condo_kernel.logging_config import LogContext, get_logger
from condo_kernel.models.bank import BankTransaction, Voucher
from condo_kernel.models.reconciliation import TransactionStatus
from condo_services.confirmation import DepositConfirmer

logger = get_logger("services.reconciliation")

DEFAULT_CHUNK_SIZE = 500


class ReconciliationService:
    """
    Deposit reconciliation run.

    Contract:
        ``reconcile(start_date, end_date)`` works inside the caller's
        transaction; the caller commits.  Both dates are inclusive and
        optional.

    Guarantees:
        - Every considered deposit ends in exactly one of matched,
          unclaimed, manual_cases or failures.
        - ``unfunded`` lists the vouchers still unconfirmed after the run.

    Non-goals:
        - Does NOT import bank statements or vouchers.
        - Does NOT revisit deposits that an operator has taken over.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        matcher: DepositMatcher | None = None,
        confirmer: DepositConfirmer | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.matcher = matcher or DepositMatcher()
        self.confirmer = confirmer or DepositConfirmer(session, self.clock)
        self.chunk_size = max(1, chunk_size)

    def reconcile(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> ReconciliationSummary:
        run_id = uuid4()
        with LogContext.bind(run_id=str(run_id)):
            return self._run(start_date, end_date)

    # =========================================================================
    # Run
    # =========================================================================

    def _run(
        self,
        start_date: date | None,
        end_date: date | None,
    ) -> ReconciliationSummary:
        deposit_ids = self._pending_deposit_ids(start_date, end_date)
        pool = self._voucher_pool()

        logger.info(
            "reconciliation_started",
            extra={
                "start_date": start_date,
                "end_date": end_date,
                "deposits": len(deposit_ids),
                "voucher_pool": len(pool),
            },
        )

        consumed: set[UUID] = set()
        matched: list[UUID] = []
        unclaimed: list[UUID] = []
        manual: list[UUID] = []
        failures: list[ItemFailure] = []

        for chunk in self._chunks(deposit_ids):
            deposits = self.session.execute(
                select(BankTransaction)
                .where(BankTransaction.id.in_(chunk))
                .order_by(BankTransaction.date, BankTransaction.time, BankTransaction.id)
            ).scalars().all()

            for deposit in deposits:
                deposit_id = deposit.id
                with LogContext.bind(deposit_id=str(deposit_id)):
                    savepoint = self.session.begin_nested()
                    try:
                        decision = self._reconcile_one(deposit, pool, consumed)
                        savepoint.commit()
                    except Exception as exc:
                        savepoint.rollback()
                        error_code = (
                            exc.code if isinstance(exc, CondoKernelError)
                            else "UNHANDLED_EXCEPTION"
                        )
                        failures.append(ItemFailure(
                            deposit_id=deposit_id,
                            error_code=error_code,
                            message=str(exc),
                        ))
                        logger.warning(
                            "deposit_reconciliation_failed",
                            extra={
                                "deposit_id": str(deposit_id),
                                "error_code": error_code,
                                "error": str(exc),
                            },
                        )
                        continue

                match decision.decision:
                    case MatchDecisionType.AUTO_CONFIRM:
                        consumed.add(decision.chosen.voucher_id)
                        matched.append(deposit_id)
                    case MatchDecisionType.REQUIRES_MANUAL:
                        manual.append(deposit_id)
                    case MatchDecisionType.NOT_FOUND | MatchDecisionType.CONFLICT:
                        unclaimed.append(deposit_id)

        unfunded = self._unfunded_voucher_ids(start_date, end_date)

        summary = ReconciliationSummary(
            matched=tuple(matched),
            unclaimed=tuple(unclaimed),
            unfunded=unfunded,
            manual_cases=tuple(manual),
            failures=tuple(failures),
            deposits_considered=len(deposit_ids),
        )
        logger.info(
            "reconciliation_completed",
            extra={
                "deposits": summary.deposits_considered,
                "matched": len(summary.matched),
                "unclaimed": len(summary.unclaimed),
                "manual_cases": len(summary.manual_cases),
                "unfunded": len(summary.unfunded),
                "failures": len(summary.failures),
            },
        )
        return summary

    def _reconcile_one(
        self,
        deposit: BankTransaction,
        pool: list[VoucherSnapshot],
        consumed: set[UUID],
    ) -> MatchDecision:
        snapshot = DepositSnapshot(
            deposit_id=deposit.id,
            amount=deposit.amount,
            date=deposit.date,
            time=deposit.time,
            concept=deposit.concept,
        )
        decision = self.matcher.decide(snapshot, pool, excluded_voucher_ids=consumed)
        identification = decision.identification

        status = self._status_for(deposit.id)
        status.validation_status = decision.validation_status.value
        status.reason = decision.reason
        status.cents_house_number = identification.cents_house
        status.concept_house_number = identification.concept_house
        status.identified_house_number = identification.hint
        status.match_metadata = decision.to_metadata()
        status.processed_at = self.clock.now()
        if decision.decision is MatchDecisionType.REQUIRES_MANUAL:
            status.review_status = ManualReviewStatus.PENDING.value
            status.review_requested_at = status.processed_at
        self.session.flush()

        if decision.decision is MatchDecisionType.AUTO_CONFIRM:
            voucher = self.session.execute(
                select(Voucher)
                .where(Voucher.id == decision.chosen.voucher_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one()
            self.confirmer.confirm(
                deposit,
                status,
                decision.house_number,
                actor_id=SYSTEM_USER_ID,
                voucher=voucher,
            )
            logger.info(
                "deposit_auto_confirmed",
                extra={
                    "deposit_id": str(deposit.id),
                    "voucher_id": str(voucher.id),
                    "house_number": decision.house_number,
                    "score": str(decision.chosen.score),
                },
            )
        return decision

    # =========================================================================
    # Queries
    # =========================================================================

    def _pending_deposit_ids(
        self,
        start_date: date | None,
        end_date: date | None,
    ) -> list[UUID]:
        operator_owned = (
            select(TransactionStatus.bank_transaction_id)
            .where(TransactionStatus.review_status.is_not(None))
        )
        stmt = (
            select(BankTransaction.id)
            .where(
                BankTransaction.is_deposit.is_(True),
                BankTransaction.confirmation_status.is_(False),
                BankTransaction.id.not_in(operator_owned),
            )
            .order_by(BankTransaction.date, BankTransaction.time, BankTransaction.id)
        )
        if start_date is not None:
            stmt = stmt.where(BankTransaction.date >= start_date)
        if end_date is not None:
            stmt = stmt.where(BankTransaction.date <= end_date)
        return list(self.session.execute(stmt).scalars())

    def _voucher_pool(self) -> list[VoucherSnapshot]:
        vouchers = self.session.execute(
            select(Voucher)
            .where(Voucher.confirmation_status.is_(False))
            .order_by(Voucher.date, Voucher.id)
        ).scalars()
        return [
            VoucherSnapshot(
                voucher_id=v.id,
                amount=v.amount,
                date=v.date,
                time=v.time,
                house_number=v.house_number,
            )
            for v in vouchers
        ]

    def _unfunded_voucher_ids(
        self,
        start_date: date | None,
        end_date: date | None,
    ) -> tuple[UUID, ...]:
        stmt = (
            select(Voucher.id)
            .where(Voucher.confirmation_status.is_(False))
            .order_by(Voucher.date, Voucher.id)
        )
        if start_date is not None:
            stmt = stmt.where(Voucher.date >= start_date)
        if end_date is not None:
            stmt = stmt.where(Voucher.date <= end_date)
        return tuple(self.session.execute(stmt).scalars())

    def _status_for(self, deposit_id: UUID) -> TransactionStatus:
        status = self.session.execute(
            select(TransactionStatus)
            .where(TransactionStatus.bank_transaction_id == deposit_id)
        ).scalar_one_or_none()
        if status is None:
            status = TransactionStatus(
                bank_transaction_id=deposit_id,
                created_by_id=SYSTEM_USER_ID,
            )
            self.session.add(status)
        return status

    def _chunks(self, ids: list[UUID]) -> Iterator[list[UUID]]:
        for offset in range(0, len(ids), self.chunk_size):
            yield ids[offset:offset + self.chunk_size]
