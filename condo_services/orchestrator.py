"""
condo_services.orchestrator -- Central DI container for reconciliation services.

Responsibility:
    Creates every kernel and orchestration service exactly once from one
    CondoSettings and wires them together, so a reconciliation run, the
    operator queues and the balance reads all share the same session,
    clock, bounds and fallbacks.

Architecture position:
    Services -- top of the service layer.  The only place that turns
    settings into engines and services.

Invariants enforced:
    - Single-instance lifecycle: one PeriodService, one HouseBalanceService
      and one AllocationService per orchestrator.
    - DI transparency: all wiring is visible in ``__init__``.

Usage:
    with session_scope() as session:
        services = CondoOrchestrator(session, get_active_settings())
        summary = services.reconciliation.reconcile(date(2025, 3, 1))
        services.manual_validation.get_cases()
        services.history.get_house_payment_history(house_id, limit_months=6)
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from condo_config import CondoSettings
from condo_config.bridges import (
    build_charge_fallbacks,
    build_deposit_matcher,
    build_house_bounds,
)
from condo_engines.allocation import PaymentAllocationEngine
from condo_kernel.domain.clock import Clock, SystemClock
from condo_kernel.selectors.payment_history_selector import PaymentHistorySelector
from condo_kernel.services.balance_service import HouseBalanceService
from condo_kernel.services.house_service import HouseService
from condo_kernel.services.period_service import PeriodService
from condo_services.allocation_service import AllocationService
from condo_services.charge_adjustment_service import ChargeAdjustmentService
from condo_services.confirmation import DepositConfirmer
from condo_services.credit_service import CreditApplicationService
from condo_services.manual_validation_service import ManualValidationService
from condo_services.queue_service import QueueService
from condo_services.reconciliation_service import ReconciliationService


class CondoOrchestrator:
    """Central factory for condo services.

    Contract:
        Receives a SQLAlchemy Session, optional CondoSettings (defaults
        when omitted) and an optional Clock.

    Guarantees:
        - All services share the same Session and Clock instances.

    Non-goals:
        - Does NOT manage transaction boundaries (caller's responsibility).
    """

    def __init__(
        self,
        session: Session,
        settings: CondoSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self.settings = settings or CondoSettings()

        bounds = build_house_bounds(self.settings)
        fallbacks = build_charge_fallbacks(self.settings)

        # Kernel services
        self.house_service = HouseService(session, self._clock, bounds)
        self.period_service = PeriodService(session, self._clock, fallbacks)
        self.balance_service = HouseBalanceService(session, self._clock)
        self.history = PaymentHistorySelector(session, self._clock)

        # Money movement (depends on period + balance)
        self.allocation = AllocationService(
            session,
            self._clock,
            fallbacks,
            period_service=self.period_service,
            balance_service=self.balance_service,
            engine=PaymentAllocationEngine(),
        )
        self.credit = CreditApplicationService(
            session,
            self._clock,
            fallbacks,
            period_service=self.period_service,
            balance_service=self.balance_service,
        )
        self.charges = ChargeAdjustmentService(
            session,
            self._clock,
            fallbacks,
            period_service=self.period_service,
            balance_service=self.balance_service,
        )
        self.confirmer = DepositConfirmer(
            session,
            self._clock,
            house_service=self.house_service,
            allocation_service=self.allocation,
        )

        # Operator-facing workflows (depend on confirmer)
        self.reconciliation = ReconciliationService(
            session,
            self._clock,
            matcher=build_deposit_matcher(self.settings),
            confirmer=self.confirmer,
            chunk_size=self.settings.reconciliation.chunk_size,
        )
        self.queues = QueueService(session, self._clock, bounds, confirmer=self.confirmer)
        self.manual_validation = ManualValidationService(
            session, self._clock, bounds, confirmer=self.confirmer,
        )
