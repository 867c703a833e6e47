"""
condo_services -- Package init and public API.

Responsibility:
    Stateful orchestration services that compose the pure engines
    (condo_engines/) with database sessions and the kernel services:
    batch reconciliation, confirmation, allocation, credit application,
    operator queues and manual validation.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_kernel_boundary.py):
        condo_services/ -> condo_engines/  (allowed)
        condo_services/ -> condo_kernel/   (allowed)
        condo_engines/  -> condo_services/ (FORBIDDEN)
        condo_kernel/   -> condo_services/ (FORBIDDEN)

Invariants enforced:
    - Layer isolation: condo_kernel and condo_engines never import from
      this package.
    - Services flush only; the caller owns commit and rollback.

Audit relevance:
    - This package is the canonical import surface for external consumers.
"""

from condo_kernel.logging_config import get_logger

logger = get_logger("services")

from condo_services.allocation_service import AllocationService
from condo_services.confirmation import DepositConfirmer
from condo_services.credit_service import CreditApplicationService
from condo_services.manual_validation_service import ManualValidationService
from condo_services.orchestrator import CondoOrchestrator
from condo_services.queue_service import QueueService
from condo_services.reconciliation_service import ReconciliationService

__all__ = [
    "AllocationService",
    "CondoOrchestrator",
    "CreditApplicationService",
    "DepositConfirmer",
    "ManualValidationService",
    "QueueService",
    "ReconciliationService",
]
