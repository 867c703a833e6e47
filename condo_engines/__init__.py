"""
condo_engines -- Pure calculation engines for condominium reconciliation.

Responsibility:
    House identification from deposit cents and concept text, deposit to
    voucher scoring and decision, and FIFO payment allocation planning.

Architecture position:
    Engines -- pure functions over frozen value objects.

    Dependency direction:
        condo_engines/ -> condo_kernel/domain, db/types, logging_config
        condo_engines/ -> condo_services/   (FORBIDDEN)
        condo_kernel/  -> condo_engines/    (FORBIDDEN)

Invariants enforced:
    - No I/O, no clock, no database session in any engine.
    - Every engine entry point is wrapped by ``@traced_engine``.
"""

from condo_engines.allocation import (
    AllocationPlan,
    ChargeLine,
    PaymentAllocationEngine,
    PlannedAllocation,
    accumulate_cents,
)
from condo_engines.house_identifier import (
    ConceptConfidence,
    ConceptExtraction,
    HouseIdentification,
    HouseIdentifier,
    IdentificationOutcome,
    extract_concept_house,
    fraction_digits,
    house_from_cents,
    house_from_fraction_digits,
)
from condo_engines.matching import (
    DepositMatcher,
    DepositSnapshot,
    MatchDecision,
    MatchDecisionType,
    MatchingPolicy,
    ScoredCandidate,
    VoucherSnapshot,
    date_difference_hours,
)
from condo_engines.tracer import traced_engine

__all__ = [
    "AllocationPlan",
    "ChargeLine",
    "PaymentAllocationEngine",
    "PlannedAllocation",
    "accumulate_cents",
    "ConceptConfidence",
    "ConceptExtraction",
    "HouseIdentification",
    "HouseIdentifier",
    "IdentificationOutcome",
    "extract_concept_house",
    "fraction_digits",
    "house_from_cents",
    "house_from_fraction_digits",
    "DepositMatcher",
    "DepositSnapshot",
    "MatchDecision",
    "MatchDecisionType",
    "MatchingPolicy",
    "ScoredCandidate",
    "VoucherSnapshot",
    "date_difference_hours",
    "traced_engine",
]
