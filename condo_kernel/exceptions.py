"""
Typed Exception Hierarchy for the Condo Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the reconciliation batch, operator tooling, an API layer) must react
to failures by category, not by parsing messages:

  - A ValidationError means "fix the input and retry"; nothing was written.
  - A ConflictError means "someone already acted"; the original state stands.
  - An AllocationInvariantError means the whole allocation was abandoned.

Every exception carries:
  1. A CODE class attribute (machine-readable, API-safe)
  2. Structured attributes (house_number, case_id, ...) instead of prose only

Example:
    try:
        manual_validation.approve_case(case_id, voucher_id, actor_id=op)
    except CaseAlreadyResolvedError as e:
        respond(409, code=e.code, status=e.current_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CondoKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidHouseNumberError
    |   +-- InvalidAmountError
    |   +-- UnknownPeriodError
    |   +-- VoucherNotCandidateError
    |   +-- InvalidPeriodConfigError
    |   +-- HouseNumberRequiredError
    |   +-- InvalidHistoryRangeError
    |
    +-- NotFoundError
    |   +-- BankTransactionNotFoundError
    |   +-- VoucherNotFoundError
    |   +-- HouseNotFoundError
    |   +-- ManualCaseNotFoundError
    |   +-- ChargeNotFoundError
    |
    +-- ConflictError
    |   +-- CaseAlreadyResolvedError
    |   +-- DepositAlreadyConfirmedError
    |   +-- VoucherAlreadyConfirmedError
    |   +-- DepositNotUnclaimedError
    |   +-- ChargeAlreadyExistsError
    |   +-- ChargeAlreadyCondonedError
    |   +-- PenaltyAlreadyPaidError
    |
    +-- AllocationInvariantError
    |   +-- NonPositiveAllocationError
    |   +-- PeriodConfigNotFoundError
    |   +-- AllocationConservationError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                         | When Raised
--------------|------------------------------|-----------------------------------------
Validation    | INVALID_HOUSE_NUMBER         | House number outside [min, max]
              | INVALID_AMOUNT               | Zero/negative amount at an input boundary
              | UNKNOWN_PERIOD               | Period id or (year, month) not usable
              | VOUCHER_NOT_CANDIDATE        | Approved voucher was not a case candidate
              | INVALID_PERIOD_CONFIG        | Config range/amounts malformed
              | HOUSE_NUMBER_REQUIRED        | Confirmation with no resolvable house
              | INVALID_HISTORY_RANGE        | History window outside 1..60 months
--------------|------------------------------|-----------------------------------------
Not found     | BANK_TRANSACTION_NOT_FOUND   | Deposit id doesn't exist
              | VOUCHER_NOT_FOUND            | Voucher id doesn't exist
              | HOUSE_NOT_FOUND              | House id doesn't exist
              | MANUAL_CASE_NOT_FOUND        | Case id doesn't exist or is not a case
              | CHARGE_NOT_FOUND             | No materialized charge for house/period/concept
--------------|------------------------------|-----------------------------------------
Conflict      | CASE_ALREADY_RESOLVED        | Second approve/reject on a case
              | DEPOSIT_ALREADY_CONFIRMED    | Deposit already reconciled
              | VOUCHER_ALREADY_CONFIRMED    | Voucher already linked to a deposit
              | DEPOSIT_NOT_UNCLAIMED        | Deposit is not in the unclaimed queue
              | CHARGE_ALREADY_EXISTS        | Initial debt for an already charged concept
              | CHARGE_ALREADY_CONDONED      | Penalty condoned twice
              | PENALTY_ALREADY_PAID         | Condoning a penalty that received money
--------------|------------------------------|-----------------------------------------
Allocation    | NON_POSITIVE_ALLOCATION      | Amount to distribute <= 0
              | PERIOD_CONFIG_NOT_FOUND      | No PeriodConfig covers the period start
              | ALLOCATION_NOT_CONSERVED     | Plan does not add up to the amount
--------------|------------------------------|-----------------------------------------
Immutability  | IMMUTABILITY_VIOLATION       | Audit/allocation row mutated

===============================================================================
"""


class CondoKernelError(Exception):
    """
    Base exception for all condo kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CONDO_KERNEL_ERROR"


# Validation exceptions


class ValidationError(CondoKernelError):
    """Malformed input. Rejected synchronously, no state change."""

    code: str = "VALIDATION_ERROR"


class InvalidHouseNumberError(ValidationError):
    """House number outside the configured bounds."""

    code: str = "INVALID_HOUSE_NUMBER"

    def __init__(self, house_number: int, min_number: int, max_number: int):
        self.house_number = house_number
        self.min_number = min_number
        self.max_number = max_number
        super().__init__(
            f"Invalid house number {house_number}: "
            f"must be between {min_number} and {max_number}"
        )


class InvalidAmountError(ValidationError):
    """Amount is not a valid money value (at most two decimal places)."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: str, field: str = "amount"):
        self.amount = amount
        self.field = field
        super().__init__(f"Invalid {field}: {amount}")


class UnknownPeriodError(ValidationError):
    """Period reference cannot be resolved."""

    code: str = "UNKNOWN_PERIOD"

    def __init__(self, period_ref: str):
        self.period_ref = period_ref
        super().__init__(f"Unknown period: {period_ref}")


class VoucherNotCandidateError(ValidationError):
    """Approved voucher is not among the case's original candidates."""

    code: str = "VOUCHER_NOT_CANDIDATE"

    def __init__(self, case_id: str, voucher_id: str):
        self.case_id = case_id
        self.voucher_id = voucher_id
        super().__init__(
            f"Voucher {voucher_id} is not a candidate of manual case {case_id}"
        )


class InvalidPeriodConfigError(ValidationError):
    """Period configuration values are inconsistent."""

    code: str = "INVALID_PERIOD_CONFIG"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid period configuration: {reason}")


class HouseNumberRequiredError(ValidationError):
    """No house number was given and none could be identified."""

    code: str = "HOUSE_NUMBER_REQUIRED"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(
            f"Deposit {transaction_id} has no identifiable house; a house number is required"
        )


class InvalidHistoryRangeError(ValidationError):
    code: str = "INVALID_HISTORY_RANGE"

    def __init__(self, limit_months: int, min_months: int, max_months: int):
        self.limit_months = limit_months
        self.min_months = min_months
        self.max_months = max_months
        super().__init__(
            f"History window of {limit_months} months must be between "
            f"{min_months} and {max_months}"
        )


# Not-found exceptions


class NotFoundError(CondoKernelError):
    """Referenced entity does not exist. No state change."""

    code: str = "NOT_FOUND"


class BankTransactionNotFoundError(NotFoundError):
    code: str = "BANK_TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Bank transaction not found: {transaction_id}")


class VoucherNotFoundError(NotFoundError):
    code: str = "VOUCHER_NOT_FOUND"

    def __init__(self, voucher_id: str):
        self.voucher_id = voucher_id
        super().__init__(f"Voucher not found: {voucher_id}")


class HouseNotFoundError(NotFoundError):
    code: str = "HOUSE_NOT_FOUND"

    def __init__(self, house_ref: str):
        self.house_ref = house_ref
        super().__init__(f"House not found: {house_ref}")


class ManualCaseNotFoundError(NotFoundError):
    code: str = "MANUAL_CASE_NOT_FOUND"

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Manual validation case not found: {case_id}")


class ChargeNotFoundError(NotFoundError):
    code: str = "CHARGE_NOT_FOUND"

    def __init__(self, house_id: str, period_ref: str, concept_type: str):
        self.house_id = house_id
        self.period_ref = period_ref
        self.concept_type = concept_type
        super().__init__(
            f"No {concept_type} charge for house {house_id} in period {period_ref}"
        )


# Conflict exceptions


class ConflictError(CondoKernelError):
    """Action collides with an already-recorded outcome. Original state kept."""

    code: str = "CONFLICT"


class CaseAlreadyResolvedError(ConflictError):
    """
    Manual case was already approved or rejected.

    Cases are single-writer: the first decision wins and every later
    decision fails with this error.
    """

    code: str = "CASE_ALREADY_RESOLVED"

    def __init__(self, case_id: str, current_status: str):
        self.case_id = case_id
        self.current_status = current_status
        super().__init__(
            f"Manual case {case_id} is already resolved ({current_status})"
        )


class DepositAlreadyConfirmedError(ConflictError):
    code: str = "DEPOSIT_ALREADY_CONFIRMED"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Deposit {transaction_id} is already confirmed")


class VoucherAlreadyConfirmedError(ConflictError):
    code: str = "VOUCHER_ALREADY_CONFIRMED"

    def __init__(self, voucher_id: str):
        self.voucher_id = voucher_id
        super().__init__(f"Voucher {voucher_id} is already confirmed")


class DepositNotUnclaimedError(ConflictError):
    """Deposit is owned by another workflow (manual case, or never reconciled)."""

    code: str = "DEPOSIT_NOT_UNCLAIMED"

    def __init__(self, transaction_id: str, validation_status: str | None):
        self.transaction_id = transaction_id
        self.validation_status = validation_status
        super().__init__(
            f"Deposit {transaction_id} is not unclaimed "
            f"(validation status: {validation_status})"
        )


class ChargeAlreadyExistsError(ConflictError):
    """Expected charge already materialized; charges are never rewritten."""

    code: str = "CHARGE_ALREADY_EXISTS"

    def __init__(self, charge_id: str, concept_type: str, expected_amount: str):
        self.charge_id = charge_id
        self.concept_type = concept_type
        self.expected_amount = expected_amount
        super().__init__(
            f"{concept_type} charge {charge_id} already exists "
            f"(expected {expected_amount})"
        )


class ChargeAlreadyCondonedError(ConflictError):
    code: str = "CHARGE_ALREADY_CONDONED"

    def __init__(self, charge_id: str):
        self.charge_id = charge_id
        super().__init__(f"Charge {charge_id} is already condoned")


class PenaltyAlreadyPaidError(ConflictError):
    """Money was allocated to the penalty, so it can no longer be condoned."""

    code: str = "PENALTY_ALREADY_PAID"

    def __init__(self, charge_id: str, paid_amount: str):
        self.charge_id = charge_id
        self.paid_amount = paid_amount
        super().__init__(
            f"Penalty {charge_id} already received {paid_amount} and cannot be condoned"
        )


# Allocation exceptions


class AllocationInvariantError(CondoKernelError):
    """Allocation cannot proceed. The whole allocation is abandoned."""

    code: str = "ALLOCATION_INVARIANT"


class NonPositiveAllocationError(AllocationInvariantError):
    code: str = "NON_POSITIVE_ALLOCATION"

    def __init__(self, amount: str):
        self.amount = amount
        super().__init__(f"Allocation amount must be positive, got {amount}")


class PeriodConfigNotFoundError(AllocationInvariantError):
    code: str = "PERIOD_CONFIG_NOT_FOUND"

    def __init__(self, as_of: str):
        self.as_of = as_of
        super().__init__(f"No applicable period configuration for {as_of}")


class AllocationConservationError(AllocationInvariantError):
    """Allocated + credited + cents does not equal the distributed amount."""

    code: str = "ALLOCATION_NOT_CONSERVED"

    def __init__(self, amount: str, accounted: str):
        self.amount = amount
        self.accounted = accounted
        super().__init__(
            f"Allocation not conserved: amount {amount}, accounted {accounted}"
        )


# Immutability exceptions


class ImmutabilityError(CondoKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
