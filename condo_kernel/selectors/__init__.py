"""Read-only selectors for the reconciliation queues, manual cases and payment history."""

from condo_kernel.selectors.base import BaseSelector
from condo_kernel.selectors.manual_case_selector import ManualCaseSelector
from condo_kernel.selectors.payment_history_selector import PaymentHistorySelector
from condo_kernel.selectors.queue_selector import QueueSelector

__all__ = [
    "BaseSelector",
    "ManualCaseSelector",
    "PaymentHistorySelector",
    "QueueSelector",
]
