"""
Condo Kernel - reconciliation and payment-allocation core

A persistence-backed core for condominium payments with:
- Deposit/voucher matching state (transaction statuses, manual cases)
- Effective-dated period configuration and materialized charges
- Append-only payment allocations
- Per-house balances with sub-unit cents carry-over
"""

__version__ = "0.1.0"
