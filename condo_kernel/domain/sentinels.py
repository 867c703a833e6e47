"""
Sentinel identities used by system-initiated writes.

SYSTEM_USER_ID owns houses auto-created during reconciliation and is the
actor for periods created on demand.  SYSTEM_RECORD_ID is the record id of
allocations produced by credit auto-application; it never references a real
deposit or voucher.
"""

from uuid import UUID

SYSTEM_USER_ID: UUID = UUID("00000000-0000-0000-0000-000000000000")

SYSTEM_RECORD_ID: UUID = UUID("00000000-0000-0000-0000-000000000000")

SYSTEM_USER_NAME = "Sistema"
