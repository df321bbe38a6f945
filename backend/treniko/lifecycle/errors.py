"""
Structured error classes for the subscription lifecycle.
"""

from typing import Optional


class LifecycleError(Exception):
    """Base exception for lifecycle sweep errors."""
    pass


class TransitionConflict(LifecycleError):
    """
    Raised when a status transition lost a race with another writer.

    The conditional update found the row no longer in the expected status
    (a concurrent sweep or a plan change got there first). Recovered by
    skipping the tenant; the next sweep re-evaluates it.
    """

    def __init__(self, tenant_id: str, expected_status: str, target_status: str):
        self.tenant_id = tenant_id
        self.expected_status = expected_status
        self.target_status = target_status
        super().__init__(
            f"Tenant {tenant_id}: expected status '{expected_status}' "
            f"for transition to '{target_status}' but row changed"
        )


class DuplicateNotificationRejected(LifecycleError):
    """
    Raised when the ledger's uniqueness guard rejects an append.

    Not a failure: the notification already exists, so the caller treats
    it as a successful no-op.
    """

    def __init__(self, tenant_id: str, notification_type: str, dedup_key: Optional[str] = None):
        self.tenant_id = tenant_id
        self.notification_type = notification_type
        self.dedup_key = dedup_key
        super().__init__(
            f"Notification '{notification_type}' already recorded for tenant {tenant_id}"
        )
