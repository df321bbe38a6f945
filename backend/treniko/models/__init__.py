"""
Database models.

Importing this package registers every table on Base.metadata.
"""

from treniko.models.plan import SubscriptionPlan
from treniko.models.subscription import (
    TenantSubscription,
    SubscriptionStatus,
    BillingPeriod,
    READ_ONLY_STATUSES,
)
from treniko.models.notification import (
    SubscriptionNotification,
    NotificationType,
    DEDUP_WINDOWS,
    build_dedup_key,
)
from treniko.models.usage import Client, TrainingSession

__all__ = [
    "SubscriptionPlan",
    "TenantSubscription",
    "SubscriptionStatus",
    "BillingPeriod",
    "READ_ONLY_STATUSES",
    "SubscriptionNotification",
    "NotificationType",
    "DEDUP_WINDOWS",
    "build_dedup_key",
    "Client",
    "TrainingSession",
]
