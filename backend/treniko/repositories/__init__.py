"""
Repository layer for data access.
"""

from treniko.repositories.subscription_repository import SubscriptionRepository
from treniko.repositories.notification_ledger import NotificationLedger

__all__ = [
    "SubscriptionRepository",
    "NotificationLedger",
]
