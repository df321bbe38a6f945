"""
Business logic services.
"""

from treniko.services.subscription_service import SubscriptionService

__all__ = ["SubscriptionService"]
