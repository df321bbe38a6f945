"""
Treniko subscription lifecycle and entitlement enforcement.

Two independent halves share only persisted rows:
- jobs.subscription_sweeper: daily sweep advancing each tenant's subscription
- entitlements: request-time gate built on a per-request entitlement snapshot
"""

__version__ = "1.0.0"
