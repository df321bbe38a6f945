"""
Subscription lifecycle rules.

Pure decision logic: (current state, today, recently sent notifications)
-> (next status, notification to emit). No I/O.

Rules, first match wins:
1. active, period ends in exactly 7 days, no 7d warning in the last 7 days
   -> emit expiry_warning_7d
2. active, period ends in exactly 3 days, no 3d warning in the last 3 days
   -> emit expiry_warning_3d
3. active, period ended before today, not cancel_at_period_end
   -> expired + subscription_expired
4. expired, period ended more than 30 days ago
   -> suspended + account_suspended
5. otherwise nothing

Warnings use exact date equality, so a missed sweep day loses that warning.
Transitions use inequalities and self-heal on the next run.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import AbstractSet, Optional, Tuple

from treniko.models.notification import NotificationType
from treniko.models.subscription import SubscriptionStatus

FIRST_WARNING_DAYS = 7
FINAL_WARNING_DAYS = 3
SUSPEND_AFTER_DAYS = 30


NOTIFICATION_TEMPLATES = {
    NotificationType.EXPIRY_WARNING_7D: (
        "Subscription Expiring Soon",
        "Your {plan_name} subscription will expire in 7 days. "
        "Please renew to avoid service interruption.",
    ),
    NotificationType.EXPIRY_WARNING_3D: (
        "Subscription Expiring in 3 Days",
        "URGENT: Your {plan_name} subscription will expire in 3 days. "
        "Renew now to maintain access to all features.",
    ),
    NotificationType.SUBSCRIPTION_EXPIRED: (
        "Subscription Expired - Read-Only Mode",
        "Your subscription has expired. Your account is now in read-only mode. "
        "You can view your data but cannot create or edit. "
        "Please renew to restore full access.",
    ),
    NotificationType.ACCOUNT_SUSPENDED: (
        "Account Suspended",
        "Your account has been suspended due to non-payment. "
        "Please contact support to restore access.",
    ),
}


@dataclass(frozen=True)
class SubscriptionState:
    """Snapshot of the fields the rules look at."""
    tenant_id: str
    status: SubscriptionStatus
    current_period_end: date
    cancel_at_period_end: bool = False
    plan_display_name: str = ""

    @classmethod
    def from_subscription(cls, subscription) -> "SubscriptionState":
        plan = subscription.plan
        return cls(
            tenant_id=subscription.tenant_id,
            status=SubscriptionStatus(subscription.status),
            current_period_end=subscription.current_period_end,
            cancel_at_period_end=bool(subscription.cancel_at_period_end),
            plan_display_name=plan.display_name if plan is not None else "",
        )


@dataclass(frozen=True)
class Transition:
    """Outcome of evaluating the rules for one subscription."""
    tenant_id: str
    current_status: SubscriptionStatus
    next_status: SubscriptionStatus
    notification: Optional[NotificationType] = None
    period_end: Optional[date] = None

    @property
    def changes_status(self) -> bool:
        return self.next_status != self.current_status

    @property
    def is_noop(self) -> bool:
        return not self.changes_status and self.notification is None


def evaluate_transition(
    state: SubscriptionState,
    today: date,
    recently_sent: AbstractSet[NotificationType] = frozenset(),
) -> Transition:
    """
    Decide the next status and notification for a subscription.

    Args:
        state: Current subscription state
        today: The sweep's calendar date
        recently_sent: Notification types already sent to this tenant within
            each type's dedup window

    Returns:
        Transition (is_noop when nothing applies)
    """
    status = state.status
    period_end = state.current_period_end

    def emit(notification: NotificationType, next_status: SubscriptionStatus = status) -> Transition:
        return Transition(
            tenant_id=state.tenant_id,
            current_status=status,
            next_status=next_status,
            notification=notification,
            period_end=period_end,
        )

    if status == SubscriptionStatus.ACTIVE:
        if (
            period_end == today + timedelta(days=FIRST_WARNING_DAYS)
            and NotificationType.EXPIRY_WARNING_7D not in recently_sent
        ):
            return emit(NotificationType.EXPIRY_WARNING_7D)

        if (
            period_end == today + timedelta(days=FINAL_WARNING_DAYS)
            and NotificationType.EXPIRY_WARNING_3D not in recently_sent
        ):
            return emit(NotificationType.EXPIRY_WARNING_3D)

        # cancel_at_period_end subscriptions are left for the cancel flow
        if period_end < today and not state.cancel_at_period_end:
            return emit(NotificationType.SUBSCRIPTION_EXPIRED, SubscriptionStatus.EXPIRED)

    elif status == SubscriptionStatus.EXPIRED:
        if period_end < today - timedelta(days=SUSPEND_AFTER_DAYS):
            return emit(NotificationType.ACCOUNT_SUSPENDED, SubscriptionStatus.SUSPENDED)

    return Transition(
        tenant_id=state.tenant_id,
        current_status=status,
        next_status=status,
        period_end=period_end,
    )


def render_notification(notification: NotificationType, state: SubscriptionState) -> Tuple[str, str]:
    """Return (title, message) for a notification."""
    title, template = NOTIFICATION_TEMPLATES[notification]
    return title, template.format(plan_name=state.plan_display_name or "current")
