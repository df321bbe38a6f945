"""
Subscription lifecycle state machine.
"""

from treniko.lifecycle.rules import (
    SubscriptionState,
    Transition,
    evaluate_transition,
    render_notification,
    FIRST_WARNING_DAYS,
    FINAL_WARNING_DAYS,
    SUSPEND_AFTER_DAYS,
)
from treniko.lifecycle.errors import (
    LifecycleError,
    TransitionConflict,
    DuplicateNotificationRejected,
)

__all__ = [
    "SubscriptionState",
    "Transition",
    "evaluate_transition",
    "render_notification",
    "FIRST_WARNING_DAYS",
    "FINAL_WARNING_DAYS",
    "SUSPEND_AFTER_DAYS",
    "LifecycleError",
    "TransitionConflict",
    "DuplicateNotificationRejected",
]
