"""
Structured error classes for entitlement enforcement.

EntitlementDeniedError subclasses are deliberate business decisions, always
surfaced to the caller with a user-actionable payload and never retried.
SnapshotReadFailure is an infrastructure error; the gate's read-error policy
decides what the caller sees.
"""

from datetime import date
from typing import Any, Dict, Optional

from fastapi import status


class EntitlementError(Exception):
    """Base exception for entitlement errors."""
    pass


class UnknownFeatureError(EntitlementError, ValueError):
    """Raised when a feature check is built for a name outside PlanFeature."""

    def __init__(self, feature: str):
        self.feature = feature
        super().__init__(f"Unknown plan feature '{feature}'")


class SnapshotReadFailure(EntitlementError):
    """Raised when the entitlement snapshot could not be read from storage."""

    def __init__(self, tenant_id: str, cause: Exception):
        self.tenant_id = tenant_id
        self.cause = cause
        super().__init__(f"Entitlement snapshot read failed for tenant {tenant_id}: {cause}")


class EntitlementDeniedError(EntitlementError):
    """
    Raised when an entitlement check denies an operation.

    Includes machine-readable error codes for programmatic handling.
    """

    error = "entitlement_denied"
    error_code = "ENTITLEMENT_DENIED"
    http_status = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str, plan_name: Optional[str] = None):
        self.message = message
        self.plan_name = plan_name
        super().__init__(message)

    @property
    def reason_code(self) -> str:
        return self.error

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "error": self.error,
            "error_code": self.error_code,
            "message": self.message,
            **self.details(),
        }


class SubscriptionNotFoundError(EntitlementDeniedError):
    error = "subscription_not_found"
    error_code = "SUBSCRIPTION_NOT_FOUND"

    def __init__(self):
        super().__init__("No active subscription found")


class ReadOnlyModeError(EntitlementDeniedError):
    """Mutating operation attempted while the subscription is expired or suspended."""

    error = "subscription_expired"
    error_code = "READ_ONLY_MODE"

    def __init__(self, subscription_status: str, expired_at: Optional[date], plan_name: Optional[str]):
        self.subscription_status = subscription_status
        self.expired_at = expired_at
        super().__init__(
            "Your subscription has expired. You are in read-only mode. "
            "Please renew your subscription to continue.",
            plan_name=plan_name,
        )

    def details(self) -> Dict[str, Any]:
        return {
            "isReadOnly": True,
            "subscriptionStatus": {
                "status": self.subscription_status,
                "expiredAt": self.expired_at.isoformat() if self.expired_at else None,
                "planName": self.plan_name,
            },
        }


class LimitReachedError(EntitlementDeniedError):
    """Base for count-limit denials."""

    limit_flag = "limitReached"

    def __init__(self, message: str, limit: int, current: int, plan_name: Optional[str]):
        self.limit = limit
        self.current = current
        super().__init__(message, plan_name=plan_name)

    def details(self) -> Dict[str, Any]:
        return {
            "limit": self.limit,
            "current": self.current,
            "planName": self.plan_name,
            "upgradeRequired": True,
            self.limit_flag: True,
        }


class ClientLimitReachedError(LimitReachedError):
    error = "client_limit_reached"
    error_code = "CLIENT_LIMIT_REACHED"
    limit_flag = "clientsLimitReached"

    def __init__(self, limit: int, current: int, plan_name: Optional[str]):
        super().__init__(
            f"You've reached your client limit ({limit}). "
            "Upgrade your plan to add more clients.",
            limit=limit,
            current=current,
            plan_name=plan_name,
        )


class SessionLimitReachedError(LimitReachedError):
    error = "session_limit_reached"
    error_code = "SESSION_LIMIT_REACHED"
    limit_flag = "sessionsLimitReached"

    def __init__(self, limit: int, current: int, plan_name: Optional[str]):
        super().__init__(
            f"You've reached your monthly session limit ({limit}). "
            "Upgrade your plan for more sessions.",
            limit=limit,
            current=current,
            plan_name=plan_name,
        )


class FeatureNotAvailableError(EntitlementDeniedError):
    error = "feature_not_available"
    error_code = "FEATURE_NOT_AVAILABLE"

    def __init__(self, feature: str, plan_name: Optional[str]):
        self.feature = feature
        super().__init__(
            f"This feature is not available on your {plan_name} plan. Upgrade to access it.",
            plan_name=plan_name,
        )

    def details(self) -> Dict[str, Any]:
        return {
            "feature": self.feature,
            "planName": self.plan_name,
            "upgradeRequired": True,
        }


class EntitlementUnavailableError(EntitlementDeniedError):
    """Denial produced by a fail-closed read-error policy."""

    error = "entitlement_unavailable"
    error_code = "ENTITLEMENT_EVAL_FAILED"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self):
        super().__init__("Unable to verify subscription entitlements. Please retry.")
