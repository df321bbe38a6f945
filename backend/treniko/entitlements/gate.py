"""
Entitlement gate - request-time allow/deny decisions.

A gate is a set of independent, order-insensitive checks:
- ReadOnlyCheck: blocks mutating operations while expired/suspended
- ClientLimitCheck: blocks "create client" at the plan's client cap
- SessionLimitCheck: blocks "create session" at the monthly session cap
- FeatureCheck: blocks an operation whose plan feature flag is off

The snapshot is read at most once per evaluation and only when some check
applies. What happens when that read fails is decided in ONE place, the
gate's ReadErrorPolicy (default: allow and log). Only an explicit,
successfully read limit/read-only/feature state denies.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, Union

from treniko.entitlements.audit import (
    AccessDenialEvent,
    EntitlementAuditLogger,
    SnapshotReadFailureEvent,
    get_audit_logger,
)
from treniko.entitlements.errors import (
    ClientLimitReachedError,
    EntitlementDeniedError,
    EntitlementUnavailableError,
    FeatureNotAvailableError,
    ReadOnlyModeError,
    SessionLimitReachedError,
    SubscriptionNotFoundError,
)
from treniko.entitlements.features import PlanFeature, parse_feature
from treniko.entitlements.snapshot import EntitlementSnapshot

logger = logging.getLogger(__name__)

NON_MUTATING_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

# The subscription-management surface stays writable in read-only mode so a
# locked-out tenant can still view, upgrade or cancel.
SUBSCRIPTION_MANAGEMENT_PREFIX = "/api/subscriptions"
CREATE_CLIENT_PATHS = ("/api/clients",)
CREATE_SESSION_PATHS = ("/api/sessions",)


def normalize_path(path: str) -> str:
    return path.rstrip("/") or "/"


class ReadErrorPolicy(str, Enum):
    """What the gate does when the snapshot cannot be read."""
    ALLOW = "allow"
    DENY = "deny"

    @classmethod
    def from_env(cls) -> "ReadErrorPolicy":
        value = os.getenv("ENTITLEMENT_READ_ERROR_POLICY", cls.ALLOW.value).strip().lower()
        try:
            return cls(value)
        except ValueError:
            logger.warning(
                "Invalid ENTITLEMENT_READ_ERROR_POLICY, defaulting to allow",
                extra={"value": value},
            )
            return cls.ALLOW


@dataclass(frozen=True)
class GateRequest:
    """The operation being gated."""
    tenant_id: str
    method: str
    path: str

    @property
    def is_mutating(self) -> bool:
        return self.method.upper() not in NON_MUTATING_METHODS

    @property
    def normalized_path(self) -> str:
        return normalize_path(self.path)


@dataclass(frozen=True)
class GateDecision:
    """Result of a gate evaluation."""
    allowed: bool
    denial: Optional[EntitlementDeniedError] = None
    check: Optional[str] = None
    snapshot: Optional[EntitlementSnapshot] = None
    failed_open: bool = False

    @classmethod
    def allow(cls, snapshot: Optional[EntitlementSnapshot] = None, failed_open: bool = False) -> "GateDecision":
        return cls(allowed=True, snapshot=snapshot, failed_open=failed_open)

    @classmethod
    def deny(
        cls,
        denial: EntitlementDeniedError,
        check: str,
        snapshot: Optional[EntitlementSnapshot] = None,
    ) -> "GateDecision":
        return cls(allowed=False, denial=denial, check=check, snapshot=snapshot)


class EntitlementCheck:
    """Base class for a single gate check."""

    name = "entitlement"

    def applies_to(self, request: GateRequest) -> bool:
        raise NotImplementedError

    def evaluate(self, snapshot: EntitlementSnapshot, request: GateRequest) -> Optional[EntitlementDeniedError]:
        raise NotImplementedError

    def evaluate_without_subscription(self, request: GateRequest) -> Optional[EntitlementDeniedError]:
        """Decision for a tenant that has no subscription row."""
        return None


class ReadOnlyCheck(EntitlementCheck):
    name = "read_only"

    def __init__(self, management_prefix: str = SUBSCRIPTION_MANAGEMENT_PREFIX):
        self.management_prefix = normalize_path(management_prefix)

    def _is_management_path(self, path: str) -> bool:
        return path == self.management_prefix or path.startswith(self.management_prefix + "/")

    def applies_to(self, request: GateRequest) -> bool:
        return request.is_mutating and not self._is_management_path(request.normalized_path)

    def evaluate(self, snapshot, request):
        if snapshot.is_read_only:
            return ReadOnlyModeError(
                subscription_status=snapshot.status,
                expired_at=snapshot.current_period_end,
                plan_name=snapshot.plan_display_name,
            )
        return None

    def evaluate_without_subscription(self, request):
        return SubscriptionNotFoundError()


class _CreateLimitCheck(EntitlementCheck):
    default_paths: Sequence[str] = ()

    def __init__(self, paths: Optional[Iterable[str]] = None):
        self.paths = frozenset(normalize_path(p) for p in (paths or self.default_paths))

    def applies_to(self, request: GateRequest) -> bool:
        return request.method.upper() == "POST" and request.normalized_path in self.paths


class ClientLimitCheck(_CreateLimitCheck):
    name = "client_limit"
    default_paths = CREATE_CLIENT_PATHS

    def evaluate(self, snapshot, request):
        if snapshot.clients_limit_reached:
            return ClientLimitReachedError(
                limit=snapshot.max_clients,
                current=snapshot.clients_count,
                plan_name=snapshot.plan_display_name,
            )
        return None


class SessionLimitCheck(_CreateLimitCheck):
    name = "session_limit"
    default_paths = CREATE_SESSION_PATHS

    def evaluate(self, snapshot, request):
        if snapshot.sessions_limit_reached:
            return SessionLimitReachedError(
                limit=snapshot.max_sessions_per_month,
                current=snapshot.sessions_count,
                plan_name=snapshot.plan_display_name,
            )
        return None


class FeatureCheck(EntitlementCheck):
    """
    Requires a plan feature for every operation it is attached to.

    Raises UnknownFeatureError at construction for names outside PlanFeature.
    """

    def __init__(self, feature: Union[str, PlanFeature]):
        self.feature = parse_feature(feature)
        self.name = f"feature:{self.feature.value}"

    def applies_to(self, request: GateRequest) -> bool:
        return True

    def evaluate(self, snapshot, request):
        if not self.feature.is_enabled_on(snapshot):
            return FeatureNotAvailableError(self.feature.value, snapshot.plan_display_name)
        return None

    def evaluate_without_subscription(self, request):
        return SubscriptionNotFoundError()


def default_checks() -> List[EntitlementCheck]:
    """Checks applied to every tenant request by the middleware."""
    return [ReadOnlyCheck(), ClientLimitCheck(), SessionLimitCheck()]


SnapshotLoader = Callable[[str], Optional[EntitlementSnapshot]]


class EntitlementGate:
    """
    Evaluates a set of checks against one per-request snapshot.

    Holds no per-request state and no locks; safe to share across requests.

    Usage:
        gate = EntitlementGate([ReadOnlyCheck(), ClientLimitCheck()])
        decision = gate.evaluate(
            GateRequest(tenant_id, "POST", "/api/clients"),
            EntitlementSnapshotReader(session).read,
        )
    """

    def __init__(
        self,
        checks: Optional[Sequence[EntitlementCheck]] = None,
        read_error_policy: Optional[ReadErrorPolicy] = None,
        audit_logger: Optional[EntitlementAuditLogger] = None,
    ):
        self.checks = list(checks) if checks is not None else default_checks()
        self.read_error_policy = read_error_policy or ReadErrorPolicy.from_env()
        self._audit = audit_logger or get_audit_logger()

    def with_checks(self, checks: Sequence[EntitlementCheck]) -> "EntitlementGate":
        """A gate sharing this gate's policy but running other checks."""
        return EntitlementGate(checks, self.read_error_policy, self._audit)

    def evaluate(self, request: GateRequest, load_snapshot: SnapshotLoader) -> GateDecision:
        applicable = [check for check in self.checks if check.applies_to(request)]
        if not applicable:
            return GateDecision.allow()

        try:
            snapshot = load_snapshot(request.tenant_id)
        except Exception as e:
            return self._on_read_error(request, e)

        for check in applicable:
            if snapshot is None:
                denial = check.evaluate_without_subscription(request)
            else:
                denial = check.evaluate(snapshot, request)

            if denial is not None:
                self._audit.log_denial(AccessDenialEvent(
                    tenant_id=request.tenant_id,
                    check=check.name,
                    reason_code=denial.reason_code,
                    subscription_status=snapshot.status if snapshot else None,
                    plan_name=denial.plan_name,
                    endpoint=request.path,
                    method=request.method,
                    reason=denial.message,
                ))
                return GateDecision.deny(denial, check.name, snapshot)

        return GateDecision.allow(snapshot)

    def _on_read_error(self, request: GateRequest, error: Exception) -> GateDecision:
        logger.error(
            "Entitlement snapshot read failed",
            extra={
                "tenant_id": request.tenant_id,
                "path": request.path,
                "method": request.method,
                "policy": self.read_error_policy.value,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )
        self._audit.log_read_failure(SnapshotReadFailureEvent(
            tenant_id=request.tenant_id,
            policy=self.read_error_policy.value,
            error=f"{type(error).__name__}: {error}",
            endpoint=request.path,
            method=request.method,
        ))

        if self.read_error_policy == ReadErrorPolicy.DENY:
            return GateDecision.deny(EntitlementUnavailableError(), "read_error_policy")
        return GateDecision.allow(failed_open=True)
