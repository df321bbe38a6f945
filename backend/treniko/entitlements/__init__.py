"""
Entitlement enforcement for subscription plans.

This module provides:
- EntitlementSnapshotReader: per-request view of plan, status and live usage
- EntitlementGate: read-only, client-limit, session-limit and feature checks
- EntitlementMiddleware: FastAPI middleware running the tenant-wide checks
- EntitlementAuditLogger: structured log of denials and read failures
"""

from treniko.entitlements.errors import (
    EntitlementError,
    EntitlementDeniedError,
    SubscriptionNotFoundError,
    ReadOnlyModeError,
    ClientLimitReachedError,
    SessionLimitReachedError,
    FeatureNotAvailableError,
    EntitlementUnavailableError,
    SnapshotReadFailure,
    UnknownFeatureError,
)
from treniko.entitlements.features import PlanFeature, parse_feature
from treniko.entitlements.snapshot import EntitlementSnapshot, EntitlementSnapshotReader
from treniko.entitlements.gate import (
    EntitlementGate,
    GateRequest,
    GateDecision,
    ReadErrorPolicy,
    ReadOnlyCheck,
    ClientLimitCheck,
    SessionLimitCheck,
    FeatureCheck,
)
from treniko.entitlements.middleware import EntitlementMiddleware
from treniko.entitlements.audit import EntitlementAuditLogger, AccessDenialEvent

__all__ = [
    "EntitlementError",
    "EntitlementDeniedError",
    "SubscriptionNotFoundError",
    "ReadOnlyModeError",
    "ClientLimitReachedError",
    "SessionLimitReachedError",
    "FeatureNotAvailableError",
    "EntitlementUnavailableError",
    "SnapshotReadFailure",
    "UnknownFeatureError",
    "PlanFeature",
    "parse_feature",
    "EntitlementSnapshot",
    "EntitlementSnapshotReader",
    "EntitlementGate",
    "GateRequest",
    "GateDecision",
    "ReadErrorPolicy",
    "ReadOnlyCheck",
    "ClientLimitCheck",
    "SessionLimitCheck",
    "FeatureCheck",
    "EntitlementMiddleware",
    "EntitlementAuditLogger",
    "AccessDenialEvent",
]
