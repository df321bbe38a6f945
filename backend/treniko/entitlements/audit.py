"""
Entitlement audit logging.

Every gate denial and every snapshot read failure is written to the
dedicated "treniko.entitlements.audit" logger as a structured event, so
denials and fail-open decisions are visible to observability without
reaching the caller as errors.
"""

import logging
import uuid
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Dedicated audit logger for structured logging
audit_logger = logging.getLogger("treniko.entitlements.audit")


@dataclass
class AccessDenialEvent:
    """Structured event for an access denial."""

    tenant_id: str
    check: str
    reason_code: str
    subscription_status: Optional[str] = None
    plan_name: Optional[str] = None
    endpoint: Optional[str] = None
    method: Optional[str] = None
    reason: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SnapshotReadFailureEvent:
    """A gate evaluation that could not read the entitlement snapshot."""

    tenant_id: str
    policy: str
    error: str
    endpoint: Optional[str] = None
    method: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class EntitlementAuditLogger:
    """
    Writes entitlement audit events.

    Usage:
        audit = EntitlementAuditLogger()
        audit.log_denial(AccessDenialEvent(
            tenant_id="tenant_123",
            check="client_limit",
            reason_code="client_limit_reached",
        ))
    """

    def __init__(self, target: Optional[logging.Logger] = None):
        self._logger = target or audit_logger

    def log_denial(self, event: AccessDenialEvent) -> None:
        self._logger.warning(
            "access_denied",
            extra={
                "event_type": "access_denied",
                "audit_data": event.to_dict(),
            },
        )

    def log_read_failure(self, event: SnapshotReadFailureEvent) -> None:
        self._logger.error(
            "entitlement_snapshot_read_failed",
            extra={
                "event_type": "entitlement_snapshot_read_failed",
                "alert_type": "entitlement_eval_failed",
                "audit_data": event.to_dict(),
            },
        )


_audit_logger: Optional[EntitlementAuditLogger] = None


def get_audit_logger() -> EntitlementAuditLogger:
    """Get the process-wide audit logger."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = EntitlementAuditLogger()
    return _audit_logger
