"""
Subscription notification records - the notification ledger table.

Append-only: rows are created by the lifecycle sweeper and never updated
or deleted by the core (retention is an external concern).

dedup_key is UNIQUE and encodes (tenant, type, period_end), so two sweeps
that race on the same decision collide at the storage level.

SECURITY:
- Tenant isolation via TenantScopedMixin
"""

import enum
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import Column, String, Text, Enum, Date, DateTime, Index

from treniko.models.base import Base, TenantScopedMixin, generate_uuid, utcnow


class NotificationType(str, enum.Enum):
    """Lifecycle notification types."""
    EXPIRY_WARNING_7D = "expiry_warning_7d"
    EXPIRY_WARNING_3D = "expiry_warning_3d"
    SUBSCRIPTION_EXPIRED = "subscription_expired"
    ACCOUNT_SUSPENDED = "account_suspended"


# Minimum spacing between two records of the same type for a tenant.
# None = emitted only on an actual state change, deduplicated by dedup_key.
DEDUP_WINDOWS = {
    NotificationType.EXPIRY_WARNING_7D: timedelta(days=7),
    NotificationType.EXPIRY_WARNING_3D: timedelta(days=3),
    NotificationType.SUBSCRIPTION_EXPIRED: None,
    NotificationType.ACCOUNT_SUSPENDED: None,
}


def build_dedup_key(tenant_id: str, notification_type: NotificationType, period_end: date) -> str:
    return f"{tenant_id}:{notification_type.value}:{period_end.isoformat()}"


class SubscriptionNotification(Base, TenantScopedMixin):
    """Immutable record of a lifecycle notification sent to a tenant."""

    __tablename__ = "subscription_notifications"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
    )

    notification_type = Column(
        Enum(
            *[t.value for t in NotificationType],
            name="subscription_notification_type"
        ),
        nullable=False,
    )
    sent_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    period_end = Column(
        Date,
        nullable=False,
        comment="current_period_end the notification refers to"
    )
    dedup_key = Column(String(255), nullable=False, unique=True)

    __table_args__ = (
        Index("ix_subscription_notifications_lookup", "tenant_id", "notification_type", "sent_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<SubscriptionNotification(id={self.id}, tenant_id={self.tenant_id}, "
            f"type={self.notification_type})>"
        )

    @classmethod
    def create(
        cls,
        tenant_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        period_end: date,
        sent_at: Optional[datetime] = None,
    ) -> "SubscriptionNotification":
        """Factory method that derives the dedup key."""
        return cls(
            tenant_id=tenant_id,
            notification_type=notification_type.value,
            title=title,
            message=message,
            period_end=period_end,
            sent_at=sent_at or utcnow(),
            dedup_key=build_dedup_key(tenant_id, notification_type, period_end),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "notification_type": self.notification_type,
            "title": self.title,
            "message": self.message,
            "period_end": self.period_end.isoformat() if self.period_end else None,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
        }
