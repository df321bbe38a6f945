"""
TenantSubscription model - one subscription row per tenant.

CRITICAL: Exactly one TenantSubscription per tenant (unique tenant_id).
Status decays forward (active -> expired -> suspended) via the lifecycle
sweeper; only a plan change resets it to active.
"""

import enum
from datetime import date
from typing import Optional

from sqlalchemy import (
    Column, String, Boolean, Date, Enum,
    ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from treniko.models.base import Base, TimestampMixin, TenantScopedMixin, generate_uuid


class SubscriptionStatus(str, enum.Enum):
    """Subscription status values."""
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"          # Period lapsed - tenant is read-only
    SUSPENDED = "suspended"      # 30+ days expired - tenant is read-only


READ_ONLY_STATUSES = frozenset({SubscriptionStatus.EXPIRED, SubscriptionStatus.SUSPENDED})


class BillingPeriod(str, enum.Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class TenantSubscription(Base, TimestampMixin, TenantScopedMixin):
    """
    Current subscription of a tenant.

    Mutated only by:
    - the lifecycle sweeper (status decay)
    - the plan-change / cancel operations
    """

    __tablename__ = "tenant_subscriptions"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )

    plan_id = Column(
        String(36),
        ForeignKey("subscription_plans.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="Current plan"
    )

    status = Column(
        Enum(
            *[s.value for s in SubscriptionStatus],
            name="tenant_subscription_status"
        ),
        default=SubscriptionStatus.ACTIVE.value,
        nullable=False,
        index=True,
    )
    is_trial = Column(Boolean, nullable=False, default=False)
    billing_period = Column(
        Enum(
            *[p.value for p in BillingPeriod],
            name="subscription_billing_period"
        ),
        default=BillingPeriod.MONTHLY.value,
        nullable=False,
    )

    current_period_start = Column(Date, nullable=False)
    current_period_end = Column(
        Date,
        nullable=False,
        comment="End date of the current period; expires once today is past it"
    )
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)

    plan = relationship(
        "SubscriptionPlan",
        back_populates="subscriptions",
        lazy="joined"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", name="uq_tenant_subscriptions_tenant"),
        Index("ix_tenant_subscriptions_status_period_end", "status", "current_period_end"),
    )

    def __repr__(self) -> str:
        return (
            f"<TenantSubscription(id={self.id}, tenant_id={self.tenant_id}, "
            f"status={self.status})>"
        )

    @property
    def is_read_only(self) -> bool:
        return self.status in {s.value for s in READ_ONLY_STATUSES}

    def days_until_expiry(self, today: Optional[date] = None) -> int:
        """Signed days until current_period_end (negative once lapsed)."""
        today = today or date.today()
        return (self.current_period_end - today).days
