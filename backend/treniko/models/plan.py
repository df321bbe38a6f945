"""
SubscriptionPlan model - the plan catalog.

Plans are GLOBAL (not tenant-scoped) - they define the product offerings.
Rows are created by catalog seeding and are read-only at runtime.
"""

from sqlalchemy import Column, String, Integer, Boolean
from sqlalchemy.orm import relationship

from treniko.models.base import Base, TimestampMixin, generate_uuid


class SubscriptionPlan(Base, TimestampMixin):
    """
    Defines pricing tiers, resource caps and feature flags.

    NULL caps (max_clients, max_sessions_per_month) mean unbounded.
    """

    __tablename__ = "subscription_plans"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )

    name = Column(
        String(50),
        nullable=False,
        unique=True,
        index=True,
        comment="URL-safe identifier (free, pro, enterprise)"
    )
    display_name = Column(
        String(100),
        nullable=False,
        comment="Display name (Free, Pro, Enterprise)"
    )

    # Pricing in cents, single currency (EUR)
    price_monthly_cents = Column(Integer, nullable=False, default=0)
    price_yearly_cents = Column(Integer, nullable=False, default=0)

    # Resource caps (NULL = unbounded)
    max_clients = Column(
        Integer,
        nullable=True,
        comment="Active client cap (NULL = unlimited)"
    )
    max_sessions_per_month = Column(
        Integer,
        nullable=True,
        comment="Sessions per calendar month (NULL = unlimited)"
    )
    max_trainer_seats = Column(Integer, nullable=False, default=1)

    # Feature flags
    has_training_logs = Column(Boolean, nullable=False, default=False)
    has_analytics = Column(Boolean, nullable=False, default=False)
    has_export = Column(Boolean, nullable=False, default=False)
    has_api_access = Column(Boolean, nullable=False, default=False)
    has_custom_branding = Column(Boolean, nullable=False, default=False)
    has_priority_support = Column(Boolean, nullable=False, default=False)

    is_active = Column(
        Boolean,
        nullable=False,
        default=True,
        index=True,
        comment="Whether plan is available for plan changes"
    )
    sort_order = Column(Integer, nullable=False, default=0)

    subscriptions = relationship(
        "TenantSubscription",
        back_populates="plan",
        lazy="dynamic"
    )

    def __repr__(self) -> str:
        return f"<SubscriptionPlan(id={self.id}, name={self.name})>"
