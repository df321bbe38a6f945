"""
Subscription service for tenant-facing subscription management.

Handles:
- Current status (entitlement snapshot + plan details)
- Plan catalog listing
- Pre-flight limit/feature checks
- Plan changes (upgrade/downgrade) and cancellation
- Notification history

Plan changes are local state transitions only; no payment is captured here.

SECURITY: All operations are scoped to the tenant_id given at construction,
which must come from the authenticated tenant context.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import func
from sqlalchemy.orm import Session

from treniko.entitlements.errors import UnknownFeatureError
from treniko.entitlements.features import parse_feature
from treniko.entitlements.snapshot import EntitlementSnapshot, EntitlementSnapshotReader
from treniko.models.plan import SubscriptionPlan
from treniko.models.subscription import BillingPeriod, TenantSubscription
from treniko.models.usage import Client
from treniko.repositories.notification_ledger import NotificationLedger
from treniko.repositories.subscription_repository import SubscriptionRepository

logger = logging.getLogger(__name__)

LIMIT_RESOURCES = ("clients", "sessions")

PERIOD_LENGTHS = {
    BillingPeriod.MONTHLY: relativedelta(months=1),
    BillingPeriod.YEARLY: relativedelta(years=1),
}


class SubscriptionServiceError(Exception):
    """Base exception for subscription service errors."""
    pass


class SubscriptionNotFound(SubscriptionServiceError):
    """Tenant has no subscription."""
    pass


class PlanNotFoundError(SubscriptionServiceError):
    """Plan does not exist or is not available."""
    pass


class UnknownResourceError(SubscriptionServiceError):
    """Resource is neither a limit nor a plan feature."""
    pass


class PlanDowngradeBlockedError(SubscriptionServiceError):
    """Target plan's client cap is below the tenant's active client count."""

    def __init__(self, plan_name: str, max_clients: int, current_clients: int):
        self.plan_name = plan_name
        self.max_clients = max_clients
        self.current_clients = current_clients
        self.excess_clients = current_clients - max_clients
        super().__init__(
            f"Cannot downgrade to {plan_name}: you have {current_clients} active clients "
            f"but the plan allows {max_clients}. Deactivate {self.excess_clients} "
            "client(s) first."
        )


@dataclass
class ResourceCheck:
    """Result of a pre-flight check."""
    resource: str
    allowed: bool
    plan_name: str
    current: Optional[int] = None
    limit: Optional[int] = None
    reason: Optional[str] = None


def period_end_for(start: date, billing_period: BillingPeriod) -> date:
    """End date of a period starting at start (start + one month or year)."""
    return start + PERIOD_LENGTHS[billing_period]


class SubscriptionService:
    """Service for a tenant's subscription."""

    def __init__(self, db_session: Session, tenant_id: str):
        """
        Initialize subscription service.

        Args:
            db_session: Database session
            tenant_id: Tenant ID from the authenticated tenant context
        """
        if not tenant_id:
            raise ValueError("tenant_id is required")
        self.db = db_session
        self.tenant_id = tenant_id
        self.repo = SubscriptionRepository(db_session)
        self.ledger = NotificationLedger(db_session)

    def _snapshot(self, today: Optional[date] = None) -> EntitlementSnapshot:
        snapshot = EntitlementSnapshotReader(self.db).read(self.tenant_id, today=today)
        if snapshot is None:
            raise SubscriptionNotFound(f"No subscription for tenant {self.tenant_id}")
        return snapshot

    def _get_subscription(self) -> TenantSubscription:
        subscription = self.repo.get_for_tenant(self.tenant_id)
        if subscription is None:
            raise SubscriptionNotFound(f"No subscription for tenant {self.tenant_id}")
        return subscription

    def get_status(self, today: Optional[date] = None) -> Dict[str, Any]:
        """
        Current subscription status with live usage.

        Raises:
            SubscriptionNotFound: tenant has no subscription
        """
        snapshot = self._snapshot(today)
        plan = self.db.get(SubscriptionPlan, snapshot.plan_id)
        return {
            "subscription": snapshot.to_dict(),
            "plan": plan_to_dict(plan),
        }

    def list_plans(self) -> List[SubscriptionPlan]:
        """Active plans ordered for display."""
        return self.db.query(SubscriptionPlan).filter(
            SubscriptionPlan.is_active.is_(True)
        ).order_by(
            SubscriptionPlan.sort_order, SubscriptionPlan.price_monthly_cents
        ).all()

    def check_resource(self, resource: str, today: Optional[date] = None) -> ResourceCheck:
        """
        Whether the tenant could create a resource or use a feature now.

        Args:
            resource: "clients", "sessions" or a PlanFeature name

        Raises:
            UnknownResourceError: resource is not recognised
            SubscriptionNotFound: tenant has no subscription
        """
        feature = None
        if resource not in LIMIT_RESOURCES:
            try:
                feature = parse_feature(resource)
            except UnknownFeatureError:
                raise UnknownResourceError(f"Unknown resource '{resource}'") from None

        snapshot = self._snapshot(today)

        if feature is not None:
            allowed = feature.is_enabled_on(snapshot)
            return ResourceCheck(
                resource=resource,
                allowed=allowed,
                plan_name=snapshot.plan_display_name,
                reason=None if allowed else "feature_not_available",
            )

        if resource == "clients":
            current, limit = snapshot.clients_count, snapshot.max_clients
            reached = snapshot.clients_limit_reached
        else:
            current, limit = snapshot.sessions_count, snapshot.max_sessions_per_month
            reached = snapshot.sessions_limit_reached

        reason = None
        if snapshot.is_read_only:
            reason = "subscription_expired"
        elif reached:
            reason = f"{resource[:-1]}_limit_reached"

        return ResourceCheck(
            resource=resource,
            allowed=reason is None,
            plan_name=snapshot.plan_display_name,
            current=current,
            limit=limit,
            reason=reason,
        )

    def list_notifications(self, limit: int = 20):
        return self.ledger.list_for_tenant(self.tenant_id, limit=limit)

    def change_plan(
        self,
        plan_id: str,
        billing_period: BillingPeriod = BillingPeriod.MONTHLY,
        today: Optional[date] = None,
    ) -> TenantSubscription:
        """
        Move the tenant to another plan and start a fresh period.

        Writes {plan_id, status=active, is_trial=False,
        current_period_start=today, current_period_end=today + period,
        cancel_at_period_end=False} and commits.

        Raises:
            SubscriptionNotFound: tenant has no subscription
            PlanNotFoundError: plan missing or inactive
            PlanDowngradeBlockedError: plan's client cap is below the active client count
        """
        today = today or datetime.now(timezone.utc).date()
        billing_period = BillingPeriod(billing_period)

        subscription = self._get_subscription()
        plan = self.db.query(SubscriptionPlan).filter(
            SubscriptionPlan.id == plan_id,
            SubscriptionPlan.is_active.is_(True),
        ).first()
        if plan is None:
            raise PlanNotFoundError(f"Plan not found: {plan_id}")

        if plan.max_clients is not None:
            active_clients = self.db.query(func.count(Client.id)).filter(
                Client.tenant_id == self.tenant_id,
                Client.is_active.is_(True),
            ).scalar() or 0
            if active_clients > plan.max_clients:
                logger.info(
                    "Plan downgrade blocked by client count",
                    extra={
                        "tenant_id": self.tenant_id,
                        "plan": plan.name,
                        "max_clients": plan.max_clients,
                        "active_clients": active_clients,
                    },
                )
                raise PlanDowngradeBlockedError(plan.display_name, plan.max_clients, active_clients)

        previous_plan_id = subscription.plan_id
        previous_status = subscription.status
        self.repo.apply_plan_change(
            subscription,
            plan,
            billing_period.value,
            period_start=today,
            period_end=period_end_for(today, billing_period),
        )
        self.db.commit()

        logger.info(
            "Subscription plan changed",
            extra={
                "tenant_id": self.tenant_id,
                "from_plan_id": previous_plan_id,
                "to_plan": plan.name,
                "previous_status": previous_status,
                "billing_period": billing_period.value,
                "current_period_end": subscription.current_period_end.isoformat(),
            },
        )
        return subscription

    def cancel(self) -> TenantSubscription:
        """
        Cancel at the end of the current period. Status is unchanged.

        Raises:
            SubscriptionNotFound: tenant has no subscription
        """
        subscription = self._get_subscription()
        self.repo.set_cancel_at_period_end(subscription, True)
        self.db.commit()

        logger.info(
            "Subscription set to cancel at period end",
            extra={
                "tenant_id": self.tenant_id,
                "current_period_end": subscription.current_period_end.isoformat(),
            },
        )
        return subscription


def plan_to_dict(plan: SubscriptionPlan) -> Dict[str, Any]:
    return {
        "id": plan.id,
        "name": plan.name,
        "display_name": plan.display_name,
        "price_monthly_cents": plan.price_monthly_cents,
        "price_yearly_cents": plan.price_yearly_cents,
        "max_clients": plan.max_clients,
        "max_sessions_per_month": plan.max_sessions_per_month,
        "max_trainer_seats": plan.max_trainer_seats,
        "has_training_logs": plan.has_training_logs,
        "has_analytics": plan.has_analytics,
        "has_export": plan.has_export,
        "has_api_access": plan.has_api_access,
        "has_custom_branding": plan.has_custom_branding,
        "has_priority_support": plan.has_priority_support,
    }
