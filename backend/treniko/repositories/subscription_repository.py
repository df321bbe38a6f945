"""
Subscription repository for data access operations.

Encapsulates all database operations for tenant subscriptions with:
- Tenant isolation enforcement
- Indexed candidate filters for the lifecycle sweep
- Conditional (compare-and-set) status transitions
"""

import logging
from datetime import date, timedelta
from typing import Optional, List, Dict, Any

from sqlalchemy import func, case
from sqlalchemy.orm import Session

from treniko.lifecycle.rules import FIRST_WARNING_DAYS, FINAL_WARNING_DAYS, SUSPEND_AFTER_DAYS
from treniko.models.base import utcnow
from treniko.models.plan import SubscriptionPlan
from treniko.models.subscription import TenantSubscription, SubscriptionStatus

logger = logging.getLogger(__name__)


class SubscriptionRepository:
    """
    Repository for tenant subscription data access.

    All tenant-facing methods enforce isolation via tenant_id parameter.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_for_tenant(self, tenant_id: str) -> Optional[TenantSubscription]:
        """Get the (single) subscription of a tenant, plan eagerly loaded."""
        return self.db.query(TenantSubscription).filter(
            TenantSubscription.tenant_id == tenant_id
        ).first()

    def find_sweep_candidates(self, today: date) -> List[str]:
        """
        Tenant ids that may match a lifecycle rule today.

        One filter per rule, each served by the (status, current_period_end)
        index. The rules themselves remain the authority; this only narrows
        the set of rows the sweep loads.

        Args:
            today: Sweep date

        Returns:
            Sorted, de-duplicated tenant ids
        """
        active = SubscriptionStatus.ACTIVE.value
        expired = SubscriptionStatus.EXPIRED.value

        filters = {
            "expiry_warning_7d": (
                TenantSubscription.status == active,
                TenantSubscription.current_period_end == today + timedelta(days=FIRST_WARNING_DAYS),
            ),
            "expiry_warning_3d": (
                TenantSubscription.status == active,
                TenantSubscription.current_period_end == today + timedelta(days=FINAL_WARNING_DAYS),
            ),
            "expire": (
                TenantSubscription.status == active,
                TenantSubscription.current_period_end < today,
                TenantSubscription.cancel_at_period_end.is_(False),
            ),
            "suspend": (
                TenantSubscription.status == expired,
                TenantSubscription.current_period_end < today - timedelta(days=SUSPEND_AFTER_DAYS),
            ),
        }

        tenant_ids = set()
        for name, conditions in filters.items():
            rows = self.db.query(TenantSubscription.tenant_id).filter(*conditions).all()
            logger.debug(
                "Sweep candidate filter evaluated",
                extra={"filter": name, "count": len(rows), "sweep_date": today.isoformat()},
            )
            tenant_ids.update(row.tenant_id for row in rows)

        return sorted(tenant_ids)

    def transition_status(
        self,
        subscription_id: str,
        expected_status: SubscriptionStatus,
        target_status: SubscriptionStatus,
    ) -> bool:
        """
        Move a subscription to target_status only if it is still in
        expected_status.

        Returns:
            True if the row was updated, False if another writer changed it
        """
        updated = self.db.query(TenantSubscription).filter(
            TenantSubscription.id == subscription_id,
            TenantSubscription.status == expected_status.value,
        ).update(
            {
                TenantSubscription.status: target_status.value,
                TenantSubscription.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
        return updated == 1

    def apply_plan_change(
        self,
        subscription: TenantSubscription,
        plan: SubscriptionPlan,
        billing_period: str,
        period_start: date,
        period_end: date,
    ) -> TenantSubscription:
        """Write the row shape produced by a successful plan change."""
        subscription.plan_id = plan.id
        subscription.plan = plan
        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.is_trial = False
        subscription.billing_period = billing_period
        subscription.current_period_start = period_start
        subscription.current_period_end = period_end
        subscription.cancel_at_period_end = False
        self.db.flush()
        return subscription

    def set_cancel_at_period_end(self, subscription: TenantSubscription, value: bool = True) -> TenantSubscription:
        subscription.cancel_at_period_end = value
        self.db.flush()
        return subscription

    def plan_summary(self) -> List[Dict[str, Any]]:
        """
        Per-plan subscription counts for operational reporting.

        Returns:
            One dict per plan with tenant, active, expired and trial counts
        """
        rows = self.db.query(
            SubscriptionPlan.display_name,
            func.count(TenantSubscription.id).label("tenant_count"),
            func.sum(case((TenantSubscription.status == SubscriptionStatus.ACTIVE.value, 1), else_=0)).label("active_count"),
            func.sum(case((TenantSubscription.status == SubscriptionStatus.EXPIRED.value, 1), else_=0)).label("expired_count"),
            func.sum(case((TenantSubscription.is_trial.is_(True), 1), else_=0)).label("trial_count"),
        ).join(
            SubscriptionPlan, TenantSubscription.plan_id == SubscriptionPlan.id
        ).group_by(
            SubscriptionPlan.display_name, SubscriptionPlan.price_monthly_cents
        ).order_by(
            SubscriptionPlan.price_monthly_cents
        ).all()

        return [
            {
                "plan": row.display_name,
                "tenant_count": int(row.tenant_count or 0),
                "active_count": int(row.active_count or 0),
                "expired_count": int(row.expired_count or 0),
                "trial_count": int(row.trial_count or 0),
            }
            for row in rows
        ]
