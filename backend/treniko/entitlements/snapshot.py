"""
Entitlement snapshot reader.

Computes a tenant's current entitlement view: subscription row, plan row,
live active-client count and live count of sessions created in the current
calendar month. Everything comes from ONE SELECT (count columns are
correlated scalar subqueries) so the view is statement-consistent under
READ COMMITTED.

No writes, no locks, no caching: a snapshot lives for one request so the
counters always reflect the latest committed writes.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from treniko.entitlements.errors import SnapshotReadFailure
from treniko.models.plan import SubscriptionPlan
from treniko.models.subscription import TenantSubscription, READ_ONLY_STATUSES
from treniko.models.usage import Client, TrainingSession

logger = logging.getLogger(__name__)


def month_bounds(today: date) -> Tuple[datetime, datetime]:
    """[start, end) of today's calendar month in UTC."""
    start = datetime(today.year, today.month, 1, tzinfo=timezone.utc)
    return start, start + relativedelta(months=1)


def limit_reached(count: int, cap: Optional[int]) -> bool:
    """True iff cap is finite and count has reached it."""
    return cap is not None and count >= cap


@dataclass(frozen=True)
class EntitlementSnapshot:
    """Derived, per-request view of a tenant's entitlements."""

    tenant_id: str
    status: str
    is_trial: bool
    is_read_only: bool
    plan_id: str
    plan_name: str
    plan_display_name: str
    current_period_end: date
    days_until_expiry: int
    cancel_at_period_end: bool

    clients_count: int
    max_clients: Optional[int]
    clients_limit_reached: bool
    sessions_count: int
    max_sessions_per_month: Optional[int]
    sessions_limit_reached: bool
    max_trainer_seats: int

    has_training_logs: bool
    has_analytics: bool
    has_export: bool
    has_api_access: bool
    has_custom_branding: bool
    has_priority_support: bool

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["current_period_end"] = self.current_period_end.isoformat()
        return data


def build_snapshot(
    subscription: TenantSubscription,
    plan: SubscriptionPlan,
    clients_count: int,
    sessions_count: int,
    today: date,
) -> EntitlementSnapshot:
    status = subscription.status
    return EntitlementSnapshot(
        tenant_id=subscription.tenant_id,
        status=status,
        is_trial=bool(subscription.is_trial),
        is_read_only=status in {s.value for s in READ_ONLY_STATUSES},
        plan_id=plan.id,
        plan_name=plan.name,
        plan_display_name=plan.display_name,
        current_period_end=subscription.current_period_end,
        days_until_expiry=(subscription.current_period_end - today).days,
        cancel_at_period_end=bool(subscription.cancel_at_period_end),
        clients_count=clients_count,
        max_clients=plan.max_clients,
        clients_limit_reached=limit_reached(clients_count, plan.max_clients),
        sessions_count=sessions_count,
        max_sessions_per_month=plan.max_sessions_per_month,
        sessions_limit_reached=limit_reached(sessions_count, plan.max_sessions_per_month),
        max_trainer_seats=plan.max_trainer_seats or 1,
        has_training_logs=bool(plan.has_training_logs),
        has_analytics=bool(plan.has_analytics),
        has_export=bool(plan.has_export),
        has_api_access=bool(plan.has_api_access),
        has_custom_branding=bool(plan.has_custom_branding),
        has_priority_support=bool(plan.has_priority_support),
    )


class EntitlementSnapshotReader:
    """
    Reads EntitlementSnapshots.

    Safe to call on every request: plain reads of committed data, nothing
    held across the read.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    def read(self, tenant_id: str, today: Optional[date] = None) -> Optional[EntitlementSnapshot]:
        """
        Compute the tenant's snapshot.

        Args:
            tenant_id: Tenant ID
            today: Reference date (defaults to current UTC date)

        Returns:
            EntitlementSnapshot, or None when the tenant has no subscription

        Raises:
            SnapshotReadFailure: storage error while reading
        """
        today = today or datetime.now(timezone.utc).date()
        month_start, month_end = month_bounds(today)

        clients_count = select(func.count(Client.id)).where(
            Client.tenant_id == TenantSubscription.tenant_id,
            Client.is_active.is_(True),
        ).correlate(TenantSubscription).scalar_subquery()

        sessions_count = select(func.count(TrainingSession.id)).where(
            TrainingSession.tenant_id == TenantSubscription.tenant_id,
            TrainingSession.created_at >= month_start,
            TrainingSession.created_at < month_end,
        ).correlate(TenantSubscription).scalar_subquery()

        try:
            row = self.db.query(
                TenantSubscription,
                SubscriptionPlan,
                clients_count.label("clients_count"),
                sessions_count.label("sessions_count"),
            ).join(
                SubscriptionPlan, TenantSubscription.plan_id == SubscriptionPlan.id
            ).filter(
                TenantSubscription.tenant_id == tenant_id
            ).first()
        except SQLAlchemyError as e:
            raise SnapshotReadFailure(tenant_id, e) from e

        if row is None:
            logger.debug("No subscription for tenant", extra={"tenant_id": tenant_id})
            return None

        subscription, plan, clients, sessions = row
        return build_snapshot(subscription, plan, int(clients or 0), int(sessions or 0), today)
