"""
Subscription API routes.

All routes are tenant-scoped; the tenant comes from the authenticated
tenant context. These paths stay writable in read-only mode so an expired
tenant can still renew or change plan.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Request, HTTPException, status, Depends, Query
from pydantic import BaseModel, Field

from treniko.database.session import get_db_session
from treniko.models.subscription import BillingPeriod
from treniko.platform.tenant_context import get_tenant_context
from treniko.services.subscription_service import (
    SubscriptionService,
    SubscriptionNotFound,
    PlanNotFoundError,
    PlanDowngradeBlockedError,
    UnknownResourceError,
    plan_to_dict,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


# Request/Response models
class PlanResponse(BaseModel):
    """Plan catalog entry."""
    id: str
    name: str
    display_name: str
    price_monthly_cents: int
    price_yearly_cents: int
    max_clients: Optional[int] = None
    max_sessions_per_month: Optional[int] = None
    max_trainer_seats: int
    has_training_logs: bool
    has_analytics: bool
    has_export: bool
    has_api_access: bool
    has_custom_branding: bool
    has_priority_support: bool


class PlansListResponse(BaseModel):
    """List of available plans."""
    plans: list[PlanResponse]


class SubscriptionStatusResponse(BaseModel):
    """Current subscription with live usage."""
    tenant_id: str
    status: str
    is_trial: bool
    is_read_only: bool
    plan_id: str
    plan_name: str
    plan_display_name: str
    current_period_end: str
    days_until_expiry: int
    cancel_at_period_end: bool
    clients_count: int
    max_clients: Optional[int] = None
    clients_limit_reached: bool
    sessions_count: int
    max_sessions_per_month: Optional[int] = None
    sessions_limit_reached: bool
    max_trainer_seats: int
    plan: PlanResponse


class ResourceCheckResponse(BaseModel):
    """Pre-flight check result."""
    resource: str
    allowed: bool
    plan_name: str
    current: Optional[int] = None
    limit: Optional[int] = None
    reason: Optional[str] = None


class NotificationResponse(BaseModel):
    id: str
    notification_type: str
    title: str
    message: str
    period_end: Optional[str] = None
    sent_at: Optional[str] = None


class NotificationsListResponse(BaseModel):
    notifications: list[NotificationResponse]


class ChangePlanRequest(BaseModel):
    """Request to change plan."""
    plan_id: str = Field(..., description="Target plan ID")
    billing_period: BillingPeriod = Field(BillingPeriod.MONTHLY, description="monthly or yearly")


class SubscriptionChangeResponse(BaseModel):
    """Subscription row after a plan change or cancellation."""
    success: bool
    plan_id: str
    status: str
    billing_period: str
    current_period_start: str
    current_period_end: str
    cancel_at_period_end: bool
    message: str


def get_subscription_service(request: Request, db_session=Depends(get_db_session)) -> SubscriptionService:
    """Get subscription service with tenant context."""
    tenant_ctx = get_tenant_context(request)
    return SubscriptionService(db_session, tenant_ctx.tenant_id)


def _change_response(subscription, message: str) -> SubscriptionChangeResponse:
    return SubscriptionChangeResponse(
        success=True,
        plan_id=subscription.plan_id,
        status=subscription.status,
        billing_period=subscription.billing_period,
        current_period_start=subscription.current_period_start.isoformat(),
        current_period_end=subscription.current_period_end.isoformat(),
        cancel_at_period_end=subscription.cancel_at_period_end,
        message=message,
    )


def _not_found(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/status", response_model=SubscriptionStatusResponse)
def get_subscription_status(
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Current subscription status, plan details and usage against limits."""
    try:
        result = service.get_status()
    except SubscriptionNotFound as e:
        raise _not_found(e)

    return SubscriptionStatusResponse(**result["subscription"], plan=PlanResponse(**result["plan"]))


@router.get("/plans", response_model=PlansListResponse)
def list_plans(
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Active plans available for plan changes."""
    return PlansListResponse(
        plans=[PlanResponse(**plan_to_dict(plan)) for plan in service.list_plans()]
    )


@router.get("/check/{resource}", response_model=ResourceCheckResponse)
def check_resource(
    resource: str,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Check whether the tenant can create a resource or use a feature.

    Resources: clients, sessions, or a plan feature name.
    """
    try:
        result = service.check_resource(resource)
    except UnknownResourceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except SubscriptionNotFound as e:
        raise _not_found(e)

    return ResourceCheckResponse(
        resource=result.resource,
        allowed=result.allowed,
        plan_name=result.plan_name,
        current=result.current,
        limit=result.limit,
        reason=result.reason,
    )


@router.get("/notifications", response_model=NotificationsListResponse)
def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Lifecycle notifications sent to the tenant, newest first."""
    return NotificationsListResponse(
        notifications=[
            NotificationResponse(**record.to_dict())
            for record in service.list_notifications(limit=limit)
        ]
    )


@router.post("/change-plan", response_model=SubscriptionChangeResponse)
def change_plan(
    change_request: ChangePlanRequest,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Change plan (upgrade or downgrade) and start a new billing period.

    A downgrade is rejected with 409 while the tenant has more active
    clients than the target plan allows.
    """
    try:
        subscription = service.change_plan(change_request.plan_id, change_request.billing_period)
    except (SubscriptionNotFound, PlanNotFoundError) as e:
        raise _not_found(e)
    except PlanDowngradeBlockedError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "downgrade_blocked",
                "message": str(e),
                "currentClients": e.current_clients,
                "newLimit": e.max_clients,
                "excessClients": e.excess_clients,
            },
        )

    return _change_response(subscription, f"Plan changed to {subscription.plan.display_name}")


@router.post("/cancel", response_model=SubscriptionChangeResponse)
def cancel_subscription(
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Cancel at the end of the current period."""
    try:
        subscription = service.cancel()
    except SubscriptionNotFound as e:
        raise _not_found(e)

    return _change_response(
        subscription,
        f"Subscription will end on {subscription.current_period_end.isoformat()}",
    )
