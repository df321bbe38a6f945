"""
Feature entitlement dependencies.

Feature checks are attached per route:

    @router.get("/export", dependencies=[Depends(require_feature("export"))])

The feature name is validated when the dependency is built, so a typo fails
at import time with UnknownFeatureError instead of silently passing.
"""

import logging
from typing import Callable, Union

from fastapi import Request, HTTPException, Depends

from treniko.database.session import get_db_session
from treniko.entitlements.features import PlanFeature
from treniko.entitlements.gate import EntitlementGate, FeatureCheck, GateRequest
from treniko.entitlements.snapshot import EntitlementSnapshotReader
from treniko.platform.tenant_context import get_tenant_context

logger = logging.getLogger(__name__)


def require_feature(feature: Union[str, PlanFeature]) -> Callable:
    """
    Factory function to create a feature check dependency.

    Args:
        feature: PlanFeature or its name

    Returns:
        A FastAPI dependency that raises 403 with the denial payload when
        the tenant's plan lacks the feature, and returns the db session
        otherwise.

    Raises:
        UnknownFeatureError: feature is not a PlanFeature
    """
    check = FeatureCheck(feature)

    def check_feature(
        request: Request,
        db_session=Depends(get_db_session),
    ):
        tenant_ctx = get_tenant_context(request)

        # Share the middleware's gate so the read-error policy is the same
        base_gate = getattr(request.state, "entitlement_gate", None) or EntitlementGate(checks=[])
        gate = base_gate.with_checks([check])

        def load_snapshot(tenant_id: str):
            try:
                return EntitlementSnapshotReader(db_session).read(tenant_id)
            except Exception:
                # The route reuses this session; clear the failed transaction
                db_session.rollback()
                raise

        decision = gate.evaluate(
            GateRequest(
                tenant_id=tenant_ctx.tenant_id,
                method=request.method,
                path=request.url.path,
            ),
            load_snapshot,
        )

        if not decision.allowed:
            logger.info(
                "Feature access denied",
                extra={
                    "tenant_id": tenant_ctx.tenant_id,
                    "feature": check.feature.value,
                    "reason_code": decision.denial.reason_code,
                },
            )
            raise HTTPException(
                status_code=decision.denial.http_status,
                detail=decision.denial.to_dict(),
            )

        return db_session

    return check_feature
