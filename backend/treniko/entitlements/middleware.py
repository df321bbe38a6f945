"""
Entitlement Middleware - FastAPI middleware for request-level enforcement.

Runs the tenant-wide checks (read-only mode, client limit, session limit)
on every tenant request before it reaches a route. Per-route feature checks
live in treniko.api.dependencies.entitlements and share this middleware's
gate, so both honour the same read-error policy.

Denials are returned as JSON with the denial's HTTP status (403, or 503 for
a fail-closed read error).
"""

import logging
from typing import Callable, List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from treniko.entitlements.gate import EntitlementGate, GateDecision, GateRequest
from treniko.entitlements.snapshot import EntitlementSnapshotReader

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_PATHS = [
    "/health",
    "/api/health",
    "/docs",
    "/openapi.json",
    "/redoc",
]


def get_request_tenant_id(request: Request) -> Optional[str]:
    """Tenant ID placed on request.state by the upstream auth layer."""
    ctx = getattr(request.state, "tenant_context", None)
    if ctx is not None:
        return ctx.tenant_id
    return getattr(request.state, "tenant_id", None)


def evaluate_with_session(
    gate: EntitlementGate,
    gate_request: GateRequest,
    session_factory: Callable[[], Session],
) -> GateDecision:
    """
    Evaluate a gate with a snapshot read on a short-lived session.

    The session is opened lazily by the loader, so an unreachable database
    surfaces as a snapshot read failure and goes through the read-error
    policy.
    """
    session: Optional[Session] = None

    def load_snapshot(tenant_id: str):
        nonlocal session
        session = session_factory()
        return EntitlementSnapshotReader(session).read(tenant_id)

    try:
        return gate.evaluate(gate_request, load_snapshot)
    finally:
        if session is not None:
            session.close()


class EntitlementMiddleware(BaseHTTPMiddleware):
    """
    ASGI middleware for entitlement enforcement.

    Attaches the gate to request.state.entitlement_gate for route-level
    feature checks.

    Usage:
        app = FastAPI()
        app.add_middleware(EntitlementMiddleware, session_factory=get_session_factory())
    """

    def __init__(
        self,
        app: ASGIApp,
        session_factory: Optional[Callable[[], Session]] = None,
        gate: Optional[EntitlementGate] = None,
        excluded_paths: Optional[List[str]] = None,
    ):
        """
        Initialize middleware.

        Args:
            app: FastAPI/Starlette application
            session_factory: Callable returning a new Session (defaults to the
                pooled application session factory, resolved on first use)
            gate: Gate to evaluate (defaults to the tenant-wide checks with
                the policy from ENTITLEMENT_READ_ERROR_POLICY)
            excluded_paths: Extra path prefixes that skip enforcement
        """
        super().__init__(app)
        self._session_factory = session_factory
        self.gate = gate or EntitlementGate()
        self.excluded_paths = DEFAULT_EXCLUDED_PATHS + (excluded_paths or [])

    @property
    def session_factory(self) -> Callable[[], Session]:
        if self._session_factory is None:
            from treniko.database.session import get_session_factory
            self._session_factory = get_session_factory()
        return self._session_factory

    def _should_skip(self, path: str) -> bool:
        return any(
            path == excluded or path.startswith(excluded.rstrip("/") + "/")
            for excluded in self.excluded_paths
        )

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        request.state.entitlement_gate = self.gate

        if self._should_skip(path):
            return await call_next(request)

        tenant_id = get_request_tenant_id(request)
        if not tenant_id:
            # Unauthenticated or public endpoint
            return await call_next(request)

        gate_request = GateRequest(tenant_id=tenant_id, method=request.method, path=path)
        decision = await run_in_threadpool(
            evaluate_with_session, self.gate, gate_request, self._lazy_session
        )

        if not decision.allowed:
            return JSONResponse(
                status_code=decision.denial.http_status,
                content=decision.denial.to_dict(),
            )

        return await call_next(request)

    def _lazy_session(self) -> Session:
        return self.session_factory()
