"""
Root test configuration and fixtures.

Provides database fixtures that can be used by all tests:
- db_engine / session_factory / db_session: a fresh schema per test
  (the sweeper and the services commit, so no rollback-only isolation)
- make_plan / make_subscription / make_clients / make_sessions: row factories

Shared config fixtures:
- temp_config_dir: Temporary directory for YAML config files
- make_yaml_config: Factory for writing YAML configs to temp dir
"""

import os
import tempfile
import uuid
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Generator, Optional

import pytest
import yaml
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ.setdefault("ENV", "test")

TODAY = date(2026, 3, 15)


def _get_test_database_url() -> str:
    """Get database URL for tests."""
    database_url = os.getenv("DATABASE_URL")

    if database_url:
        # Handle Render's postgres:// URL format
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)
        return database_url

    # Default to SQLite for unit tests if no PostgreSQL available
    return "sqlite:///:memory:"


def _is_postgres() -> bool:
    """Check if using PostgreSQL."""
    url = _get_test_database_url()
    return url.startswith("postgresql")


@pytest.fixture
def db_engine():
    """
    Create database engine with a fresh schema.

    Uses PostgreSQL if DATABASE_URL is set, otherwise SQLite in-memory.
    """
    database_url = _get_test_database_url()

    if _is_postgres():
        try:
            engine = create_engine(database_url, pool_pre_ping=True)
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            pytest.skip(
                f"PostgreSQL not available. Set DATABASE_URL or use SQLite. Error: {e}"
            )
    else:
        # SQLite in-memory for fast unit tests
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    # Import and create all tables
    from treniko.db_base import Base
    import treniko.models  # noqa: F401

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker:
    """Session factory bound to the test engine."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=db_engine,
    )


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    """Session for arranging and asserting test data."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# =============================================================================
# Row factories
# =============================================================================

PLAN_DEFAULTS = {
    "free": {
        "display_name": "Free",
        "sort_order": 0,
        "price_monthly_cents": 0,
        "price_yearly_cents": 0,
        "max_clients": 5,
        "max_sessions_per_month": 40,
        "max_trainer_seats": 1,
        "has_training_logs": True,
    },
    "pro": {
        "display_name": "Pro",
        "sort_order": 1,
        "price_monthly_cents": 2900,
        "price_yearly_cents": 29000,
        "max_clients": 50,
        "max_sessions_per_month": None,
        "max_trainer_seats": 1,
        "has_training_logs": True,
        "has_analytics": True,
        "has_export": True,
    },
    "enterprise": {
        "display_name": "Enterprise",
        "sort_order": 2,
        "price_monthly_cents": 7900,
        "price_yearly_cents": 79000,
        "max_clients": None,
        "max_sessions_per_month": None,
        "max_trainer_seats": 5,
        "has_training_logs": True,
        "has_analytics": True,
        "has_export": True,
        "has_api_access": True,
        "has_custom_branding": True,
        "has_priority_support": True,
    },
}


@pytest.fixture
def make_plan(db_session):
    """
    Factory fixture for SubscriptionPlan rows (committed).

    Usage:
        free = make_plan("free")
        tiny = make_plan("tiny", max_clients=1)
    """
    from treniko.models.plan import SubscriptionPlan

    def _make(name: str = "free", **overrides) -> SubscriptionPlan:
        values = dict(PLAN_DEFAULTS.get(name) or {**PLAN_DEFAULTS["free"], "display_name": name.title()})
        values.update(overrides)
        plan = SubscriptionPlan(name=name, **values)
        db_session.add(plan)
        db_session.commit()
        return plan

    return _make


@pytest.fixture
def make_subscription(db_session):
    """
    Factory fixture for TenantSubscription rows (committed).

    Usage:
        sub = make_subscription(plan, period_end=TODAY + timedelta(days=7))
    """
    from treniko.models.subscription import TenantSubscription, SubscriptionStatus

    def _make(
        plan,
        tenant_id: Optional[str] = None,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        period_end: date = TODAY + timedelta(days=20),
        period_start: Optional[date] = None,
        is_trial: bool = False,
        cancel_at_period_end: bool = False,
    ) -> TenantSubscription:
        subscription = TenantSubscription(
            tenant_id=tenant_id or f"tenant_{uuid.uuid4().hex[:8]}",
            plan_id=plan.id,
            status=SubscriptionStatus(status).value,
            is_trial=is_trial,
            current_period_start=period_start or period_end - timedelta(days=30),
            current_period_end=period_end,
            cancel_at_period_end=cancel_at_period_end,
        )
        db_session.add(subscription)
        db_session.commit()
        return subscription

    return _make


@pytest.fixture
def make_clients(db_session):
    """Factory fixture creating N clients for a tenant (committed)."""
    from treniko.models.usage import Client

    def _make(tenant_id: str, count: int, is_active: bool = True):
        clients = [
            Client(tenant_id=tenant_id, name=f"Client {i}", is_active=is_active)
            for i in range(count)
        ]
        db_session.add_all(clients)
        db_session.commit()
        return clients

    return _make


@pytest.fixture
def make_sessions(db_session):
    """Factory fixture creating N training sessions for a tenant (committed)."""
    from treniko.models.usage import TrainingSession

    def _make(tenant_id: str, count: int, created_at: Optional[datetime] = None):
        created_at = created_at or datetime.combine(TODAY, datetime.min.time(), tzinfo=timezone.utc)
        sessions = [
            TrainingSession(tenant_id=tenant_id, created_at=created_at, updated_at=created_at)
            for _ in range(count)
        ]
        db_session.add_all(sessions)
        db_session.commit()
        return sessions

    return _make


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "security: mark test as security-focused")
    config.addinivalue_line("markers", "slow: mark test as slow-running")


# =============================================================================
# Shared Config Fixtures
# =============================================================================


@pytest.fixture
def temp_config_dir():
    """Create a temporary directory for YAML config files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_yaml_config(temp_config_dir):
    """
    Factory fixture that writes a YAML config file and returns its path.

    Usage:
        config_path = make_yaml_config("plans.yml", {"plans": {...}})
    """
    def _make(filename: str, config: dict) -> Path:
        config_path = temp_config_dir / filename
        with open(config_path, "w") as f:
            yaml.dump(config, f)
        return config_path
    return _make
