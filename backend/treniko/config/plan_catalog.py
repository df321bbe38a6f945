"""
Subscription plan catalog loader.

Loads the plan catalog from config/subscription_plans.yml, the single source
of truth for prices, caps and feature flags.

Consumers:
  - seed_plans(): upserts the catalog into subscription_plans
  - scripts/seed_subscription_plans.py

Usage:
    from treniko.config.plan_catalog import get_plan_catalog

    catalog = get_plan_catalog()
    pro = catalog.get("pro")
    seed_plans(session)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

import yaml
from sqlalchemy.orm import Session

from treniko.entitlements.errors import UnknownFeatureError
from treniko.entitlements.features import PlanFeature, parse_feature
from treniko.models.plan import SubscriptionPlan

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "subscription_plans.yml"


class PlanCatalogError(ValueError):
    """Raised when the catalog file is malformed."""
    pass


@dataclass(frozen=True)
class PlanDefinition:
    """One plan as declared in the catalog."""
    name: str
    display_name: str
    sort_order: int
    price_monthly_cents: int
    price_yearly_cents: int
    max_clients: Optional[int]
    max_sessions_per_month: Optional[int]
    max_trainer_seats: int
    features: frozenset = field(default_factory=frozenset)

    def column_values(self) -> Dict[str, Any]:
        """Values for a SubscriptionPlan row."""
        values = {
            "name": self.name,
            "display_name": self.display_name,
            "sort_order": self.sort_order,
            "price_monthly_cents": self.price_monthly_cents,
            "price_yearly_cents": self.price_yearly_cents,
            "max_clients": self.max_clients,
            "max_sessions_per_month": self.max_sessions_per_month,
            "max_trainer_seats": self.max_trainer_seats,
            "is_active": True,
        }
        for feature in PlanFeature:
            values[feature.plan_flag] = feature in self.features
        return values


def _optional_cap(name: str, key: str, value: Any) -> Optional[int]:
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise PlanCatalogError(f"Plan '{name}': {key} must be a non-negative integer or null")
    return value


def _required_int(name: str, key: str, cfg: Dict[str, Any], default: Optional[int] = None) -> int:
    value = cfg.get(key, default)
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise PlanCatalogError(f"Plan '{name}': {key} must be a non-negative integer")
    return value


def parse_plan(name: str, cfg: Dict[str, Any]) -> PlanDefinition:
    """
    Build a PlanDefinition from its YAML mapping.

    Raises:
        PlanCatalogError: missing/invalid field or unknown feature
    """
    if not isinstance(cfg, dict):
        raise PlanCatalogError(f"Plan '{name}' must be a mapping")

    try:
        features = frozenset(parse_feature(f) for f in cfg.get("features") or [])
    except UnknownFeatureError as e:
        raise PlanCatalogError(f"Plan '{name}': {e}") from e

    return PlanDefinition(
        name=name,
        display_name=cfg.get("display_name") or name.title(),
        sort_order=_required_int(name, "sort_order", cfg, 0),
        price_monthly_cents=_required_int(name, "price_monthly_cents", cfg),
        price_yearly_cents=_required_int(name, "price_yearly_cents", cfg),
        max_clients=_optional_cap(name, "max_clients", cfg.get("max_clients")),
        max_sessions_per_month=_optional_cap(
            name, "max_sessions_per_month", cfg.get("max_sessions_per_month")
        ),
        max_trainer_seats=_required_int(name, "max_trainer_seats", cfg, 1),
        features=features,
    )


class PlanCatalogLoader:
    """
    Thread-safe singleton loader for config/subscription_plans.yml.
    """

    _instance: Optional["PlanCatalogLoader"] = None
    _lock = Lock()

    def __new__(cls, config_path: Optional[str] = None):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        if self._initialized:
            return

        self._config_path = config_path or os.getenv("SUBSCRIPTION_PLANS_CONFIG")
        self._raw: Dict[str, Any] = {}
        self._plans: Dict[str, PlanDefinition] = {}
        self._load_lock = Lock()

        self._load()
        self._initialized = True

    def _resolve_path(self) -> Path:
        if self._config_path:
            return Path(self._config_path)

        candidates = [
            # backend/config, relative to this package
            Path(__file__).parent.parent.parent / "config" / CONFIG_FILENAME,
            Path(os.getcwd()) / "config" / CONFIG_FILENAME,
            Path(os.getcwd()) / "backend" / "config" / CONFIG_FILENAME,
        ]

        for p in candidates:
            resolved = p.resolve()
            if resolved.exists():
                return resolved

        raise FileNotFoundError(
            f"{CONFIG_FILENAME} not found in: {[str(p) for p in candidates]}"
        )

    def _load(self) -> None:
        with self._load_lock:
            path = self._resolve_path()
            logger.info("Loading plan catalog from %s", path)

            with open(path, "r") as f:
                self._raw = yaml.safe_load(f) or {}

            plans_cfg = self._raw.get("plans")
            if not isinstance(plans_cfg, dict) or not plans_cfg:
                raise PlanCatalogError(f"{path}: 'plans' must be a non-empty mapping")

            self._plans = {name: parse_plan(name, cfg) for name, cfg in plans_cfg.items()}

            logger.info("Loaded %d plans: %s", len(self._plans), sorted(self._plans))

    def reload(self) -> None:
        """Re-read the YAML from disk."""
        self._load()

    @property
    def currency(self) -> str:
        return self._raw.get("currency", "EUR")

    @property
    def plan_names(self) -> List[str]:
        return [p.name for p in self.all()]

    def get(self, name: str) -> Optional[PlanDefinition]:
        return self._plans.get(name)

    def all(self) -> List[PlanDefinition]:
        """Plans in display order."""
        return sorted(self._plans.values(), key=lambda p: (p.sort_order, p.name))


def get_plan_catalog(config_path: Optional[str] = None) -> PlanCatalogLoader:
    """Return the singleton PlanCatalogLoader."""
    return PlanCatalogLoader(config_path)


def reset_plan_catalog() -> None:
    """Reset singleton (for tests only)."""
    PlanCatalogLoader._instance = None


def seed_plans(db_session: Session, catalog: Optional[PlanCatalogLoader] = None) -> Dict[str, List[str]]:
    """
    Upsert the catalog into subscription_plans by name.

    Plans missing from the catalog are left untouched. Does not commit.

    Returns:
        {"created": [...], "updated": [...]}
    """
    catalog = catalog or get_plan_catalog()
    result: Dict[str, List[str]] = {"created": [], "updated": []}

    for definition in catalog.all():
        values = definition.column_values()
        plan = db_session.query(SubscriptionPlan).filter(
            SubscriptionPlan.name == definition.name
        ).first()

        if plan is None:
            db_session.add(SubscriptionPlan(**values))
            result["created"].append(definition.name)
        else:
            for key, value in values.items():
                setattr(plan, key, value)
            result["updated"].append(definition.name)

    db_session.flush()
    logger.info(
        "Plan catalog seeded",
        extra={"created_plans": result["created"], "updated_plans": result["updated"]},
    )
    return result
