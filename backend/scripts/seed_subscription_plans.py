"""
Subscription Plans Seed Script
Upserts the plan catalog from config/subscription_plans.yml
(Free, Pro, Enterprise) into subscription_plans, matched by name.

Usage:
    python -m scripts.seed_subscription_plans
    python -m scripts.seed_subscription_plans --dry-run (to preview without saving)

Environment variables:
    DATABASE_URL: PostgreSQL connection string (required)
    SUBSCRIPTION_PLANS_CONFIG: alternative catalog file (optional)
"""

import sys
import logging
from pathlib import Path

# Add backend directory to path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from treniko.config.plan_catalog import get_plan_catalog, seed_plans
from treniko.database.session import get_database_url

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def seed_subscription_plans(database_url: str, dry_run: bool = False) -> None:
    """
    Upsert the catalog.

    Args:
        database_url: Database connection string
        dry_run: If True, preview changes without saving
    """
    catalog = get_plan_catalog()
    engine = create_engine(database_url, pool_pre_ping=True)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = SessionLocal()
    try:
        logger.info(f"Mode: {'DRY RUN' if dry_run else 'EXECUTION'}")
        for plan in catalog.all():
            logger.info(
                f"  {plan.name}: {plan.display_name} "
                f"{plan.price_monthly_cents / 100:.2f}/{plan.price_yearly_cents / 100:.2f} {catalog.currency}, "
                f"clients={plan.max_clients or 'unlimited'}, "
                f"sessions={plan.max_sessions_per_month or 'unlimited'}, "
                f"features={sorted(f.value for f in plan.features)}"
            )

        result = seed_plans(session, catalog)

        if dry_run:
            session.rollback()
            logger.info("DRY RUN - No changes were made")
        else:
            session.commit()

        logger.info(f"Created: {result['created']}  Updated: {result['updated']}")
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Seed subscription plans into the database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m scripts.seed_subscription_plans              # Upsert plans
  python -m scripts.seed_subscription_plans --dry-run    # Preview without saving
        """
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Preview changes without saving to database"
    )
    args = parser.parse_args()

    try:
        seed_subscription_plans(get_database_url(), args.dry_run)
    except Exception as e:
        logger.error(f"Script failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
