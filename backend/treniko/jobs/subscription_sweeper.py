"""
Subscription lifecycle sweeper.

Runs once a day (scheduled externally) to apply the lifecycle rules to every
candidate tenant: expiry warnings, expiry to read-only mode, and suspension.

Each tenant is its own unit of work. The conditional status update and the
notification append commit together or not at all. A notification the
ledger already holds for the same period leaves the status change in place.
A failure for one tenant never aborts the batch. Re-running a sweep on the
same day is a no-op.

Usage:
    python -m treniko.jobs.subscription_sweeper
    python -m treniko.jobs.subscription_sweeper --date 2026-03-01
"""

import argparse
import logging
import os
import sys
from collections import Counter
from datetime import date, datetime, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from treniko.lifecycle.errors import DuplicateNotificationRejected, TransitionConflict
from treniko.lifecycle.rules import SubscriptionState, evaluate_transition, render_notification
from treniko.models.base import utcnow
from treniko.models.notification import SubscriptionNotification
from treniko.repositories.notification_ledger import NotificationLedger
from treniko.repositories.subscription_repository import SubscriptionRepository

logger = logging.getLogger(__name__)


class SweepStats:
    """Track sweep run statistics."""

    def __init__(self, sweep_date: date):
        self.sweep_date = sweep_date
        self.candidates = 0
        self.processed = 0
        self.transitions = 0
        self.notifications_sent = 0
        self.conflicts = 0
        self.duplicates = 0
        self.errors = 0
        self.by_notification = Counter()
        self.start_time = datetime.now(timezone.utc)

    def to_dict(self) -> dict:
        duration = (datetime.now(timezone.utc) - self.start_time).total_seconds()
        return {
            "sweep_date": self.sweep_date.isoformat(),
            "candidates": self.candidates,
            "processed": self.processed,
            "transitions": self.transitions,
            "notifications_sent": self.notifications_sent,
            "conflicts": self.conflicts,
            "duplicates": self.duplicates,
            "errors": self.errors,
            "by_notification": dict(self.by_notification),
            "duration_seconds": duration,
        }


class SubscriptionSweeper:
    """
    Applies the lifecycle rules to all candidate tenants.

    Args:
        session_factory: Callable returning a new Session; one session is
            opened per tenant
        today: Sweep date (defaults to the current UTC date)
        now: Reference time for the ledger windows and sent_at
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        today: Optional[date] = None,
        now: Optional[datetime] = None,
    ):
        self.session_factory = session_factory
        if now is None:
            now = utcnow()
            if today is not None:
                now = datetime.combine(today, now.timetz())
        self.now = now
        self.today = today or now.date()

    def run(self) -> SweepStats:
        stats = SweepStats(self.today)
        logger.info("Starting subscription sweep", extra={"sweep_date": self.today.isoformat()})

        session = self.session_factory()
        try:
            tenant_ids = SubscriptionRepository(session).find_sweep_candidates(self.today)
        finally:
            session.close()

        stats.candidates = len(tenant_ids)
        logger.info("Found sweep candidates", extra={"candidate_count": stats.candidates})

        for tenant_id in tenant_ids:
            stats.processed += 1
            try:
                self._process_tenant(tenant_id, stats)
            except Exception as e:
                stats.errors += 1
                logger.error(
                    "Error sweeping tenant",
                    extra={"tenant_id": tenant_id, "error": str(e), "error_type": type(e).__name__},
                    exc_info=True,
                )

        self._log_plan_summary()
        logger.info("Subscription sweep completed", extra=stats.to_dict())
        return stats

    def _process_tenant(self, tenant_id: str, stats: SweepStats) -> None:
        session = self.session_factory()
        duplicate: Optional[DuplicateNotificationRejected] = None
        try:
            repo = SubscriptionRepository(session)
            ledger = NotificationLedger(session)

            subscription = repo.get_for_tenant(tenant_id)
            if subscription is None:
                return

            state = SubscriptionState.from_subscription(subscription)
            transition = evaluate_transition(
                state,
                self.today,
                ledger.recently_sent_types(tenant_id, self.now),
            )
            if transition.is_noop:
                session.rollback()
                return

            if transition.changes_status:
                if not repo.transition_status(
                    subscription.id, transition.current_status, transition.next_status
                ):
                    raise TransitionConflict(
                        tenant_id, transition.current_status.value, transition.next_status.value
                    )

            if transition.notification is not None:
                title, message = render_notification(transition.notification, state)
                try:
                    # A rejected record only rolls back its savepoint; the
                    # existing record already pairs with the status change.
                    with session.begin_nested():
                        ledger.append(SubscriptionNotification.create(
                            tenant_id=tenant_id,
                            notification_type=transition.notification,
                            title=title,
                            message=message,
                            period_end=transition.period_end,
                            sent_at=self.now,
                        ))
                except DuplicateNotificationRejected as e:
                    duplicate = e

            session.commit()

        except TransitionConflict as e:
            session.rollback()
            stats.conflicts += 1
            logger.warning(
                "Subscription changed during sweep, skipping",
                extra={
                    "tenant_id": tenant_id,
                    "expected_status": e.expected_status,
                    "target_status": e.target_status,
                },
            )
            return
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        if duplicate is not None:
            stats.duplicates += 1
            logger.info(
                "Notification already recorded, skipping",
                extra={"tenant_id": tenant_id, "notification_type": duplicate.notification_type},
            )
            if not transition.changes_status:
                return

        if transition.changes_status:
            stats.transitions += 1
        if transition.notification is not None and duplicate is None:
            stats.notifications_sent += 1
            stats.by_notification[transition.notification.value] += 1

        logger.info(
            "Lifecycle transition applied",
            extra={
                "tenant_id": tenant_id,
                "from_status": transition.current_status.value,
                "to_status": transition.next_status.value,
                "notification_type": transition.notification.value if transition.notification else None,
            },
        )

    def _log_plan_summary(self) -> None:
        session = self.session_factory()
        try:
            for row in SubscriptionRepository(session).plan_summary():
                logger.info("Subscription plan summary", extra=row)
        except Exception as e:
            logger.warning("Failed to compute plan summary", extra={"error": str(e)})
        finally:
            session.close()


def run_sweep(
    session_factory: Optional[Callable[[], Session]] = None,
    today: Optional[date] = None,
) -> dict:
    """
    Run one lifecycle sweep.

    Returns:
        Statistics dictionary with job results
    """
    if session_factory is None:
        from treniko.database.session import get_session_factory
        session_factory = get_session_factory()

    return SubscriptionSweeper(session_factory, today=today).run().to_dict()


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}', expected YYYY-MM-DD")


def main(argv=None):
    """Entry point for running the sweep from the command line."""
    parser = argparse.ArgumentParser(description="Apply subscription lifecycle rules")
    parser.add_argument(
        "--date",
        type=_parse_date,
        default=None,
        help="Sweep date (YYYY-MM-DD), defaults to today in UTC",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        result = run_sweep(today=args.date)
        print(f"Subscription sweep completed: {result}")
        sys.exit(0)
    except Exception as e:
        logger.error("Subscription sweep failed", extra={"error": str(e)}, exc_info=True)
        print(f"Subscription sweep failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
