"""
Tests for the notification ledger.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from treniko.lifecycle.errors import DuplicateNotificationRejected
from treniko.models.notification import NotificationType, SubscriptionNotification
from treniko.repositories.notification_ledger import NotificationLedger

NOW = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)
PERIOD_END = date(2026, 3, 22)


def _record(tenant_id="tenant_123", notification_type=NotificationType.EXPIRY_WARNING_7D,
            sent_at=NOW, period_end=PERIOD_END):
    return SubscriptionNotification.create(
        tenant_id=tenant_id,
        notification_type=notification_type,
        title="Subscription Expiring Soon",
        message="Your Pro subscription will expire in 7 days.",
        period_end=period_end,
        sent_at=sent_at,
    )


@pytest.fixture
def ledger(db_session):
    return NotificationLedger(db_session)


class TestRecencyCheck:

    def test_record_within_window_is_recent(self, ledger, db_session):
        ledger.append(_record(sent_at=NOW - timedelta(days=6)))
        db_session.commit()

        assert ledger.has_recent_notification(
            "tenant_123", NotificationType.EXPIRY_WARNING_7D, timedelta(days=7), NOW
        )

    def test_window_boundary_is_exclusive(self, ledger, db_session):
        ledger.append(_record(sent_at=NOW - timedelta(days=7)))
        db_session.commit()

        assert not ledger.has_recent_notification(
            "tenant_123", NotificationType.EXPIRY_WARNING_7D, timedelta(days=7), NOW
        )

    def test_other_tenant_not_visible(self, ledger, db_session):
        ledger.append(_record(tenant_id="tenant_other"))
        db_session.commit()

        assert not ledger.has_recent_notification(
            "tenant_123", NotificationType.EXPIRY_WARNING_7D, timedelta(days=7), NOW
        )

    def test_recently_sent_types_uses_per_type_windows(self, ledger, db_session):
        ledger.append(_record(sent_at=NOW - timedelta(days=5)))
        ledger.append(_record(
            notification_type=NotificationType.EXPIRY_WARNING_3D,
            sent_at=NOW - timedelta(days=4),
            period_end=date(2026, 3, 18),
        ))
        db_session.commit()

        recent = ledger.recently_sent_types("tenant_123", NOW)

        # 7d warning 5 days ago is inside its 7-day window; 3d warning 4 days ago is not
        assert recent == frozenset({NotificationType.EXPIRY_WARNING_7D})

    def test_windowless_types_never_reported_recent(self, ledger, db_session):
        ledger.append(_record(notification_type=NotificationType.SUBSCRIPTION_EXPIRED))
        db_session.commit()

        assert ledger.recently_sent_types("tenant_123", NOW) == frozenset()


class TestAppend:

    def test_append_persists_with_dedup_key(self, ledger, db_session):
        record = ledger.append(_record())
        db_session.commit()

        stored = db_session.query(SubscriptionNotification).one()
        assert stored.id == record.id
        assert stored.dedup_key == "tenant_123:expiry_warning_7d:2026-03-22"

    def test_duplicate_key_rejected(self, ledger, db_session):
        ledger.append(_record(sent_at=NOW - timedelta(days=30)))
        db_session.commit()

        with pytest.raises(DuplicateNotificationRejected) as exc_info:
            ledger.append(_record())
        db_session.rollback()

        assert exc_info.value.tenant_id == "tenant_123"
        assert exc_info.value.dedup_key == "tenant_123:expiry_warning_7d:2026-03-22"
        assert db_session.query(SubscriptionNotification).count() == 1

    def test_same_type_new_period_accepted(self, ledger, db_session):
        ledger.append(_record())
        ledger.append(_record(period_end=PERIOD_END + timedelta(days=30)))
        db_session.commit()

        assert db_session.query(SubscriptionNotification).count() == 2


class TestListForTenant:

    def test_newest_first_and_limited(self, ledger, db_session):
        for days_ago in (10, 2, 5):
            ledger.append(_record(
                sent_at=NOW - timedelta(days=days_ago),
                period_end=PERIOD_END + timedelta(days=days_ago),
            ))
        ledger.append(_record(tenant_id="tenant_other"))
        db_session.commit()

        records = ledger.list_for_tenant("tenant_123", limit=2)

        assert len(records) == 2
        assert [r.period_end for r in records] == [
            PERIOD_END + timedelta(days=2),
            PERIOD_END + timedelta(days=5),
        ]
        assert all(r.tenant_id == "tenant_123" for r in records)
