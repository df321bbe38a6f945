"""
Notification ledger.

Answers "was notification type T sent to tenant X within window W?" and
appends new records. append() is the only mutator; records are immutable.

The recency check alone is not atomic with the insert. Duplicate prevention
under concurrent sweeps is backed by the UNIQUE dedup_key column: a losing
insert raises DuplicateNotificationRejected. Callers must run the check and
the append in the same session/transaction.
"""

import logging
from datetime import datetime, timedelta
from typing import FrozenSet, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from treniko.lifecycle.errors import DuplicateNotificationRejected
from treniko.models.base import utcnow
from treniko.models.notification import (
    SubscriptionNotification,
    NotificationType,
    DEDUP_WINDOWS,
)

logger = logging.getLogger(__name__)


class NotificationLedger:
    """Append-only ledger of lifecycle notifications."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def has_recent_notification(
        self,
        tenant_id: str,
        notification_type: NotificationType,
        window: timedelta,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Check whether a notification was sent strictly within the window.

        Args:
            tenant_id: Tenant ID
            notification_type: Notification type
            window: Lookback duration
            now: Reference time (defaults to current UTC time)

        Returns:
            True if a record with sent_at > now - window exists
        """
        now = now or utcnow()
        found = self.db.query(SubscriptionNotification.id).filter(
            SubscriptionNotification.tenant_id == tenant_id,
            SubscriptionNotification.notification_type == notification_type.value,
            SubscriptionNotification.sent_at > now - window,
        ).first()
        return found is not None

    def recently_sent_types(self, tenant_id: str, now: Optional[datetime] = None) -> FrozenSet[NotificationType]:
        """Types sent to the tenant within their own dedup window."""
        now = now or utcnow()
        return frozenset(
            notification_type
            for notification_type, window in DEDUP_WINDOWS.items()
            if window is not None
            and self.has_recent_notification(tenant_id, notification_type, window, now)
        )

    def append(self, record: SubscriptionNotification) -> SubscriptionNotification:
        """
        Append a record.

        Run inside a savepoint (session.begin_nested()) when the rest of the
        transaction must survive a rejection.

        Raises:
            DuplicateNotificationRejected: dedup_key already recorded
        """
        self.db.add(record)
        try:
            self.db.flush()
        except IntegrityError as e:
            logger.info(
                "Duplicate notification rejected by ledger",
                extra={
                    "tenant_id": record.tenant_id,
                    "notification_type": record.notification_type,
                    "dedup_key": record.dedup_key,
                },
            )
            raise DuplicateNotificationRejected(
                record.tenant_id, record.notification_type, record.dedup_key
            ) from e

        logger.info(
            "Notification recorded",
            extra={
                "tenant_id": record.tenant_id,
                "notification_id": record.id,
                "notification_type": record.notification_type,
            },
        )
        return record

    def list_for_tenant(self, tenant_id: str, limit: int = 20) -> List[SubscriptionNotification]:
        """Most recent records for a tenant, newest first."""
        return self.db.query(SubscriptionNotification).filter(
            SubscriptionNotification.tenant_id == tenant_id
        ).order_by(
            SubscriptionNotification.sent_at.desc()
        ).limit(limit).all()
