"""
Notification outbox writer.

Ledger state changes that a member should hear about are recorded as
NotificationRequest rows in the same transaction as the change. Email/SMS
delivery drains the table and is not part of this service.
"""
from typing import Any, Dict, List

from flask import current_app

from ..extensions import db
from ..models.notification import NotificationRequest

POINTS_PENDING = 'points_pending'
POINTS_CONFIRMED = 'points_confirmed'
POINTS_REVERSED = 'points_reversed'
REFERRAL_BONUS_PENDING = 'referral_bonus_pending'
REFERRAL_BONUS_CONFIRMED = 'referral_bonus_confirmed'
POINTS_REDEEMED = 'points_redeemed'

EVENT_TYPES = frozenset({
    POINTS_PENDING,
    POINTS_CONFIRMED,
    POINTS_REVERSED,
    REFERRAL_BONUS_PENDING,
    REFERRAL_BONUS_CONFIRMED,
    POINTS_REDEEMED,
})


class NotificationService:

    def enqueue(self, account_id: str, event_type: str, payload: Dict[str, Any] = None) -> NotificationRequest:
        """Add an outbox row to the current session. The caller commits."""
        if event_type not in EVENT_TYPES:
            raise ValueError(f'Unknown notification event: {event_type}')

        notification = NotificationRequest(
            account_id=account_id,
            event_type=event_type,
            payload=payload or {},
        )
        db.session.add(notification)
        current_app.logger.debug(f"Queued {event_type} notification for {account_id}")
        return notification

    def undispatched(self, limit: int = 100) -> List[NotificationRequest]:
        return NotificationRequest.query.filter(
            NotificationRequest.dispatched_at.is_(None)
        ).order_by(NotificationRequest.created_at.asc(), NotificationRequest.id.asc()).limit(limit).all()
