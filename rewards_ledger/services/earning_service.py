"""
Earning Rules Engine.

Turns booking and review signals into pending ledger entries:
- Booking completed: 1 point per whole currency unit of net amount
- Review verified: fixed bonus
- Referee's first completed booking: fixed bonus to the referrer

Nothing here touches the balance. Entries sit pending until the settlement
sweep confirms or reverses them.
"""
from datetime import datetime
from decimal import Decimal, ROUND_FLOOR
from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..events import BookingCompleted, BookingStatusChanged, ReviewVerified
from ..extensions import db
from ..models.account import Account
from ..models.booking import BookingRecord, BookingStatus, FAILED_BOOKING_STATUSES
from ..models.ledger import EntryReason, LedgerEntry
from ..models.referral import Referral, ReferralStatus
from ..utils.exceptions import AccountNotFoundError
from . import idempotency
from .ledger_service import LedgerStore
from .notification_service import (
    NotificationService,
    POINTS_PENDING,
    REFERRAL_BONUS_PENDING,
)


def points_for_amount(net_amount: Decimal) -> int:
    """floor(net amount) x points per currency unit; never negative."""
    if net_amount is None or net_amount <= 0:
        return 0
    whole_units = int(Decimal(net_amount).to_integral_value(rounding=ROUND_FLOOR))
    return whole_units * current_app.config['POINTS_PER_CURRENCY_UNIT']


class EarningService:
    """
    Usage:
        service = EarningService()
        result = service.handle(BookingCompleted('acct-1', '500', Decimal('42.00')))
    """

    def __init__(self, store: LedgerStore = None, notifications: NotificationService = None):
        self.store = store or LedgerStore()
        self.notifications = notifications or NotificationService()
        self._handlers = {
            BookingCompleted: self._on_booking_completed,
            BookingStatusChanged: self._on_booking_status_changed,
            ReviewVerified: self._on_review_verified,
        }

    def handle(self, event) -> Dict[str, Any]:
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f'No earning rule for event type {type(event).__name__}')
        return handler(event)

    # ==================== Bookings ====================

    def _on_booking_completed(self, event: BookingCompleted) -> Dict[str, Any]:
        self._require_account(event.account_id)
        self._record_completion(event)

        points = points_for_amount(event.net_amount)
        entry = None
        created = False

        if points > 0:
            result = self.store.append(
                account_id=event.account_id,
                delta=points,
                reason=EntryReason.BOOKING_COMPLETED.value,
                idempotency_key=idempotency.booking_earn_key(event.booking_id),
                booking_id=event.booking_id,
                note=f'Booking {event.booking_id}',
                commit=False,
            )
            entry, created = result.entry, result.created
            if created:
                self.notifications.enqueue(event.account_id, POINTS_PENDING, {
                    'entry_id': entry.id,
                    'points': points,
                    'booking_id': event.booking_id,
                    'reason': EntryReason.BOOKING_COMPLETED.value,
                })
            db.session.commit()
        else:
            current_app.logger.info(f"Booking {event.booking_id} earns no points (net {event.net_amount})")

        bonus = self._award_referral_bonus(event.account_id, event.booking_id)

        return {
            'success': True,
            'created': created,
            'points': points,
            'entry': entry.to_dict() if entry else None,
            'referral_bonus': bonus.to_dict() if bonus else None,
        }

    def _find_record(self, booking_id: str) -> Optional[BookingRecord]:
        return BookingRecord.query.filter_by(booking_id=booking_id).first()

    def _save_record(self, event, apply) -> BookingRecord:
        """
        Upsert the booking mirror and commit.

        apply(record, event) sets the fields. If a concurrent delivery inserts
        the same booking first, the insert is dropped and apply runs again on
        the stored row.
        """
        record = self._find_record(event.booking_id)
        if record is None:
            self._require_account(event.account_id)
            record = BookingRecord(booking_id=event.booking_id, account_id=event.account_id)
            db.session.add(record)
        apply(record, event)

        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            record = self._find_record(event.booking_id)
            if record is None:
                raise
            current_app.logger.info(f"Booking {event.booking_id} was recorded concurrently; updating it")
            apply(record, event)
            db.session.commit()
        return record

    def _record_completion(self, event: BookingCompleted) -> BookingRecord:
        """Upsert the booking mirror. A cancel/refund seen earlier is kept."""
        return self._save_record(event, self._apply_completion)

    @staticmethod
    def _apply_completion(record: BookingRecord, event: BookingCompleted) -> None:
        if record.status in FAILED_BOOKING_STATUSES:
            current_app.logger.warning(
                f"Completion for booking {event.booking_id} arrived after {record.status}; keeping {record.status}"
            )
        else:
            record.status = BookingStatus.COMPLETED.value

        record.net_amount = event.net_amount
        if record.completed_at is None:
            record.completed_at = event.completed_at or datetime.utcnow()

    def _on_booking_status_changed(self, event: BookingStatusChanged) -> Dict[str, Any]:
        """Mirror only; settlement reads the outcome when the hold ends."""
        record = self._save_record(event, self._apply_status)

        current_app.logger.info(
            f"Booking {event.booking_id} now {record.status}{' (disputed)' if record.disputed else ''}"
        )
        return {'success': True, 'booking': record.to_dict()}

    @staticmethod
    def _apply_status(record: BookingRecord, event: BookingStatusChanged) -> None:
        if record.status in FAILED_BOOKING_STATUSES and event.status not in FAILED_BOOKING_STATUSES:
            current_app.logger.warning(
                f"Ignoring {event.status} for booking {event.booking_id}; already {record.status}"
            )
        else:
            record.status = event.status

        record.disputed = event.disputed
        if event.status == BookingStatus.COMPLETED.value and record.completed_at is None:
            record.completed_at = datetime.utcnow()

    # ==================== Referrals ====================

    def _award_referral_bonus(self, referee_id: str, booking_id: str) -> Optional[LedgerEntry]:
        """
        Pending bonus for the referrer on the referee's first completed booking.

        Any other completed booking on record for the referee means this is
        not the first, so no bonus. The pair key blocks a second bonus even if
        an earlier one was reversed.
        """
        referral = Referral.query.filter_by(
            referee_id=referee_id,
            status=ReferralStatus.SIGNED_UP.value,
        ).first()
        if not referral:
            return None

        earlier_bookings = BookingRecord.query.filter(
            BookingRecord.account_id == referee_id,
            BookingRecord.completed_at.isnot(None),
            BookingRecord.booking_id != booking_id,
        ).count()
        if earlier_bookings:
            current_app.logger.info(
                f"No referral bonus for {referral.referrer_id}: {referee_id} already has completed bookings"
            )
            return None

        bonus_points = current_app.config['REFERRAL_BONUS_POINTS']
        result = self.store.append(
            account_id=referral.referrer_id,
            delta=bonus_points,
            reason=EntryReason.REFERRAL_COMPLETED.value,
            idempotency_key=idempotency.referral_bonus_key(referral.referrer_id, referee_id),
            booking_id=booking_id,
            referred_account_id=referee_id,
            note=f'Referral of {referee_id}',
            commit=False,
        )
        if result.created:
            self.notifications.enqueue(referral.referrer_id, REFERRAL_BONUS_PENDING, {
                'entry_id': result.entry.id,
                'points': bonus_points,
                'referee_id': referee_id,
            })
            db.session.commit()
            current_app.logger.info(
                f"Referral bonus pending: {referral.referrer_id} +{bonus_points} pts for {referee_id}"
            )
        return result.entry

    # ==================== Reviews ====================

    def _on_review_verified(self, event: ReviewVerified) -> Dict[str, Any]:
        self._require_account(event.account_id)

        points = current_app.config['REVIEW_BONUS_POINTS']
        result = self.store.append(
            account_id=event.account_id,
            delta=points,
            reason=EntryReason.REVIEW_VERIFIED.value,
            idempotency_key=idempotency.review_earn_key(event.review_id),
            booking_id=event.booking_id,
            review_id=event.review_id,
            note=f'Review {event.review_id}',
            commit=False,
        )
        if result.created:
            self.notifications.enqueue(event.account_id, POINTS_PENDING, {
                'entry_id': result.entry.id,
                'points': points,
                'review_id': event.review_id,
                'reason': EntryReason.REVIEW_VERIFIED.value,
            })
            db.session.commit()

        return {
            'success': True,
            'created': result.created,
            'points': points,
            'entry': result.entry.to_dict(),
        }

    def _require_account(self, account_id: str) -> Account:
        account = Account.query.filter_by(id=account_id).first()
        if not account:
            raise AccountNotFoundError(account_id)
        return account
