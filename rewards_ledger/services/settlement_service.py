"""
Settlement Engine.

Resolves pending earn entries once the hold period has passed:

    pending --(booking completed, not disputed)--> confirmed   balance += delta
    pending --(booking cancelled / refunded)-----> reversed    balance untouched
    pending --(anything else, or lookup failed)--> pending     retried next run

Review entries without a booking reference confirm once the hold is over.

run_settlement() is safe to call repeatedly and concurrently: every
transition is a conditional UPDATE on status = 'pending', so an entry that
another run already settled is skipped. Each entry is its own transaction.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models.booking import BookingStatus, FAILED_BOOKING_STATUSES
from ..models.ledger import EARN_REASONS, EntryReason, EntryStatus, LedgerEntry
from ..models.referral import Referral, ReferralStatus
from ..utils.exceptions import BookingLookupError
from .booking_lookup import get_booking_lookup
from .ledger_service import LedgerStore
from .notification_service import (
    NotificationService,
    POINTS_CONFIRMED,
    POINTS_REVERSED,
    REFERRAL_BONUS_CONFIRMED,
)

# Per-entry outcomes
CONFIRMED = EntryStatus.CONFIRMED.value
REVERSED = EntryStatus.REVERSED.value
STILL_PENDING = 'still_pending'
HELD = 'held'
ALREADY_SETTLED = 'already_settled'


class SettlementService:
    """
    Usage:
        summary = SettlementService().run_settlement()
        # {'processed': 12, 'confirmed': 9, 'reversed': 1, 'still_pending': 1, 'errors': 1}
    """

    def __init__(self, store: LedgerStore = None, lookup=None, notifications: NotificationService = None):
        self.store = store or LedgerStore()
        self._lookup = lookup
        self.notifications = notifications or NotificationService()

    @property
    def lookup(self):
        if self._lookup is None:
            self._lookup = get_booking_lookup()
        return self._lookup

    def hold_cutoff(self, now: datetime) -> datetime:
        return now - timedelta(hours=current_app.config['SETTLEMENT_HOLD_HOURS'])

    def run_settlement(self, now: datetime = None, batch_size: int = None) -> Dict[str, Any]:
        """
        Settle every pending earn entry older than the hold period.

        A booking lookup failure leaves that entry pending and counts as an
        error; the sweep carries on. A storage failure rolls back the current
        entry and propagates.
        """
        now = now or datetime.utcnow()
        batch_size = batch_size or current_app.config['SETTLEMENT_BATCH_SIZE']

        entries = LedgerEntry.query.filter(
            LedgerEntry.status == EntryStatus.PENDING.value,
            LedgerEntry.reason.in_(EARN_REASONS),
            LedgerEntry.created_at <= self.hold_cutoff(now),
        ).order_by(
            LedgerEntry.created_at.asc(),
            LedgerEntry.id.asc(),
        ).limit(batch_size).all()

        summary = {
            'processed': 0,
            'confirmed': 0,
            'reversed': 0,
            'still_pending': 0,
            'errors': 0,
        }

        for entry in entries:
            summary['processed'] += 1
            entry_id = entry.id
            try:
                outcome = self._settle(entry, now)
            except BookingLookupError as e:
                db.session.rollback()
                summary['errors'] += 1
                current_app.logger.warning(f"Settlement deferred for entry {entry_id}: {e.message}")
                continue

            if outcome == CONFIRMED:
                summary['confirmed'] += 1
            elif outcome == REVERSED:
                summary['reversed'] += 1
            elif outcome == STILL_PENDING:
                summary['still_pending'] += 1

        current_app.logger.info(
            f"Settlement run: {summary['processed']} processed, {summary['confirmed']} confirmed, "
            f"{summary['reversed']} reversed, {summary['still_pending']} still pending, "
            f"{summary['errors']} errors"
        )
        return summary

    def settle_entry(self, entry_id: int, now: datetime = None) -> Dict[str, Any]:
        """Settle one entry now, if it is pending and past the hold."""
        now = now or datetime.utcnow()
        entry = self.store.get_entry(entry_id)

        if not entry.is_pending:
            outcome = ALREADY_SETTLED
        elif entry.created_at > self.hold_cutoff(now):
            outcome = HELD
        else:
            outcome = self._settle(entry, now)

        return {'outcome': outcome, 'entry': self.store.get_entry(entry_id).to_dict()}

    # ==================== Internals ====================

    def decide(self, entry: LedgerEntry) -> Optional[str]:
        """Target status for an entry, or None to leave it pending."""
        if not entry.booking_id:
            if entry.reason == EntryReason.REVIEW_VERIFIED.value:
                return CONFIRMED
            current_app.logger.warning(f"Entry {entry.id} ({entry.reason}) has no booking reference")
            return None

        outcome = self.lookup.get_outcome(entry.booking_id)
        if outcome is None:
            return None
        if outcome.status in FAILED_BOOKING_STATUSES:
            return REVERSED
        if outcome.status == BookingStatus.COMPLETED.value and not outcome.disputed:
            return CONFIRMED
        return None

    def _settle(self, entry: LedgerEntry, now: datetime) -> str:
        target = self.decide(entry)
        if target is None:
            return STILL_PENDING

        # Plain values; the conditional update leaves the instance stale
        entry_id = entry.id
        account_id = entry.account_id
        delta = entry.delta
        reason = entry.reason
        referee_id = entry.referred_account_id

        try:
            if not self.store.transition(entry, target, now):
                db.session.rollback()
                current_app.logger.info(f"Entry {entry_id} already settled by another run")
                return ALREADY_SETTLED

            if reason == EntryReason.REFERRAL_COMPLETED.value:
                self._update_referral(account_id, referee_id, target, now)

            self._notify(entry_id, account_id, delta, reason, target)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.error(f"Settlement of entry {entry_id} failed, left pending", exc_info=True)
            raise

        current_app.logger.info(f"Entry {entry_id} {target}: {account_id} {delta:+d} pts {reason}")
        return target

    def _update_referral(self, referrer_id: str, referee_id: str, target: str, now: datetime) -> None:
        values = {'status': ReferralStatus.COMPLETED.value, 'completed_at': now}
        if target == REVERSED:
            values = {'status': ReferralStatus.CANCELLED.value}

        Referral.query.filter_by(
            referrer_id=referrer_id,
            referee_id=referee_id,
            status=ReferralStatus.SIGNED_UP.value,
        ).update(values, synchronize_session=False)

    def _notify(self, entry_id: int, account_id: str, delta: int, reason: str, target: str) -> None:
        if target == REVERSED:
            event_type = POINTS_REVERSED
        elif reason == EntryReason.REFERRAL_COMPLETED.value:
            event_type = REFERRAL_BONUS_CONFIRMED
        else:
            event_type = POINTS_CONFIRMED

        self.notifications.enqueue(account_id, event_type, {
            'entry_id': entry_id,
            'points': delta,
            'reason': reason,
        })
