"""
Ledger Store.

The append-only points ledger plus the derived confirmed balance per account.

ARCHITECTURE:
- ledger_entries is the source of truth; a row is never deleted and its delta
  never changes
- accounts.confirmed_balance is a running total of confirmed deltas, moved
  only here and only through a single conditional UPDATE so concurrent
  writers cannot lose an update or push it below zero
- Pending earn entries are not spendable; they are reported separately

Each append is one transaction. When a caller needs more rows in the same
transaction (notification outbox, referral status) it passes commit=False,
does its own writes and commits; append must then be the first write of
that unit of work, because a duplicate key rolls the session back.
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, NamedTuple, Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models.account import Account
from ..models.ledger import LedgerEntry, EntryReason, EntryStatus, EARN_REASONS
from ..utils.exceptions import (
    AccountNotFoundError,
    EntryNotFoundError,
    InsufficientPointsError,
    InvalidStatusTransitionError,
    ValidationError,
)
from . import idempotency


class AppendResult(NamedTuple):
    entry: LedgerEntry
    created: bool  # False when the idempotency key had already been applied


class LedgerStore:
    """
    Usage:
        store = LedgerStore()

        result = store.append('acct-1', 42, EntryReason.BOOKING_COMPLETED.value,
                              'booking:500:earn', booking_id='500')
        balance = store.get_balance('acct-1')   # {'confirmed': 0, 'pending': 42}
    """

    # ==================== Writes ====================

    def append(
        self,
        account_id: str,
        delta: int,
        reason: str,
        idempotency_key: str,
        status: str = None,
        booking_id: str = None,
        review_id: str = None,
        referred_account_id: str = None,
        note: str = None,
        created_by: str = 'system',
        commit: bool = True,
    ) -> AppendResult:
        """
        Append one entry.

        Earn reasons default to pending and leave the balance alone. Confirmed
        entries move the balance in the same transaction; a debit that would
        take it below zero raises InsufficientPointsError and nothing is
        written.

        Returns:
            AppendResult. created is False when the key was already applied,
            in which case the existing entry is returned unchanged.
        """
        if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
            raise ValidationError('delta must be a non-zero integer', 'delta')
        if not idempotency_key:
            raise ValidationError('idempotency_key is required', 'idempotency_key')

        if status is None:
            status = EntryStatus.PENDING.value if reason in EARN_REASONS else EntryStatus.CONFIRMED.value
        if reason in EARN_REASONS and (status != EntryStatus.PENDING.value or delta < 0):
            raise ValidationError('Earn entries must be positive and start pending', 'status')
        if reason not in EARN_REASONS and status != EntryStatus.CONFIRMED.value:
            raise ValidationError(f'{reason} entries are created confirmed', 'status')

        existing = idempotency.find_applied(idempotency_key)
        if existing:
            current_app.logger.info(f"Ledger append skipped, key already applied: {idempotency_key}")
            return AppendResult(existing, False)

        if not Account.query.filter_by(id=account_id).first():
            raise AccountNotFoundError(account_id)

        entry = LedgerEntry(
            account_id=account_id,
            delta=delta,
            reason=reason,
            status=status,
            booking_id=booking_id,
            review_id=review_id,
            referred_account_id=referred_account_id,
            idempotency_key=idempotency_key,
            note=note,
            created_by=created_by,
            created_at=datetime.utcnow(),
            settled_at=datetime.utcnow() if status == EntryStatus.CONFIRMED.value else None,
        )
        db.session.add(entry)

        try:
            db.session.flush()
        except IntegrityError:
            # A concurrent delivery of the same event won the insert
            db.session.rollback()
            existing = idempotency.find_applied(idempotency_key)
            if existing is None:
                raise
            current_app.logger.info(f"Ledger append lost race, returning existing entry: {idempotency_key}")
            return AppendResult(existing, False)

        if status == EntryStatus.CONFIRMED.value and not self._apply_balance(account_id, delta):
            db.session.rollback()
            raise InsufficientPointsError(self._read_balance(account_id), -delta)

        if commit:
            db.session.commit()

        current_app.logger.info(
            f"Ledger entry {entry.id}: {account_id} {delta:+d} pts {reason}/{status} ({idempotency_key})"
        )
        return AppendResult(entry, True)

    def transition(self, entry: LedgerEntry, to_status: str, now: datetime = None) -> bool:
        """
        Move a pending entry to confirmed or reversed.

        Conditional on the row still being pending, so a second settlement
        run (or a concurrent one) does nothing. Confirming credits the
        balance; reversing never touches it. Does not commit.

        Returns:
            True if this call performed the transition.
        """
        if to_status not in (EntryStatus.CONFIRMED.value, EntryStatus.REVERSED.value):
            raise InvalidStatusTransitionError('entry', entry.status, to_status)

        rows = LedgerEntry.query.filter_by(
            id=entry.id,
            status=EntryStatus.PENDING.value,
        ).update(
            {'status': to_status, 'settled_at': now or datetime.utcnow()},
            synchronize_session=False,
        )
        if rows == 0:
            return False

        if to_status == EntryStatus.CONFIRMED.value and not self._apply_balance(entry.account_id, entry.delta):
            raise InsufficientPointsError(self._read_balance(entry.account_id), -entry.delta)
        return True

    def adjust_points(
        self,
        account_id: str,
        delta: int,
        note: str,
        created_by: str,
        idempotency_key: str = None,
    ) -> AppendResult:
        """Admin correction. Confirmed immediately, either sign, never below zero."""
        if not note or not note.strip():
            raise ValidationError('A note is required for manual adjustments', 'note')
        return self.append(
            account_id=account_id,
            delta=delta,
            reason=EntryReason.MANUAL_ADJUSTMENT.value,
            idempotency_key=idempotency.adjustment_key(account_id, idempotency_key),
            status=EntryStatus.CONFIRMED.value,
            note=note.strip(),
            created_by=created_by,
        )

    def _apply_balance(self, account_id: str, delta: int) -> bool:
        # Single statement: increment guarded by the non-negative floor
        rows = Account.query.filter(
            Account.id == account_id,
            Account.confirmed_balance + delta >= 0,
        ).update(
            {'confirmed_balance': Account.confirmed_balance + delta},
            synchronize_session=False,
        )
        return rows == 1

    # ==================== Reads ====================

    def _read_balance(self, account_id: str) -> int:
        balance = db.session.query(Account.confirmed_balance).filter(Account.id == account_id).scalar()
        return balance or 0

    def get_balance(self, account_id: str) -> Dict[str, int]:
        """Spendable (confirmed) and pending points, read straight from storage."""
        confirmed = db.session.query(Account.confirmed_balance).filter(Account.id == account_id).scalar()
        if confirmed is None:
            raise AccountNotFoundError(account_id)

        pending = db.session.query(func.coalesce(func.sum(LedgerEntry.delta), 0)).filter(
            LedgerEntry.account_id == account_id,
            LedgerEntry.status == EntryStatus.PENDING.value,
        ).scalar()

        return {'confirmed': int(confirmed), 'pending': int(pending)}

    def computed_balance(self, account_id: str) -> int:
        """Sum of confirmed deltas; should always equal confirmed_balance."""
        total = db.session.query(func.coalesce(func.sum(LedgerEntry.delta), 0)).filter(
            LedgerEntry.account_id == account_id,
            LedgerEntry.status == EntryStatus.CONFIRMED.value,
        ).scalar()
        return int(total)

    def get_pending(self, account_id: str) -> List[LedgerEntry]:
        return LedgerEntry.query.filter_by(
            account_id=account_id,
            status=EntryStatus.PENDING.value,
        ).order_by(LedgerEntry.created_at.asc(), LedgerEntry.id.asc()).all()

    def get_entry(self, entry_id: int) -> LedgerEntry:
        entry = LedgerEntry.query.filter_by(id=entry_id).first()
        if not entry:
            raise EntryNotFoundError(entry_id)
        return entry

    def get_history(
        self,
        account_id: str,
        limit: int = 50,
        offset: int = 0,
        status: str = None,
    ) -> Dict[str, Any]:
        """Newest-first page of entries for dashboards."""
        if not Account.query.filter_by(id=account_id).first():
            raise AccountNotFoundError(account_id)

        query = LedgerEntry.query.filter_by(account_id=account_id)
        if status:
            if status not in {s.value for s in EntryStatus}:
                raise ValidationError(f'Unknown status: {status}', 'status')
            query = query.filter_by(status=status)

        total = query.count()
        entries = query.order_by(
            LedgerEntry.created_at.desc(),
            LedgerEntry.id.desc(),
        ).offset(offset).limit(limit).all()

        return {
            'entries': [e.to_dict() for e in entries],
            'total': total,
            'limit': limit,
            'offset': offset,
        }

    def redeemed_in_window(self, account_id: str, since: datetime) -> int:
        """Points redeemed (as a positive number) by confirmed redemptions since the given time."""
        total = db.session.query(func.coalesce(func.sum(LedgerEntry.delta), 0)).filter(
            LedgerEntry.account_id == account_id,
            LedgerEntry.reason == EntryReason.REDEMPTION.value,
            LedgerEntry.status == EntryStatus.CONFIRMED.value,
            LedgerEntry.created_at >= since,
        ).scalar()
        return abs(int(total))

    def get_status(self, account_id: str, now: datetime = None) -> Dict[str, Any]:
        """
        Everything the dashboard shows about an account's points.

        Includes the rolling redemption cap usage so the UI can say how much
        more can be spent this window.
        """
        account = Account.query.filter_by(id=account_id).first()
        if not account:
            raise AccountNotFoundError(account_id)

        config = current_app.config
        now = now or datetime.utcnow()
        balance = self.get_balance(account_id)

        cap = config['REDEMPTION_CAP_POINTS']
        window_start = now - timedelta(days=config['REDEMPTION_CAP_WINDOW_DAYS'])
        used = self.redeemed_in_window(account_id, window_start)
        remaining = max(0, cap - used)

        return {
            'account_id': account_id,
            'balance': balance['confirmed'],
            'pending': balance['pending'],
            'value': float(points_to_value(balance['confirmed'])),
            'currency': config['CURRENCY'],
            'min_redeem_points': config['MIN_REDEEM_POINTS'],
            'identity_verified': account.can_redeem,
            'can_redeem': (
                account.can_redeem
                and balance['confirmed'] >= config['MIN_REDEEM_POINTS']
                and remaining >= config['MIN_REDEEM_POINTS']
            ),
            'rolling_cap': {
                'max': cap,
                'used': used,
                'remaining': remaining,
                'percentage': round(used / cap * 100, 1) if cap else 0,
                'window_days': config['REDEMPTION_CAP_WINDOW_DAYS'],
            },
        }


def points_to_value(points: int) -> Decimal:
    """Currency value of a number of points."""
    return (Decimal(points) * current_app.config['POINT_VALUE']).quantize(Decimal('0.01'))
