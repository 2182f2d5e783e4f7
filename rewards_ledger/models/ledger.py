"""
Points ledger model.

Every point-affecting event is one immutable row. Rows are never deleted and
their delta never changes; only a pending earn entry's status moves, once.
"""
from datetime import datetime
from enum import Enum
from ..extensions import db


class EntryReason(str, Enum):
    """Why points moved."""
    BOOKING_COMPLETED = 'booking_completed'
    REVIEW_VERIFIED = 'review_verified'
    REFERRAL_COMPLETED = 'referral_completed'
    REDEMPTION = 'redemption'
    MANUAL_ADJUSTMENT = 'manual_adjustment'


class EntryStatus(str, Enum):
    """Settlement lifecycle: pending -> confirmed | reversed."""
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    REVERSED = 'reversed'


# Earn-type entries start pending and are settled after the hold period
EARN_REASONS = frozenset({
    EntryReason.BOOKING_COMPLETED.value,
    EntryReason.REVIEW_VERIFIED.value,
    EntryReason.REFERRAL_COMPLETED.value,
})


class LedgerEntry(db.Model):
    """
    One point movement for an account.

    Used for:
    - Booking completion earnings (pending)
    - Verified review bonuses (pending)
    - Referral bonuses for the referrer (pending)
    - Redemptions at checkout (confirmed debit)
    - Admin adjustments (confirmed)
    """
    __tablename__ = 'ledger_entries'

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(64), db.ForeignKey('accounts.id'), nullable=False)

    # Movement
    delta = db.Column(db.Integer, nullable=False)  # Positive = credit, negative = debit
    reason = db.Column(db.String(30), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=EntryStatus.PENDING.value)

    # Source tracking
    booking_id = db.Column(db.String(64))
    review_id = db.Column(db.String(64))
    referred_account_id = db.Column(db.String(64))

    # Derived from the triggering event, e.g. booking:500:earn
    idempotency_key = db.Column(db.String(200), nullable=False)

    note = db.Column(db.String(500))
    created_by = db.Column(db.String(100), default='system')

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    settled_at = db.Column(db.DateTime)

    # Relationships
    account = db.relationship('Account', backref=db.backref('ledger_entries', lazy='dynamic'))

    __table_args__ = (
        db.UniqueConstraint('idempotency_key', name='uq_ledger_entries_idempotency_key'),
        db.CheckConstraint('delta != 0', name='ck_ledger_entries_delta_non_zero'),
        db.Index('ix_ledger_entries_account_created', 'account_id', 'created_at'),
        db.Index('ix_ledger_entries_status_created', 'status', 'created_at'),
        db.Index('ix_ledger_entries_booking', 'booking_id'),
    )

    def __repr__(self):
        return f'<LedgerEntry {self.id}: {self.delta} pts {self.reason}/{self.status} for {self.account_id}>'

    @property
    def is_pending(self) -> bool:
        return self.status == EntryStatus.PENDING.value

    def to_dict(self):
        return {
            'id': self.id,
            'account_id': self.account_id,
            'delta': self.delta,
            'reason': self.reason,
            'status': self.status,
            'booking_id': self.booking_id,
            'review_id': self.review_id,
            'referred_account_id': self.referred_account_id,
            'idempotency_key': self.idempotency_key,
            'note': self.note,
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'settled_at': self.settled_at.isoformat() if self.settled_at else None,
        }
