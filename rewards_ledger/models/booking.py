"""
Booking outcome mirror.

The booking subsystem owns bookings; the ledger keeps the last outcome it was
told about so settlement can decide without a remote call.
"""
from datetime import datetime
from enum import Enum
from ..extensions import db


class BookingStatus(str, Enum):
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    REFUNDED = 'refunded'


# Failure terminal states reverse pending points
FAILED_BOOKING_STATUSES = frozenset({
    BookingStatus.CANCELLED.value,
    BookingStatus.REFUNDED.value,
})


class BookingRecord(db.Model):
    """Last known outcome of a booking, keyed by the booking subsystem's ID."""
    __tablename__ = 'booking_records'

    booking_id = db.Column(db.String(64), primary_key=True)
    account_id = db.Column(db.String(64), db.ForeignKey('accounts.id'), nullable=False)

    status = db.Column(db.String(20), nullable=False)
    disputed = db.Column(db.Boolean, default=False, nullable=False)
    net_amount = db.Column(db.Numeric(10, 2))

    completed_at = db.Column(db.DateTime)  # Set once, on the first completion signal
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.Index('ix_booking_records_account', 'account_id', 'completed_at'),
    )

    def __repr__(self):
        return f'<BookingRecord {self.booking_id} ({self.status})>'

    def to_dict(self):
        return {
            'booking_id': self.booking_id,
            'account_id': self.account_id,
            'status': self.status,
            'disputed': self.disputed,
            'net_amount': float(self.net_amount) if self.net_amount is not None else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }
