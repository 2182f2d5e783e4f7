"""
Notification outbox.

Rows are written in the same transaction as the ledger change they announce.
Delivery (email/SMS) is done elsewhere by whatever drains this table.
"""
from datetime import datetime
from ..extensions import db


class NotificationRequest(db.Model):
    __tablename__ = 'notification_requests'

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(64), db.ForeignKey('accounts.id'), nullable=False)
    event_type = db.Column(db.String(50), nullable=False)
    payload = db.Column(db.JSON, default=dict)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    dispatched_at = db.Column(db.DateTime)

    __table_args__ = (
        db.Index('ix_notification_requests_undispatched', 'dispatched_at', 'created_at'),
    )

    def __repr__(self):
        return f'<NotificationRequest {self.id}: {self.event_type} for {self.account_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'account_id': self.account_id,
            'event_type': self.event_type,
            'payload': self.payload,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'dispatched_at': self.dispatched_at.isoformat() if self.dispatched_at else None,
        }
