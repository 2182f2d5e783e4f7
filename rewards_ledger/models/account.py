"""
Account model.
"""
from datetime import datetime
from ..extensions import db


class Account(db.Model):
    """
    Loyalty account, one per marketplace user.

    confirmed_balance is derived from confirmed ledger entries and is only
    ever changed by the ledger store through atomic increments.
    """
    __tablename__ = 'accounts'

    id = db.Column(db.String(64), primary_key=True)  # External user ID

    # Contact info (synced from the user system)
    email = db.Column(db.String(255), nullable=False)
    mobile_number = db.Column(db.String(32))

    # Identity verification (required for redemption)
    mobile_verified = db.Column(db.Boolean, default=False, nullable=False)
    mobile_verified_at = db.Column(db.DateTime)

    # Spendable points
    confirmed_balance = db.Column(db.Integer, default=0, nullable=False)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint('confirmed_balance >= 0', name='ck_accounts_balance_non_negative'),
        db.Index('ix_accounts_email', 'email'),
        db.Index('ix_accounts_mobile_number', 'mobile_number'),
    )

    def __repr__(self):
        return f'<Account {self.id}>'

    @property
    def can_redeem(self) -> bool:
        """Redemption requires a verified mobile number."""
        return bool(self.mobile_verified and self.mobile_number)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'mobile_number': self.mobile_number,
            'mobile_verified': self.mobile_verified,
            'confirmed_balance': self.confirmed_balance,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
