"""
Referral models.
Tracks who referred whom, the fraud signals captured at signup, and the
single-use codes members share.
"""
from datetime import datetime
from enum import Enum
from ..extensions import db


class ReferralStatus(str, Enum):
    SIGNED_UP = 'signed_up'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class ReferralCodeStatus(str, Enum):
    ACTIVE = 'active'
    USED = 'used'


class ReferralCode(db.Model):
    """
    Shareable referral code.

    An account holds at most one active code. A code is consumed by exactly
    one signup and is then replaced; used codes are never handed out again.
    """
    __tablename__ = 'referral_codes'

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(64), db.ForeignKey('accounts.id'), nullable=False)
    code = db.Column(db.String(32), nullable=False, unique=True)
    status = db.Column(db.String(20), nullable=False, default=ReferralCodeStatus.ACTIVE.value)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    used_at = db.Column(db.DateTime)

    owner = db.relationship('Account', backref=db.backref('referral_codes', lazy='dynamic'))

    __table_args__ = (
        # One active code per account
        db.Index(
            'uq_referral_codes_one_active',
            'account_id',
            unique=True,
            postgresql_where=db.text("status = 'active'"),
            sqlite_where=db.text("status = 'active'"),
        ),
    )

    def __repr__(self):
        return f'<ReferralCode {self.code} ({self.status})>'

    def to_dict(self):
        return {
            'code': self.code,
            'account_id': self.account_id,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'used_at': self.used_at.isoformat() if self.used_at else None,
        }


class Referral(db.Model):
    """
    Individual referral record.
    Created at signup; the bonus itself lives in the ledger.
    """
    __tablename__ = 'referrals'

    id = db.Column(db.Integer, primary_key=True)

    referrer_id = db.Column(db.String(64), db.ForeignKey('accounts.id'), nullable=False)
    referee_id = db.Column(db.String(64), db.ForeignKey('accounts.id'), nullable=False)

    referral_code = db.Column(db.String(32), nullable=False)

    # Fraud signals captured at signup
    device_fingerprint = db.Column(db.String(128))
    payment_method_hash = db.Column(db.String(128))
    ip_address = db.Column(db.String(45))

    status = db.Column(db.String(20), nullable=False, default=ReferralStatus.SIGNED_UP.value)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = db.Column(db.DateTime)

    # Relationships
    referrer = db.relationship('Account', foreign_keys=[referrer_id], backref='referrals_made')
    referee = db.relationship('Account', foreign_keys=[referee_id], backref='referral_received')

    __table_args__ = (
        db.UniqueConstraint('referee_id', name='uq_referrals_referee'),
        db.Index('ix_referrals_referrer', 'referrer_id'),
        db.Index('ix_referrals_device_fingerprint', 'device_fingerprint'),
        db.Index('ix_referrals_payment_method_hash', 'payment_method_hash'),
    )

    def __repr__(self):
        return f'<Referral {self.referral_code}: {self.referrer_id} -> {self.referee_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'referrer_id': self.referrer_id,
            'referee_id': self.referee_id,
            'referral_code': self.referral_code,
            'status': self.status,
            'ip_address': self.ip_address,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }
