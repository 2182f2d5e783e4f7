"""
Referral Attribution Guard.

Binds a new account to the referrer whose code it signed up with, unless the
signup looks like the referrer (or an existing member) referring themselves.
Attribution failing never fails the signup; attach_referral just returns None.

The bonus is not awarded here. It is created by the earning engine when the
referee's first booking completes, and settles with that booking.
"""
import secrets
from datetime import datetime
from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..events import ReferralSignup
from ..extensions import db
from ..models.account import Account
from ..models.referral import Referral, ReferralCode, ReferralCodeStatus, ReferralStatus
from ..utils.exceptions import AccountNotFoundError

# No 0/O, 1/I/L: codes get read out loud and typed from screenshots
CODE_ALPHABET = 'ABCDEFGHJKMNPQRSTUVWXYZ23456789'
CODE_LENGTH = 8
MAX_CODE_ATTEMPTS = 10


def generate_code(prefix: str = None) -> str:
    """Format: BLK-7KQ2MX9A."""
    if prefix is None:
        prefix = current_app.config['REFERRAL_CODE_PREFIX']
    return prefix + ''.join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


class ReferralService:

    # ==================== Codes ====================

    def get_or_create_code(self, account_id: str) -> ReferralCode:
        """Return the account's active code, creating one if it has none."""
        if not Account.query.filter_by(id=account_id).first():
            raise AccountNotFoundError(account_id)

        for _ in range(MAX_CODE_ATTEMPTS):
            existing = ReferralCode.query.filter_by(
                account_id=account_id,
                status=ReferralCodeStatus.ACTIVE.value,
            ).first()
            if existing:
                return existing

            code = ReferralCode(account_id=account_id, code=generate_code())
            db.session.add(code)
            try:
                db.session.commit()
            except IntegrityError:
                # Code collision, or a concurrent request created the active code
                db.session.rollback()
                continue

            current_app.logger.info(f"Referral code {code.code} issued to {account_id}")
            return code

        raise RuntimeError(f'Could not issue a referral code for {account_id}')

    # ==================== Attribution ====================

    def attach_referral(self, signup: ReferralSignup) -> Optional[Referral]:
        """
        Attach the signup to a referrer.

        Returns:
            The Referral in signed_up state, the existing Referral when this
            signup was already processed, or None when there is no usable
            code or a fraud check matched.
        """
        existing = Referral.query.filter_by(referee_id=signup.account_id).first()
        if existing:
            return existing

        code_value = signup.resolved_code
        if not code_value:
            return None

        referral_code = ReferralCode.query.filter_by(
            code=code_value,
            status=ReferralCodeStatus.ACTIVE.value,
        ).first()
        if not referral_code:
            current_app.logger.info(f"Signup {signup.account_id}: referral code {code_value} not active")
            return None

        referrer = Account.query.filter_by(id=referral_code.account_id).first()
        if not referrer:
            return None

        blocked = self.fraud_check(signup, referrer)
        if blocked:
            current_app.logger.warning(
                f"Referral blocked ({blocked}): {referrer.id} -> {signup.account_id} via {code_value}"
            )
            return None

        now = datetime.utcnow()
        claimed = ReferralCode.query.filter_by(
            id=referral_code.id,
            status=ReferralCodeStatus.ACTIVE.value,
        ).update(
            {'status': ReferralCodeStatus.USED.value, 'used_at': now},
            synchronize_session=False,
        )
        if not claimed:
            db.session.rollback()
            current_app.logger.info(f"Referral code {code_value} was used by a concurrent signup")
            return None

        referral = Referral(
            referrer_id=referrer.id,
            referee_id=signup.account_id,
            referral_code=code_value,
            device_fingerprint=signup.device_fingerprint,
            payment_method_hash=signup.payment_method_hash,
            ip_address=signup.ip_address,
            status=ReferralStatus.SIGNED_UP.value,
            created_at=now,
        )
        db.session.add(referral)
        db.session.add(ReferralCode(account_id=referrer.id, code=generate_code()))

        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            existing = Referral.query.filter_by(referee_id=signup.account_id).first()
            if existing is None:
                raise
            return existing

        current_app.logger.info(f"Referral attached: {referrer.id} -> {signup.account_id} via {code_value}")
        return referral

    def fraud_check(self, signup: ReferralSignup, referrer: Account) -> Optional[str]:
        """Name of the first rule the signup trips, or None."""
        if referrer.id == signup.account_id:
            return 'self_referral'

        if signup.email and referrer.email and signup.email.strip().lower() == referrer.email.strip().lower():
            return 'self_referral'

        referee = Account.query.filter_by(id=signup.account_id).first()
        mobile = signup.mobile_number or (referee.mobile_number if referee else None)
        if mobile:
            if referrer.mobile_number == mobile:
                return 'self_referral'
            duplicate = Account.query.filter(
                Account.mobile_number == mobile,
                Account.id != signup.account_id,
            ).first()
            if duplicate:
                return 'mobile_in_use'

        if signup.device_fingerprint:
            seen = Referral.query.filter_by(device_fingerprint=signup.device_fingerprint).first()
            if seen:
                return 'device_reused'

        if signup.payment_method_hash:
            seen = Referral.query.filter(
                Referral.payment_method_hash == signup.payment_method_hash,
                Referral.referrer_id != referrer.id,
            ).first()
            if seen:
                return 'payment_method_reused'

        return None

    # ==================== Monitoring ====================

    def find_suspicious_referrers(
        self,
        min_referrals: int = None,
        min_unique_ratio: float = None,
    ) -> Dict[str, Any]:
        """
        Referrers with more than min_referrals referrals whose referees share
        devices or phone numbers too often. For manual review only.
        """
        config = current_app.config
        if min_referrals is None:
            min_referrals = config['SUSPICIOUS_REFERRAL_MIN_COUNT']
        if min_unique_ratio is None:
            min_unique_ratio = config['SUSPICIOUS_REFERRAL_MIN_RATIO']

        rows = db.session.query(
            Referral.referrer_id,
            func.count(Referral.id).label('total'),
            func.count(func.distinct(Account.mobile_number)).label('unique_phones'),
            func.count(func.distinct(Referral.device_fingerprint)).label('unique_devices'),
            func.count(func.distinct(Referral.ip_address)).label('unique_ips'),
        ).join(
            Account, Account.id == Referral.referee_id
        ).group_by(Referral.referrer_id).all()

        suspicious = []
        total_referrals = 0
        for row in rows:
            total_referrals += row.total
            if row.total <= min_referrals:
                continue

            phone_ratio = row.unique_phones / max(row.total, 1)
            device_ratio = row.unique_devices / max(row.total, 1)
            if phone_ratio >= min_unique_ratio and device_ratio >= min_unique_ratio:
                continue

            suspicious.append({
                'referrer_id': row.referrer_id,
                'total_referrals': row.total,
                'unique_phones': row.unique_phones,
                'unique_devices': row.unique_devices,
                'unique_ips': row.unique_ips,
                'phone_ratio': round(phone_ratio, 3),
                'device_ratio': round(device_ratio, 3),
                'risk_score': round((1 - min(phone_ratio, device_ratio)) * 100),
            })

        suspicious.sort(key=lambda s: s['risk_score'], reverse=True)

        return {
            'suspicious': suspicious,
            'summary': {
                'total_referrers': len(rows),
                'flagged': len(suspicious),
                'total_referrals': total_referrals,
            },
        }
