"""
Account registration and identity verification.
"""
from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models.account import Account
from ..utils.exceptions import AccountNotFoundError, ValidationError


class AccountService:

    def get(self, account_id: str) -> Account:
        account = Account.query.filter_by(id=account_id).first()
        if not account:
            raise AccountNotFoundError(account_id)
        return account

    def register(self, account_id: str, email: str, mobile_number: Optional[str] = None) -> Account:
        """
        Create the loyalty account for a new user.

        Signup events may be delivered more than once; a second delivery
        returns the account created by the first.
        """
        if not account_id:
            raise ValidationError('account_id is required', 'account_id')
        if not email or '@' not in email:
            raise ValidationError('A valid email is required', 'email')

        existing = Account.query.filter_by(id=account_id).first()
        if existing:
            return existing

        account = Account(
            id=account_id,
            email=email.strip().lower(),
            mobile_number=mobile_number,
            confirmed_balance=0,
        )
        db.session.add(account)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            existing = Account.query.filter_by(id=account_id).first()
            if existing is None:
                raise
            return existing

        current_app.logger.info(f"Account registered: {account_id}")
        return account

    def mark_mobile_verified(self, account_id: str, mobile_number: str) -> Account:
        """Record a verified mobile number; redemption requires one."""
        if not mobile_number:
            raise ValidationError('mobile_number is required', 'mobile_number')

        account = self.get(account_id)
        account.mobile_number = mobile_number
        account.mobile_verified = True
        account.mobile_verified_at = datetime.utcnow()
        db.session.commit()

        current_app.logger.info(f"Mobile verified for account {account_id}")
        return account
