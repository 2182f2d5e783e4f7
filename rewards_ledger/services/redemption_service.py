"""
Redemption Validator.

Checks a checkout redemption against the business rules and, when every
check passes, writes a confirmed debit. Checks run in a fixed order and the
first failure wins:

1. IDENTITY_NOT_VERIFIED  - no verified mobile number
2. BELOW_MINIMUM          - fewer than MIN_REDEEM_POINTS
3. INSUFFICIENT_BALANCE   - more than the confirmed balance
4. ORDER_TOO_SMALL        - redemption worth more than MAX_REDEMPTION_RATIO of the order
5. CAP_EXCEEDED           - rolling-window redemption cap

Rejections are returned as a RedemptionResult, never raised.
"""
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_FLOOR
from enum import Enum
from typing import Any, Dict, Optional

from flask import current_app

from ..extensions import db
from ..models.account import Account
from ..models.ledger import EntryReason, EntryStatus, LedgerEntry
from ..utils.exceptions import AccountNotFoundError, InsufficientPointsError
from . import idempotency
from .ledger_service import LedgerStore, points_to_value
from .notification_service import NotificationService, POINTS_REDEEMED


class RedemptionErrorKind(str, Enum):
    INVALID_REQUEST = 'INVALID_REQUEST'
    IDENTITY_NOT_VERIFIED = 'IDENTITY_NOT_VERIFIED'
    BELOW_MINIMUM = 'BELOW_MINIMUM'
    INSUFFICIENT_BALANCE = 'INSUFFICIENT_BALANCE'
    ORDER_TOO_SMALL = 'ORDER_TOO_SMALL'
    CAP_EXCEEDED = 'CAP_EXCEEDED'


@dataclass
class RedemptionResult:
    success: bool
    kind: Optional[str] = None
    message: Optional[str] = None
    points: int = 0
    value: Optional[Decimal] = None
    entry_id: Optional[int] = None
    balance_after: Optional[int] = None
    required_min_order_value: Optional[Decimal] = None
    remaining_headroom: Optional[int] = None
    max_redeemable_points: Optional[int] = None

    @classmethod
    def rejected(cls, kind: RedemptionErrorKind, message: str, **figures) -> 'RedemptionResult':
        return cls(success=False, kind=kind.value, message=message, **figures)

    def to_dict(self) -> Dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if v is not None}
        for key in ('value', 'required_min_order_value'):
            if key in data:
                data[key] = float(data[key])
        return data


def format_money(amount: Decimal) -> str:
    currency = current_app.config.get('CURRENCY', 'GBP')
    if currency == 'GBP':
        return f'£{amount:.2f}'
    return f'{amount:.2f} {currency}'


class RedemptionService:
    """
    Usage:
        service = RedemptionService()
        result = service.validate_and_reserve('acct-1', 500, Decimal('40.00'), idempotency_key='cart-9')
        if not result.success:
            show(result.message)   # e.g. CAP_EXCEEDED with result.remaining_headroom
    """

    def __init__(self, store: LedgerStore = None, notifications: NotificationService = None):
        self.store = store or LedgerStore()
        self.notifications = notifications or NotificationService()

    def validate_and_reserve(
        self,
        account_id: str,
        points_requested: int,
        booking_amount: Decimal,
        idempotency_key: str = None,
        booking_id: str = None,
        now: datetime = None,
    ) -> RedemptionResult:
        """
        Validate and, on success, debit the points.

        Retrying with the same idempotency_key returns the original
        redemption without debiting again.
        """
        invalid = self._validate_input(points_requested, booking_amount)
        if invalid:
            return invalid

        key = idempotency.redemption_key(account_id, idempotency_key)
        if idempotency_key:
            existing = idempotency.find_applied(key)
            if existing:
                current_app.logger.info(f"Redemption replayed for {account_id} ({key})")
                return self._success(existing)

        account = self._get_account(account_id)
        now = now or datetime.utcnow()

        rejection = self._evaluate(account, points_requested, Decimal(booking_amount), now)
        if rejection:
            current_app.logger.info(
                f"Redemption rejected for {account_id}: {rejection.kind} ({points_requested} pts)"
            )
            return rejection

        value = points_to_value(points_requested)
        try:
            result = self.store.append(
                account_id=account_id,
                delta=-points_requested,
                reason=EntryReason.REDEMPTION.value,
                idempotency_key=key,
                status=EntryStatus.CONFIRMED.value,
                booking_id=booking_id,
                note=f'Redeemed {format_money(value)}',
                commit=False,
            )
        except InsufficientPointsError as e:
            # A concurrent redemption spent the balance after our check
            current_app.logger.warning(f"Redemption race lost for {account_id}: {e.message}")
            return RedemptionResult.rejected(
                RedemptionErrorKind.INSUFFICIENT_BALANCE,
                f'Insufficient points. You have {e.current} points available.',
            )

        if result.created:
            self.notifications.enqueue(account_id, POINTS_REDEEMED, {
                'entry_id': result.entry.id,
                'points': points_requested,
                'value': str(value),
                'booking_id': booking_id,
            })
            db.session.commit()
            current_app.logger.info(
                f"Points redeemed: {account_id} -{points_requested} pts ({format_money(value)})"
            )

        return self._success(result.entry)

    def check_redemption(
        self,
        account_id: str,
        points_requested: int,
        booking_amount: Decimal,
        now: datetime = None,
    ) -> RedemptionResult:
        """Run the same checks without writing anything; also reports the most that could be redeemed."""
        invalid = self._validate_input(points_requested, booking_amount)
        if invalid:
            return invalid

        account = self._get_account(account_id)
        now = now or datetime.utcnow()
        booking_amount = Decimal(booking_amount)

        max_points = self._max_redeemable(account, booking_amount, now)
        result = self._evaluate(account, points_requested, booking_amount, now)
        if result is None:
            result = RedemptionResult(
                success=True,
                points=points_requested,
                value=points_to_value(points_requested),
            )
        result.max_redeemable_points = max_points
        return result

    # ==================== Rules ====================

    def _validate_input(self, points_requested, booking_amount) -> Optional[RedemptionResult]:
        if isinstance(points_requested, bool) or not isinstance(points_requested, int) or points_requested <= 0:
            return RedemptionResult.rejected(
                RedemptionErrorKind.INVALID_REQUEST, 'Points to redeem must be a positive whole number.'
            )
        if booking_amount is None or Decimal(booking_amount) < 0:
            return RedemptionResult.rejected(
                RedemptionErrorKind.INVALID_REQUEST, 'Booking amount must be zero or more.'
            )
        return None

    def _evaluate(
        self,
        account: Account,
        points: int,
        booking_amount: Decimal,
        now: datetime,
    ) -> Optional[RedemptionResult]:
        config = current_app.config

        if not account.can_redeem:
            return RedemptionResult.rejected(
                RedemptionErrorKind.IDENTITY_NOT_VERIFIED,
                'Please verify your mobile number before redeeming points.',
            )

        min_points = config['MIN_REDEEM_POINTS']
        if points < min_points:
            return RedemptionResult.rejected(
                RedemptionErrorKind.BELOW_MINIMUM,
                f'Minimum redemption is {min_points} points ({format_money(points_to_value(min_points))}).',
            )

        balance = self.store.get_balance(account.id)['confirmed']
        if points > balance:
            return RedemptionResult.rejected(
                RedemptionErrorKind.INSUFFICIENT_BALANCE,
                f'Insufficient points. You have {balance} points available.',
            )

        value = points_to_value(points)
        required_min_order = (value / config['MAX_REDEMPTION_RATIO']).quantize(Decimal('0.01'))
        if booking_amount < required_min_order:
            return RedemptionResult.rejected(
                RedemptionErrorKind.ORDER_TOO_SMALL,
                f'Minimum order value of {format_money(required_min_order)} required to redeem {points} points.',
                required_min_order_value=required_min_order,
            )

        cap = config['REDEMPTION_CAP_POINTS']
        used = self.store.redeemed_in_window(account.id, now - timedelta(days=config['REDEMPTION_CAP_WINDOW_DAYS']))
        if used + points > cap:
            headroom = max(0, cap - used)
            return RedemptionResult.rejected(
                RedemptionErrorKind.CAP_EXCEEDED,
                f'This would exceed the {config["REDEMPTION_CAP_WINDOW_DAYS"]}-day redemption limit. '
                f'You can redeem up to {headroom} more points.',
                remaining_headroom=headroom,
            )

        return None

    def _max_redeemable(self, account: Account, booking_amount: Decimal, now: datetime) -> int:
        config = current_app.config
        if not account.can_redeem:
            return 0

        balance = self.store.get_balance(account.id)['confirmed']
        used = self.store.redeemed_in_window(account.id, now - timedelta(days=config['REDEMPTION_CAP_WINDOW_DAYS']))
        headroom = max(0, config['REDEMPTION_CAP_POINTS'] - used)
        by_order = int(
            (booking_amount * config['MAX_REDEMPTION_RATIO'] / config['POINT_VALUE'])
            .to_integral_value(rounding=ROUND_FLOOR)
        )

        max_points = min(balance, headroom, by_order)
        return max_points if max_points >= config['MIN_REDEEM_POINTS'] else 0

    def _success(self, entry: LedgerEntry) -> RedemptionResult:
        points = -entry.delta
        return RedemptionResult(
            success=True,
            points=points,
            value=points_to_value(points),
            entry_id=entry.id,
            balance_after=self.store.get_balance(entry.account_id)['confirmed'],
        )

    def _get_account(self, account_id: str) -> Account:
        account = Account.query.filter_by(id=account_id).first()
        if not account:
            raise AccountNotFoundError(account_id)
        return account
