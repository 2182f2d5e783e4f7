"""
Tests for the Redemption Validator.

Checks run in order and the first failure wins:
identity -> minimum -> balance -> order value -> rolling cap.
"""
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

from rewards_ledger.models import LedgerEntry, NotificationRequest, EntryReason, EntryStatus
from rewards_ledger.services.ledger_service import LedgerStore
from rewards_ledger.services.redemption_service import RedemptionService, RedemptionErrorKind
from rewards_ledger.utils.exceptions import InsufficientPointsError


class TestValidationOrder:

    def test_identity_checked_first(self, app, sample_account):
        """Unverified accounts are rejected before anything else."""
        with app.app_context():
            result = RedemptionService().validate_and_reserve(sample_account, 100, Decimal('1.00'))

            assert result.success is False
            assert result.kind == RedemptionErrorKind.IDENTITY_NOT_VERIFIED.value

    def test_below_minimum(self, app, verified_account):
        with app.app_context():
            result = RedemptionService().validate_and_reserve(verified_account, 499, Decimal('100.00'))

            assert result.kind == RedemptionErrorKind.BELOW_MINIMUM.value
            assert '500 points' in result.message

    def test_insufficient_balance(self, app, verified_account):
        with app.app_context():
            result = RedemptionService().validate_and_reserve(verified_account, 1300, Decimal('100.00'))

            assert result.kind == RedemptionErrorKind.INSUFFICIENT_BALANCE.value

    def test_order_too_small(self, app, verified_account):
        """1200 points held, 500 requested on an £8.00 booking: at most 400 allowed."""
        with app.app_context():
            result = RedemptionService().validate_and_reserve(verified_account, 500, Decimal('8.00'))

            assert result.success is False
            assert result.kind == RedemptionErrorKind.ORDER_TOO_SMALL.value
            assert result.required_min_order_value == Decimal('10.00')
            assert '£10.00' in result.message
            assert LedgerStore().get_balance(verified_account)['confirmed'] == 1200

    def test_order_exactly_twice_value_passes(self, app, verified_account):
        with app.app_context():
            result = RedemptionService().validate_and_reserve(verified_account, 500, Decimal('10.00'))

            assert result.success is True

    def test_invalid_input(self, app, verified_account):
        with app.app_context():
            service = RedemptionService()

            assert service.validate_and_reserve(verified_account, 0, Decimal('10')).kind == 'INVALID_REQUEST'
            assert service.validate_and_reserve(verified_account, -5, Decimal('10')).kind == 'INVALID_REQUEST'
            assert service.validate_and_reserve(verified_account, 500, Decimal('-1')).kind == 'INVALID_REQUEST'


class TestRollingCap:
    """5000 points per trailing 30 days."""

    def test_cap_exceeded_reports_headroom(self, app, rich_account):
        """4800 redeemed 20 days ago; 500 more would pass 5000, 200 left."""
        with app.app_context():
            service = RedemptionService()
            first = service.validate_and_reserve(rich_account, 4800, Decimal('96.00'))
            assert first.success is True

            later = datetime.utcnow() + timedelta(days=20)
            result = service.validate_and_reserve(rich_account, 500, Decimal('10.00'), now=later)

            assert result.success is False
            assert result.kind == RedemptionErrorKind.CAP_EXCEEDED.value
            assert result.remaining_headroom == 200
            assert '200' in result.message

    def test_small_request_near_cap_hits_minimum_first(self, app, rich_account):
        """300 points is under the minimum, which is checked before the cap."""
        with app.app_context():
            service = RedemptionService()
            service.validate_and_reserve(rich_account, 4800, Decimal('96.00'))

            later = datetime.utcnow() + timedelta(days=20)
            result = service.validate_and_reserve(rich_account, 300, Decimal('10.00'), now=later)

            assert result.kind == RedemptionErrorKind.BELOW_MINIMUM.value

    def test_cap_headroom_with_lower_minimum(self, app, rich_account):
        """With a 100 point minimum the cap check is reached for 300 points."""
        app.config['MIN_REDEEM_POINTS'] = 100
        with app.app_context():
            service = RedemptionService()
            service.validate_and_reserve(rich_account, 4800, Decimal('96.00'))

            later = datetime.utcnow() + timedelta(days=20)
            result = service.validate_and_reserve(rich_account, 300, Decimal('10.00'), now=later)

            assert result.kind == RedemptionErrorKind.CAP_EXCEEDED.value
            assert result.remaining_headroom == 200

    def test_cap_resets_after_window(self, app, rich_account):
        with app.app_context():
            service = RedemptionService()
            service.validate_and_reserve(rich_account, 4800, Decimal('96.00'))

            later = datetime.utcnow() + timedelta(days=31)
            result = service.validate_and_reserve(rich_account, 500, Decimal('10.00'), now=later)

            assert result.success is True

    def test_cap_never_exceeded(self, app, rich_account):
        """Repeated redemptions within the window stop at the cap."""
        with app.app_context():
            service = RedemptionService()
            for _ in range(12):
                service.validate_and_reserve(rich_account, 500, Decimal('10.00'))

            redeemed = LedgerStore().redeemed_in_window(rich_account, datetime.utcnow() - timedelta(days=30))
            assert redeemed == 5000
            assert LedgerStore().get_balance(rich_account)['confirmed'] == 5000


class TestReserve:

    def test_success_debits_confirmed(self, app, verified_account):
        with app.app_context():
            result = RedemptionService().validate_and_reserve(
                verified_account, 500, Decimal('40.00'), booking_id='b-9'
            )

            assert result.success is True
            assert result.points == 500
            assert result.value == Decimal('5.00')
            assert result.balance_after == 700

            entry = LedgerEntry.query.get(result.entry_id)
            assert entry.delta == -500
            assert entry.reason == EntryReason.REDEMPTION.value
            assert entry.status == EntryStatus.CONFIRMED.value
            assert NotificationRequest.query.filter_by(
                account_id=verified_account, event_type='points_redeemed'
            ).count() == 1

    def test_retry_with_same_key_debits_once(self, app, verified_account):
        with app.app_context():
            service = RedemptionService()
            first = service.validate_and_reserve(verified_account, 500, Decimal('40.00'), idempotency_key='cart-1')
            second = service.validate_and_reserve(verified_account, 500, Decimal('40.00'), idempotency_key='cart-1')

            assert second.success is True
            assert second.entry_id == first.entry_id
            assert LedgerStore().get_balance(verified_account)['confirmed'] == 700

    def test_lost_race_reports_insufficient_balance(self, app, verified_account):
        """The write-time balance guard wins over the earlier check."""
        with app.app_context():
            service = RedemptionService()
            with patch.object(service.store, 'append', side_effect=InsufficientPointsError(100, 500)):
                result = service.validate_and_reserve(verified_account, 500, Decimal('40.00'))

            assert result.success is False
            assert result.kind == RedemptionErrorKind.INSUFFICIENT_BALANCE.value

    def test_to_dict_omits_empty_figures(self, app, verified_account):
        with app.app_context():
            result = RedemptionService().validate_and_reserve(verified_account, 500, Decimal('8.00'))
            data = result.to_dict()

            assert data['kind'] == 'ORDER_TOO_SMALL'
            assert data['required_min_order_value'] == 10.0
            assert 'remaining_headroom' not in data


class TestCheckRedemption:

    def test_check_writes_nothing(self, app, verified_account):
        with app.app_context():
            result = RedemptionService().check_redemption(verified_account, 500, Decimal('20.00'))

            assert result.success is True
            assert result.entry_id is None
            assert result.max_redeemable_points == 1000
            assert LedgerStore().get_balance(verified_account)['confirmed'] == 1200

    def test_max_redeemable_limited_by_balance(self, app, verified_account):
        with app.app_context():
            result = RedemptionService().check_redemption(verified_account, 500, Decimal('100.00'))

            assert result.max_redeemable_points == 1200

    def test_max_redeemable_zero_below_minimum(self, app, verified_account):
        """An £8.00 order allows 400 points, under the 500 minimum."""
        with app.app_context():
            result = RedemptionService().check_redemption(verified_account, 500, Decimal('8.00'))

            assert result.success is False
            assert result.max_redeemable_points == 0
