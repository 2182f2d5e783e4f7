"""
HTTP tests for the webhook and API blueprints.

Service behaviour is covered in the service tests; these check routing,
status codes, the error envelope and auth.
"""
from datetime import datetime, timedelta

from rewards_ledger.extensions import db
from rewards_ledger.models import Account, LedgerEntry, Referral
from rewards_ledger.services.referral_service import ReferralService


def booking_payload(account_id, booking_id='500', net_amount='42.00'):
    return {'account_id': account_id, 'booking_id': booking_id, 'net_amount': net_amount}


class TestHealthAndAuth:

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.get_json()['status'] == 'healthy'

    def test_token_required_when_configured(self, app, client, sample_account):
        app.config['INTERNAL_API_TOKEN'] = 'secret-token'

        response = client.get(f'/api/points/{sample_account}/balance')
        assert response.status_code == 401
        assert response.get_json()['error']['code'] == 'AUTH_REQUIRED'

        response = client.get(f'/api/points/{sample_account}/balance',
                              headers={'Authorization': 'Bearer wrong'})
        assert response.status_code == 401
        assert response.get_json()['error']['code'] == 'INVALID_TOKEN'

        response = client.get(f'/api/points/{sample_account}/balance',
                              headers={'Authorization': 'Bearer secret-token'})
        assert response.status_code == 200

    def test_unknown_route(self, client):
        response = client.get('/api/nothing-here')

        assert response.status_code == 404
        assert response.get_json()['error']['code'] == 'NOT_FOUND'


class TestBookingWebhooks:

    def test_completed_creates_then_replays(self, client, sample_account):
        first = client.post('/webhooks/bookings/completed', json=booking_payload(sample_account))
        second = client.post('/webhooks/bookings/completed', json=booking_payload(sample_account))

        assert first.status_code == 201
        assert first.get_json()['points'] == 42
        assert first.get_json()['entry']['status'] == 'pending'
        assert second.status_code == 200
        assert second.get_json()['created'] is False

    def test_completed_validates_payload(self, client, sample_account):
        response = client.post('/webhooks/bookings/completed',
                               json={'account_id': sample_account, 'booking_id': '1', 'net_amount': 'abc'})

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_NET_AMOUNT'

    def test_non_json_body(self, client):
        response = client.post('/webhooks/bookings/completed', data='nope', content_type='text/plain')

        assert response.status_code == 400

    def test_completed_for_unknown_account(self, client):
        response = client.post('/webhooks/bookings/completed', json=booking_payload('ghost'))

        assert response.status_code == 404
        assert response.get_json()['error']['code'] == 'ACCOUNT_NOT_FOUND'

    def test_status_change(self, client, sample_account):
        client.post('/webhooks/bookings/completed', json=booking_payload(sample_account))
        response = client.post('/webhooks/bookings/status', json={
            'account_id': sample_account, 'booking_id': '500', 'status': 'refunded',
        })

        assert response.status_code == 200
        assert response.get_json()['booking']['status'] == 'refunded'

    def test_status_rejects_unknown_value(self, client, sample_account):
        response = client.post('/webhooks/bookings/status', json={
            'account_id': sample_account, 'booking_id': '500', 'status': 'lost',
        })

        assert response.status_code == 400


class TestReviewWebhook:

    def test_review_verified(self, client, sample_account):
        payload = {'account_id': sample_account, 'review_id': 'r-1'}
        first = client.post('/webhooks/reviews/verified', json=payload)
        second = client.post('/webhooks/reviews/verified', json=payload)

        assert first.status_code == 201
        assert first.get_json()['points'] == 25
        assert second.status_code == 200


class TestSignupWebhooks:

    def test_signup_without_referral(self, client):
        response = client.post('/webhooks/signups', json={'account_id': 'u-1', 'email': 'U1@Example.com'})

        assert response.status_code == 201
        data = response.get_json()
        assert data['account']['email'] == 'u1@example.com'
        assert data['referral'] is None

    def test_signup_with_cookie_code(self, app, client, sample_account):
        with app.app_context():
            code = ReferralService().get_or_create_code(sample_account).code

        response = client.post(
            '/webhooks/signups',
            json={'account_id': 'u-2', 'email': 'u2@example.com'},
            headers={'Cookie': f'ref_code={code}'},
        )

        assert response.status_code == 201
        referral = response.get_json()['referral']
        assert referral['referrer_id'] == sample_account
        assert referral['status'] == 'signed_up'

    def test_signup_is_idempotent(self, app, client):
        payload = {'account_id': 'u-3', 'email': 'u3@example.com'}
        client.post('/webhooks/signups', json=payload)
        response = client.post('/webhooks/signups', json=payload)

        assert response.status_code == 201
        with app.app_context():
            assert Account.query.filter_by(id='u-3').count() == 1

    def test_mobile_verified(self, client, sample_account):
        response = client.post(f'/webhooks/accounts/{sample_account}/mobile-verified',
                               json={'mobile_number': '+447700900123'})

        assert response.status_code == 200
        assert response.get_json()['account']['mobile_verified'] is True

    def test_mobile_verified_requires_number(self, client, sample_account):
        response = client.post(f'/webhooks/accounts/{sample_account}/mobile-verified', json={})

        assert response.status_code == 400


class TestPointsReads:

    def test_balance(self, client, verified_account):
        response = client.get(f'/api/points/{verified_account}/balance')

        assert response.status_code == 200
        assert response.get_json() == {'account_id': verified_account, 'confirmed': 1200, 'pending': 0}

    def test_balance_unknown_account(self, client):
        response = client.get('/api/points/ghost/balance')

        assert response.status_code == 404

    def test_status(self, client, verified_account):
        data = client.get(f'/api/points/{verified_account}/status').get_json()

        assert data['balance'] == 1200
        assert data['value'] == 12.0
        assert data['can_redeem'] is True
        assert data['rolling_cap']['remaining'] == 5000

    def test_history(self, client, verified_account):
        client.post('/webhooks/bookings/completed', json=booking_payload(verified_account))

        data = client.get(f'/api/points/{verified_account}/history?limit=1').get_json()
        assert data['total'] == 2
        assert data['limit'] == 1
        assert data['entries'][0]['reason'] == 'booking_completed'

        data = client.get(f'/api/points/{verified_account}/history?status=confirmed').get_json()
        assert data['total'] == 1

    def test_history_bad_status(self, client, verified_account):
        response = client.get(f'/api/points/{verified_account}/history?status=spent')

        assert response.status_code == 400


class TestRedeemEndpoint:

    def test_success(self, client, verified_account):
        response = client.post(f'/api/points/{verified_account}/redeem', json={
            'points': 500, 'booking_amount': 40, 'idempotency_key': 'cart-1',
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['success'] is True
        assert data['value'] == 5.0
        assert data['balance_after'] == 700

    def test_order_too_small_returns_details(self, client, verified_account):
        response = client.post(f'/api/points/{verified_account}/redeem', json={
            'points': 500, 'booking_amount': '8.00',
        })

        assert response.status_code == 422
        error = response.get_json()['error']
        assert error['code'] == 'ORDER_TOO_SMALL'
        assert error['details']['required_min_order_value'] == 10.0

    def test_unverified_rejected(self, client, sample_account):
        response = client.post(f'/api/points/{sample_account}/redeem', json={
            'points': 500, 'booking_amount': '80.00',
        })

        assert response.status_code == 422
        assert response.get_json()['error']['code'] == 'IDENTITY_NOT_VERIFIED'

    def test_invalid_points(self, client, verified_account):
        response = client.post(f'/api/points/{verified_account}/redeem', json={
            'points': 'lots', 'booking_amount': '80.00',
        })

        assert response.status_code == 400

    def test_negative_points(self, client, verified_account):
        response = client.post(f'/api/points/{verified_account}/redeem', json={
            'points': -500, 'booking_amount': '80.00',
        })

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_REQUEST'

    def test_check(self, client, verified_account):
        response = client.get(f'/api/points/{verified_account}/redeem/check?points=500&booking_amount=20')

        assert response.status_code == 200
        data = response.get_json()
        assert data['success'] is True
        assert data['max_redeemable_points'] == 1000

    def test_check_requires_amount(self, client, verified_account):
        response = client.get(f'/api/points/{verified_account}/redeem/check?points=500')

        assert response.status_code == 400

    def test_check_rejects_non_finite_amount(self, client, verified_account):
        response = client.get(f'/api/points/{verified_account}/redeem/check?points=500&booking_amount=NaN')

        assert response.status_code == 400


class TestAdjustEndpoint:

    def test_adjust(self, client, sample_account):
        response = client.post(f'/api/points/{sample_account}/adjust',
                               json={'points': 150, 'note': 'Service recovery'},
                               headers={'X-Caller': 'support-console'})

        assert response.status_code == 201
        data = response.get_json()
        assert data['balance']['confirmed'] == 150
        assert data['entry']['created_by'] == 'support-console'

    def test_adjust_with_key_applies_once(self, client, sample_account):
        payload = {'points': 150, 'note': 'Goodwill', 'idempotency_key': 'ticket-77'}
        client.post(f'/api/points/{sample_account}/adjust', json=payload)
        response = client.post(f'/api/points/{sample_account}/adjust', json=payload)

        assert response.status_code == 200
        assert response.get_json()['balance']['confirmed'] == 150

    def test_adjust_below_zero_rejected(self, client, sample_account):
        response = client.post(f'/api/points/{sample_account}/adjust', json={'points': -10, 'note': 'Oops'})

        assert response.status_code == 422
        error = response.get_json()['error']
        assert error['code'] == 'INSUFFICIENT_BALANCE'
        assert error['details'] == {'current': 0, 'required': 10}

    def test_adjust_requires_integer(self, client, sample_account):
        response = client.post(f'/api/points/{sample_account}/adjust', json={'points': 1.5, 'note': 'x'})

        assert response.status_code == 400


class TestReferralEndpoints:

    def test_code_is_stable(self, client, sample_account):
        first = client.get(f'/api/referrals/{sample_account}/code').get_json()
        second = client.get(f'/api/referrals/{sample_account}/code').get_json()

        assert first['code'] == second['code']
        assert first['code'].startswith('BLK-')

    def test_code_unknown_account(self, client):
        assert client.get('/api/referrals/ghost/code').status_code == 404

    def test_list_referrals(self, app, client, sample_account):
        code = client.get(f'/api/referrals/{sample_account}/code').get_json()['code']
        client.post('/webhooks/signups', json={
            'account_id': 'u-9', 'email': 'u9@example.com', 'referral_code': code,
        })

        data = client.get(f'/api/referrals/{sample_account}').get_json()
        assert data['total'] == 1
        assert data['referrals'][0]['referee_id'] == 'u-9'

    def test_suspicious_report(self, app, client, account_factory):
        referrer = account_factory()
        with app.app_context():
            for i in range(3):
                referee = f'dup-{i}'
                db.session.add(Account(id=referee, email=f'{referee}@example.com', mobile_number='+447711111111'))
                db.session.add(Referral(referrer_id=referrer, referee_id=referee,
                                        referral_code=f'BLK-DUPE000{i}', device_fingerprint='dev-x'))
            db.session.commit()

        data = client.get('/api/referrals/suspicious?min_referrals=2').get_json()

        assert data['summary']['flagged'] == 1
        assert data['suspicious'][0]['referrer_id'] == referrer


class TestSettlementEndpoints:

    def _backdate(self, app, booking_id, hours=25):
        with app.app_context():
            entry = LedgerEntry.query.filter_by(booking_id=booking_id).one()
            entry.created_at = datetime.utcnow() - timedelta(hours=hours)
            db.session.commit()
            return entry.id

    def test_run_confirms_held_entries(self, app, client, sample_account):
        client.post('/webhooks/bookings/completed', json=booking_payload(sample_account))
        self._backdate(app, '500')

        response = client.post('/api/settlement/run')

        assert response.status_code == 200
        data = response.get_json()
        assert data['processed'] == 1
        assert data['confirmed'] == 1
        balance = client.get(f'/api/points/{sample_account}/balance').get_json()
        assert balance['confirmed'] == 42

    def test_run_leaves_recent_entries(self, client, sample_account):
        client.post('/webhooks/bookings/completed', json=booking_payload(sample_account))

        data = client.post('/api/settlement/run').get_json()

        assert data['processed'] == 0

    def test_settle_single_entry(self, app, client, sample_account):
        client.post('/webhooks/bookings/completed', json=booking_payload(sample_account))
        client.post('/webhooks/bookings/status', json={
            'account_id': sample_account, 'booking_id': '500', 'status': 'cancelled',
        })
        entry_id = self._backdate(app, '500')

        data = client.post(f'/api/settlement/entries/{entry_id}').get_json()

        assert data['outcome'] == 'reversed'
        assert data['entry']['status'] == 'reversed'

    def test_settle_unknown_entry(self, client):
        assert client.post('/api/settlement/entries/999').status_code == 404


class TestCli:

    def test_settle_command(self, app, client, sample_account):
        client.post('/webhooks/bookings/completed', json=booking_payload(sample_account))
        TestSettlementEndpoints()._backdate(app, '500')

        result = app.test_cli_runner().invoke(args=['ledger', 'settle'])

        assert result.exit_code == 0
        assert 'Processed: 1 entries' in result.output
        assert 'Confirmed: 1' in result.output

    def test_suspicious_command(self, app):
        result = app.test_cli_runner().invoke(args=['ledger', 'suspicious-referrals'])

        assert result.exit_code == 0
        assert '0 of 0 referrers flagged' in result.output
