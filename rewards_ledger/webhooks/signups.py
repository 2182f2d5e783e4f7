"""
Account lifecycle webhooks.

POST /webhooks/signups                          - new account, optional referral
POST /webhooks/accounts/<id>/mobile-verified    - identity verified
"""
from flask import Blueprint, request, jsonify, current_app

from ..events import signup_from_payload
from ..middleware.internal_auth import require_internal_token
from ..services.account_service import AccountService
from ..services.referral_service import ReferralService
from ..utils.exceptions import ValidationError
from . import get_json_payload

signups_webhook_bp = Blueprint('signups_webhook', __name__)


@signups_webhook_bp.route('/signups', methods=['POST'])
@require_internal_token
def signup():
    """
    Register the account and attach a referral if one applies.

    Body:
        account_id, email, mobile_number, referral_code, device_fingerprint,
        payment_method_hash, ip_address (all but account_id/email optional)

    A referral code captured from an earlier click-through is read from the
    ref_code cookie when the body has none. The signup succeeds whether or
    not a referral is attached.
    """
    data = get_json_payload()
    captured = request.cookies.get(current_app.config['REFERRAL_CODE_COOKIE'])
    event = signup_from_payload(data, captured_code=captured)

    account = AccountService().register(event.account_id, event.email, event.mobile_number)
    referral = ReferralService().attach_referral(event)

    return jsonify({
        'success': True,
        'account': account.to_dict(),
        'referral': referral.to_dict() if referral else None,
    }), 201


@signups_webhook_bp.route('/accounts/<account_id>/mobile-verified', methods=['POST'])
@require_internal_token
def mobile_verified(account_id):
    data = get_json_payload()
    mobile_number = data.get('mobile_number')
    if not mobile_number:
        raise ValidationError('mobile_number is required', 'mobile_number')

    account = AccountService().mark_mobile_verified(account_id, str(mobile_number).strip())
    return jsonify({'success': True, 'account': account.to_dict()})
