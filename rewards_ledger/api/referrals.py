"""
Referral API endpoints.

- Share code for an account (issued on first request, rotated after each use)
- Referral records made by an account
- Suspicious referrer report for manual review (admin)
"""
from flask import Blueprint, request, jsonify

from ..middleware.internal_auth import require_internal_token
from ..models.referral import Referral
from ..services.account_service import AccountService
from ..services.referral_service import ReferralService

referrals_bp = Blueprint('referrals', __name__)


@referrals_bp.route('/<account_id>/code', methods=['GET'])
@require_internal_token
def get_referral_code(account_id):
    """Active referral code for the account."""
    code = ReferralService().get_or_create_code(account_id)
    return jsonify(code.to_dict())


@referrals_bp.route('/<account_id>', methods=['GET'])
@require_internal_token
def list_referrals(account_id):
    AccountService().get(account_id)
    referrals = Referral.query.filter_by(
        referrer_id=account_id
    ).order_by(Referral.created_at.desc()).all()

    return jsonify({
        'account_id': account_id,
        'referrals': [r.to_dict() for r in referrals],
        'total': len(referrals),
    })


@referrals_bp.route('/suspicious', methods=['GET'])
@require_internal_token
def suspicious_referrers():
    """
    Query params:
        min_referrals: Only referrers with more referrals than this (default 5)
        min_unique_ratio: Flag below this unique device/phone ratio (default 0.8)
    """
    report = ReferralService().find_suspicious_referrers(
        min_referrals=request.args.get('min_referrals', type=int),
        min_unique_ratio=request.args.get('min_unique_ratio', type=float),
    )
    return jsonify(report)
