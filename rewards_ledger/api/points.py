"""
Points API endpoints.

Handles:
- Balance, status and history queries for dashboards
- Checkout redemption and the pre-checkout redemption check
- Manual point adjustments (admin)
"""
from decimal import Decimal, InvalidOperation

from flask import Blueprint, request, jsonify, g

from ..events import redemption_from_payload
from ..middleware.internal_auth import require_internal_token
from ..services.ledger_service import LedgerStore
from ..services.redemption_service import RedemptionService, RedemptionErrorKind
from ..utils.errors import ErrorCode, bad_request, unprocessable
from ..utils.exceptions import ValidationError
from ..webhooks import get_json_payload

points_bp = Blueprint('points', __name__)


# ==============================================================================
# BALANCE & HISTORY
# ==============================================================================

@points_bp.route('/<account_id>/balance', methods=['GET'])
@require_internal_token
def get_balance(account_id):
    """Confirmed (spendable) and pending points."""
    balance = LedgerStore().get_balance(account_id)
    return jsonify({'account_id': account_id, **balance})


@points_bp.route('/<account_id>/status', methods=['GET'])
@require_internal_token
def get_status(account_id):
    """Balance, pending, verification and rolling cap usage."""
    return jsonify(LedgerStore().get_status(account_id))


@points_bp.route('/<account_id>/history', methods=['GET'])
@require_internal_token
def get_history(account_id):
    """
    Query params:
        limit: Items per page (default 50, max 200)
        offset: Items to skip
        status: pending | confirmed | reversed
    """
    limit = min(max(request.args.get('limit', 50, type=int), 1), 200)
    offset = max(request.args.get('offset', 0, type=int), 0)
    status = request.args.get('status')

    return jsonify(LedgerStore().get_history(account_id, limit=limit, offset=offset, status=status))


# ==============================================================================
# REDEMPTION
# ==============================================================================

def _redemption_response(result):
    if result.success:
        return None
    if result.kind == RedemptionErrorKind.INVALID_REQUEST.value:
        return bad_request(result.message)

    details = {}
    if result.required_min_order_value is not None:
        details['required_min_order_value'] = float(result.required_min_order_value)
    if result.remaining_headroom is not None:
        details['remaining_headroom'] = result.remaining_headroom
    if result.max_redeemable_points is not None:
        details['max_redeemable_points'] = result.max_redeemable_points
    return unprocessable(result.message, result.kind, details=details or None)


@points_bp.route('/<account_id>/redeem', methods=['POST'])
@require_internal_token
def redeem(account_id):
    """
    Spend points at checkout.

    Body:
        points: Points to redeem
        booking_amount: Order value the points are applied to
        idempotency_key: Checkout attempt ID; retries with the same key are not debited twice
        booking_id: Optional booking reference

    Rejections return 422 with the rule that failed in error.code and any
    figures (required_min_order_value, remaining_headroom) in error.details.
    """
    event = redemption_from_payload(account_id, get_json_payload())
    result = RedemptionService().validate_and_reserve(
        account_id=event.account_id,
        points_requested=event.points,
        booking_amount=event.booking_amount,
        idempotency_key=event.idempotency_key,
        booking_id=event.booking_id,
    )

    rejection = _redemption_response(result)
    if rejection:
        return rejection
    return jsonify(result.to_dict()), 201


@points_bp.route('/<account_id>/redeem/check', methods=['GET'])
@require_internal_token
def check_redemption(account_id):
    """
    Would this redemption pass? Nothing is written.

    Query params:
        points, booking_amount
    """
    points = request.args.get('points', type=int)
    if points is None:
        return bad_request('points is required', ErrorCode.MISSING_FIELD)
    try:
        booking_amount = Decimal(request.args.get('booking_amount', ''))
    except InvalidOperation:
        return bad_request('booking_amount must be a number', ErrorCode.INVALID_FIELD)
    if not booking_amount.is_finite():
        return bad_request('booking_amount must be a number', ErrorCode.INVALID_FIELD)

    result = RedemptionService().check_redemption(account_id, points, booking_amount)
    if result.kind == RedemptionErrorKind.INVALID_REQUEST.value:
        return bad_request(result.message)
    return jsonify(result.to_dict())


# ==============================================================================
# ADMIN
# ==============================================================================

@points_bp.route('/<account_id>/adjust', methods=['POST'])
@require_internal_token
def adjust_points(account_id):
    """
    Manual adjustment (admin only).

    Body:
        points: Points to add (positive) or remove (negative)
        note: Reason for the adjustment (required)
        idempotency_key: Optional; repeats with the same key apply once
    """
    data = get_json_payload()
    points = data.get('points')
    if isinstance(points, bool) or not isinstance(points, int) or points == 0:
        raise ValidationError('points must be a non-zero integer', 'points')

    created_by = data.get('created_by') or g.get('internal_caller', 'admin')
    result = LedgerStore().adjust_points(
        account_id=account_id,
        delta=points,
        note=data.get('note'),
        created_by=created_by,
        idempotency_key=data.get('idempotency_key'),
    )
    balance = LedgerStore().get_balance(account_id)

    return jsonify({
        'success': True,
        'created': result.created,
        'entry': result.entry.to_dict(),
        'balance': balance,
    }), 201 if result.created else 200
