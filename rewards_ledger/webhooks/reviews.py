"""
Review verification webhook.
"""
from flask import Blueprint, jsonify

from ..events import review_verified_from_payload
from ..middleware.internal_auth import require_internal_token
from ..services.earning_service import EarningService
from . import get_json_payload

reviews_webhook_bp = Blueprint('reviews_webhook', __name__)


@reviews_webhook_bp.route('/reviews/verified', methods=['POST'])
@require_internal_token
def review_verified():
    """Body: account_id, review_id, booking_id (optional)."""
    event = review_verified_from_payload(get_json_payload())
    result = EarningService().handle(event)
    return jsonify(result), 201 if result['created'] else 200
