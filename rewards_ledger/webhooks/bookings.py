"""
Booking lifecycle webhooks.

POST /webhooks/bookings/completed  - booking reached 'completed'; earns points
POST /webhooks/bookings/status     - cancelled, refunded or dispute flag changed
"""
from flask import Blueprint, jsonify, current_app

from ..events import booking_completed_from_payload, booking_status_from_payload
from ..middleware.internal_auth import require_internal_token
from ..services.earning_service import EarningService
from . import get_json_payload

bookings_webhook_bp = Blueprint('bookings_webhook', __name__)


@bookings_webhook_bp.route('/bookings/completed', methods=['POST'])
@require_internal_token
def booking_completed():
    """
    Body:
        account_id, booking_id, net_amount, completed_at (optional, ISO-8601)

    A repeat delivery returns 200 with created=false.
    """
    event = booking_completed_from_payload(get_json_payload())
    result = EarningService().handle(event)

    current_app.logger.info(
        f"Booking completed webhook: {event.booking_id} for {event.account_id} "
        f"({result['points']} pts, created={result['created']})"
    )
    return jsonify(result), 201 if result['created'] else 200


@bookings_webhook_bp.route('/bookings/status', methods=['POST'])
@require_internal_token
def booking_status_changed():
    """
    Body:
        account_id, booking_id, status (completed|cancelled|refunded), disputed (optional)
    """
    event = booking_status_from_payload(get_json_payload())
    return jsonify(EarningService().handle(event))
