"""
Inbound signals from the booking, review and signup subsystems.

Every handler is safe to call more than once with the same payload; the
senders retry on timeouts and may deliver out of order.
"""
from typing import Any, Dict

from flask import request

from ..utils.exceptions import ValidationError


def get_json_payload() -> Dict[str, Any]:
    """Request body as a dict, or ValidationError."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data
