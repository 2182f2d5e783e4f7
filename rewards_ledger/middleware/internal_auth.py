"""
Authentication for internal callers.

The booking, review and signup subsystems and the admin tools call this
service with a shared bearer token (INTERNAL_API_TOKEN). When no token is
configured (local development, tests) the check is skipped.
"""
import hmac
from functools import wraps

from flask import current_app, g, request

from ..utils.errors import ErrorCode, unauthorized


def get_bearer_token() -> str:
    header = request.headers.get('Authorization', '')
    if header.lower().startswith('bearer '):
        return header[7:].strip()
    return ''


def require_internal_token(f):
    """
    Decorator for internal-only endpoints.

    Usage:
        @bp.route('/bookings/completed', methods=['POST'])
        @require_internal_token
        def booking_completed():
            ...
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        expected = current_app.config.get('INTERNAL_API_TOKEN')
        if expected:
            provided = get_bearer_token()
            if not provided:
                return unauthorized()
            # Timing-safe comparison
            if not hmac.compare_digest(provided.encode('utf-8'), expected.encode('utf-8')):
                current_app.logger.warning(f'Rejected internal call to {request.path}: bad token')
                return unauthorized('Invalid token', ErrorCode.INVALID_TOKEN)
        g.internal_caller = request.headers.get('X-Caller', 'internal')
        return f(*args, **kwargs)
    return decorated
