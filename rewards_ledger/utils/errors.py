"""
Standardized error response utilities for the ledger API.

Provides consistent error response format across all endpoints:
{
    "error": {
        "message": "User-friendly error message",
        "code": "ERROR_CODE"
    }
}

Usage:
    from rewards_ledger.utils.errors import error_response, ErrorCode

    return error_response("Account not found", ErrorCode.ACCOUNT_NOT_FOUND, 404)
"""
import logging
from enum import Enum
from flask import jsonify
from typing import Optional

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Authentication (401)
    AUTH_REQUIRED = "AUTH_REQUIRED"
    INVALID_TOKEN = "INVALID_TOKEN"

    # Validation Errors (400)
    INVALID_REQUEST = "INVALID_REQUEST"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_FIELD = "INVALID_FIELD"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Not Found (404)
    NOT_FOUND = "NOT_FOUND"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    ENTRY_NOT_FOUND = "ENTRY_NOT_FOUND"

    # Business Logic Errors (422)
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    REDEMPTION_REJECTED = "REDEMPTION_REJECTED"
    INVALID_STATUS = "INVALID_STATUS"

    # External Service Errors (502, 503)
    BOOKING_LOOKUP_FAILED = "BOOKING_LOOKUP_FAILED"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"

    # Server Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"


def error_response(
    message: str,
    code: ErrorCode = ErrorCode.INTERNAL_ERROR,
    status_code: int = 500,
    log_error: bool = True,
    details: Optional[dict] = None
) -> tuple:
    """
    Create a standardized error response.

    Args:
        message: User-friendly error message
        code: Error code from ErrorCode enum (or a plain string code)
        status_code: HTTP status code
        log_error: Whether to log the error (default True for 500s)
        details: Optional figures returned alongside the message

    Returns:
        Tuple of (response, status_code) for Flask
    """
    if log_error and status_code >= 500:
        logger.error(f"API Error [{code}]: {message}", extra={"details": details})
    elif log_error and status_code >= 400:
        logger.warning(f"API Error [{code}]: {message}", extra={"details": details})

    response = {
        "error": {
            "message": message,
            "code": code.value if isinstance(code, ErrorCode) else code
        }
    }
    # 5xx details are only logged
    if details and status_code < 500:
        response["error"]["details"] = details

    return jsonify(response), status_code


def bad_request(message: str, code: ErrorCode = ErrorCode.INVALID_REQUEST) -> tuple:
    """400 Bad Request error."""
    return error_response(message, code, 400, log_error=False)


def unauthorized(message: str = "Authentication required", code: ErrorCode = ErrorCode.AUTH_REQUIRED) -> tuple:
    """401 Unauthorized error."""
    return error_response(message, code, 401, log_error=False)


def not_found(message: str, code: ErrorCode = ErrorCode.NOT_FOUND) -> tuple:
    """404 Not Found error."""
    return error_response(message, code, 404, log_error=False)


def unprocessable(message: str, code, details: Optional[dict] = None) -> tuple:
    """422 business rule rejection."""
    return error_response(message, code, 422, log_error=True, details=details)


def service_unavailable(message: str, code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR) -> tuple:
    """503 retryable failure."""
    return error_response(message, code, 503, log_error=True)


def internal_error(message: str = "An unexpected error occurred", details: Optional[dict] = None) -> tuple:
    """500 Internal Server Error."""
    return error_response(message, ErrorCode.INTERNAL_ERROR, 500, log_error=True, details=details)
