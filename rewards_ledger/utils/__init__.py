"""
Utility modules for the rewards ledger.
"""
from .logging_config import setup_logging
from .errors import (
    ErrorCode,
    error_response,
    bad_request,
    unauthorized,
    not_found,
    unprocessable,
    service_unavailable,
    internal_error,
)
from .exceptions import (
    LedgerError,
    NotFoundError,
    AccountNotFoundError,
    EntryNotFoundError,
    ValidationError,
    InsufficientPointsError,
    InvalidStatusTransitionError,
    BookingLookupError,
)
