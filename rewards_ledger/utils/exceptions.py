"""
Custom exceptions for ledger business logic.

These exceptions provide more specific error handling than generic Exception,
allowing for better error messages and appropriate HTTP status codes.
"""


class LedgerError(Exception):
    """Base exception for all ledger business logic errors."""

    def __init__(self, message: str, code: str = "LEDGER_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(LedgerError):
    """Resource not found."""

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with ID {identifier} not found"
        super().__init__(message, f"{resource.upper()}_NOT_FOUND")


class AccountNotFoundError(NotFoundError):
    """Account not found."""

    def __init__(self, identifier=None):
        super().__init__("Account", identifier)


class EntryNotFoundError(NotFoundError):
    """Ledger entry not found."""

    def __init__(self, identifier=None):
        super().__init__("Entry", identifier)


class ValidationError(LedgerError):
    """Invalid input data."""

    def __init__(self, message: str, field: str = None):
        self.field = field
        code = f"INVALID_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(message, code)


class InsufficientPointsError(LedgerError):
    """A confirmed debit would drive the balance below zero."""

    def __init__(self, current: int, required: int):
        self.current = current
        self.required = required
        message = f"Insufficient points. Current: {current}, Required: {required}"
        super().__init__(message, "INSUFFICIENT_BALANCE")


class InvalidStatusTransitionError(LedgerError):
    """Invalid status transition for a resource."""

    def __init__(self, resource: str, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        message = f"Cannot change {resource} status from '{from_status}' to '{to_status}'"
        super().__init__(message, "INVALID_STATUS_TRANSITION")


class BookingLookupError(LedgerError):
    """The booking subsystem could not answer; the caller should retry later."""

    def __init__(self, booking_id: str, original_error: Exception = None):
        self.booking_id = booking_id
        self.original_error = original_error
        message = f"Booking {booking_id} could not be looked up"
        if original_error:
            message = f"{message}: {original_error}"
        super().__init__(message, "BOOKING_LOOKUP_FAILED")
