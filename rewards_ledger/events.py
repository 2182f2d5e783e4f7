"""
Inbound events.

Each collaborator signal is one frozen dataclass. The earning engine
dispatches on the class, so a payload that does not parse into one of these
never reaches the ledger.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from .models.booking import BookingStatus
from .utils.exceptions import ValidationError


@dataclass(frozen=True)
class BookingCompleted:
    """Booking subsystem: a booking reached 'completed'."""
    account_id: str
    booking_id: str
    net_amount: Decimal
    completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class BookingStatusChanged:
    """Booking subsystem: a booking was cancelled, refunded, or (un)disputed."""
    account_id: str
    booking_id: str
    status: str
    disputed: bool = False


@dataclass(frozen=True)
class ReviewVerified:
    """Review subsystem: a review passed verification."""
    account_id: str
    review_id: str
    booking_id: Optional[str] = None


@dataclass(frozen=True)
class ReferralSignup:
    """Signup subsystem: a new account was registered."""
    account_id: str
    email: str
    mobile_number: Optional[str] = None
    referral_code: Optional[str] = None
    captured_referral_code: Optional[str] = None  # From the click-through cookie
    device_fingerprint: Optional[str] = None
    payment_method_hash: Optional[str] = None
    ip_address: Optional[str] = None

    @property
    def resolved_code(self) -> Optional[str]:
        """Explicit code wins over the captured click-through code."""
        code = self.referral_code or self.captured_referral_code
        return code.strip().upper() if code and code.strip() else None


@dataclass(frozen=True)
class RedemptionRequest:
    """Checkout: spend points against a booking."""
    account_id: str
    points: int
    booking_amount: Decimal
    idempotency_key: Optional[str] = None
    booking_id: Optional[str] = None


# ==================== Payload parsing ====================

def _require(data: Dict[str, Any], field: str) -> str:
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f'{field} is required', field)
    return str(value).strip()


def _optional(data: Dict[str, Any], field: str) -> Optional[str]:
    value = data.get(field)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _decimal(data: Dict[str, Any], field: str) -> Decimal:
    raw = data.get(field)
    if raw is None:
        raise ValidationError(f'{field} is required', field)
    try:
        # str() first so floats like 42.1 don't carry binary noise
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be a number', field)
    if not value.is_finite():
        raise ValidationError(f'{field} must be a number', field)
    return value


def _datetime(data: Dict[str, Any], field: str) -> Optional[datetime]:
    raw = data.get(field)
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(str(raw).replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError(f'{field} must be an ISO-8601 timestamp', field)
    if parsed.tzinfo is not None:
        # Stored timestamps are naive UTC
        parsed = datetime.utcfromtimestamp(parsed.timestamp())
    return parsed


def booking_completed_from_payload(data: Dict[str, Any]) -> BookingCompleted:
    net_amount = _decimal(data, 'net_amount')
    if net_amount < 0:
        raise ValidationError('net_amount cannot be negative', 'net_amount')
    return BookingCompleted(
        account_id=_require(data, 'account_id'),
        booking_id=_require(data, 'booking_id'),
        net_amount=net_amount,
        completed_at=_datetime(data, 'completed_at'),
    )


def booking_status_from_payload(data: Dict[str, Any]) -> BookingStatusChanged:
    status = _require(data, 'status').lower()
    allowed = {s.value for s in BookingStatus}
    if status not in allowed:
        raise ValidationError(f"status must be one of: {', '.join(sorted(allowed))}", 'status')
    return BookingStatusChanged(
        account_id=_require(data, 'account_id'),
        booking_id=_require(data, 'booking_id'),
        status=status,
        disputed=bool(data.get('disputed', False)),
    )


def review_verified_from_payload(data: Dict[str, Any]) -> ReviewVerified:
    return ReviewVerified(
        account_id=_require(data, 'account_id'),
        review_id=_require(data, 'review_id'),
        booking_id=_optional(data, 'booking_id'),
    )


def signup_from_payload(data: Dict[str, Any], captured_code: Optional[str] = None,
                        ip_address: Optional[str] = None) -> ReferralSignup:
    return ReferralSignup(
        account_id=_require(data, 'account_id'),
        email=_require(data, 'email').lower(),
        mobile_number=_optional(data, 'mobile_number'),
        referral_code=_optional(data, 'referral_code'),
        captured_referral_code=captured_code,
        device_fingerprint=_optional(data, 'device_fingerprint'),
        payment_method_hash=_optional(data, 'payment_method_hash'),
        ip_address=ip_address or _optional(data, 'ip_address'),
    )


def redemption_from_payload(account_id: str, data: Dict[str, Any]) -> RedemptionRequest:
    raw_points = data.get('points')
    if isinstance(raw_points, bool) or not isinstance(raw_points, int):
        try:
            raw_points = int(str(raw_points))
        except (TypeError, ValueError):
            raise ValidationError('points must be an integer', 'points')
    return RedemptionRequest(
        account_id=account_id,
        points=raw_points,
        booking_amount=_decimal(data, 'booking_amount'),
        idempotency_key=_optional(data, 'idempotency_key'),
        booking_id=_optional(data, 'booking_id'),
    )
