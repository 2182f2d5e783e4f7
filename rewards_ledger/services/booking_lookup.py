"""
Booking outcome lookup used by settlement.

Two implementations:
- RecordedBookingLookup reads the booking_records mirror kept up to date by
  the booking webhooks (default).
- HttpBookingLookup asks the booking service directly.

Both return None when the booking is unknown and raise BookingLookupError
when the answer could not be obtained. Settlement treats the two very
differently: unknown stays pending, a failed lookup also stays pending but is
counted as an error.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..models.booking import BookingRecord
from ..utils.exceptions import BookingLookupError


@dataclass(frozen=True)
class BookingOutcome:
    booking_id: str
    status: str
    disputed: bool = False


class RecordedBookingLookup:
    """Reads the locally mirrored booking outcome."""

    def get_outcome(self, booking_id: str) -> Optional[BookingOutcome]:
        try:
            record = BookingRecord.query.filter_by(booking_id=booking_id).first()
        except SQLAlchemyError as e:
            raise BookingLookupError(booking_id, e)

        if not record:
            return None
        return BookingOutcome(
            booking_id=record.booking_id,
            status=record.status,
            disputed=bool(record.disputed),
        )


class HttpBookingLookup:
    """Asks the booking service: GET {base_url}/bookings/{id}."""

    def __init__(self, base_url: str, timeout: float = 5.0, token: str = None):
        if not base_url:
            raise ValueError("Booking service URL not configured")
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.token = token

    def _get_headers(self) -> Dict[str, str]:
        headers = {'Accept': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def get_outcome(self, booking_id: str) -> Optional[BookingOutcome]:
        try:
            response = requests.get(
                f"{self.base_url}/bookings/{booking_id}",
                headers=self._get_headers(),
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise BookingLookupError(booking_id, e)

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise BookingLookupError(booking_id, RuntimeError(f'HTTP {response.status_code}'))

        try:
            data = response.json()
        except ValueError as e:
            raise BookingLookupError(booking_id, e)
        return self._parse(booking_id, data)

    def _parse(self, booking_id: str, data: Dict[str, Any]) -> BookingOutcome:
        status = data.get('status')
        if not status:
            raise BookingLookupError(booking_id, ValueError('response has no status'))

        return BookingOutcome(
            booking_id=booking_id,
            status=str(status).lower(),
            disputed=bool(data.get('disputed', False)),
        )


def get_booking_lookup():
    """Build the lookup named by BOOKING_LOOKUP."""
    config = current_app.config
    kind = config.get('BOOKING_LOOKUP', 'records')

    if kind == 'http':
        return HttpBookingLookup(
            base_url=config.get('BOOKING_SERVICE_URL'),
            timeout=config.get('BOOKING_SERVICE_TIMEOUT', 5.0),
            token=config.get('INTERNAL_API_TOKEN') or None,
        )
    if kind == 'records':
        return RecordedBookingLookup()
    raise ValueError(f"Unknown BOOKING_LOOKUP: {kind}")
