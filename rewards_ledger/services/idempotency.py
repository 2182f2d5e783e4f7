"""
Idempotency keys for ledger entries.

Every entry carries a key derived from the event that caused it. The unique
constraint on ledger_entries.idempotency_key is what actually stops a second
application; the lookup here is only a fast path before the insert.
"""
import secrets
from typing import Optional

from ..models.ledger import LedgerEntry


def booking_earn_key(booking_id: str) -> str:
    return f'booking:{booking_id}:earn'


def review_earn_key(review_id: str) -> str:
    return f'review:{review_id}:earn'


def referral_bonus_key(referrer_id: str, referee_id: str) -> str:
    """One bonus per (referrer, referee) pair, ever."""
    return f'referral:{referrer_id}:{referee_id}'


def redemption_key(account_id: str, client_key: Optional[str] = None) -> str:
    """
    Key for a redemption.

    Checkout retries should send the same client key; without one every call
    is treated as a new redemption.
    """
    if client_key:
        return f'redeem:{account_id}:{client_key}'
    return f'redeem:{account_id}:{secrets.token_hex(12)}'


def adjustment_key(account_id: str, client_key: Optional[str] = None) -> str:
    if client_key:
        return f'adjust:{account_id}:{client_key}'
    return f'adjust:{account_id}:{secrets.token_hex(12)}'


def find_applied(idempotency_key: str) -> Optional[LedgerEntry]:
    """Return the entry already written for this key, if any."""
    return LedgerEntry.query.filter_by(idempotency_key=idempotency_key).first()
