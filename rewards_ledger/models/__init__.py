"""
Database models for the rewards ledger.
Accounts, the points ledger, referrals, and the booking outcome mirror.
"""
from .account import Account
from .ledger import LedgerEntry, EntryReason, EntryStatus, EARN_REASONS
from .referral import Referral, ReferralCode, ReferralStatus, ReferralCodeStatus
from .booking import BookingRecord, BookingStatus, FAILED_BOOKING_STATUSES
from .notification import NotificationRequest

__all__ = [
    'Account',
    # Ledger
    'LedgerEntry',
    'EntryReason',
    'EntryStatus',
    'EARN_REASONS',
    # Referrals
    'Referral',
    'ReferralCode',
    'ReferralStatus',
    'ReferralCodeStatus',
    # Bookings
    'BookingRecord',
    'BookingStatus',
    'FAILED_BOOKING_STATUSES',
    # Outbox
    'NotificationRequest',
]
