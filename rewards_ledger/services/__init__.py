"""
Business logic services for the rewards ledger.
"""
from .ledger_service import LedgerStore, AppendResult
from .earning_service import EarningService
from .redemption_service import RedemptionService, RedemptionResult, RedemptionErrorKind
from .settlement_service import SettlementService
from .referral_service import ReferralService
from .account_service import AccountService
from .notification_service import NotificationService

__all__ = [
    'LedgerStore',
    'AppendResult',
    'EarningService',
    'RedemptionService',
    'RedemptionResult',
    'RedemptionErrorKind',
    'SettlementService',
    'ReferralService',
    'AccountService',
    'NotificationService',
]
