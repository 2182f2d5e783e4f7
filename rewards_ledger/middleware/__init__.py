"""
Middleware package for the rewards ledger.
"""
from .internal_auth import require_internal_token, get_bearer_token

__all__ = ['require_internal_token', 'get_bearer_token']
