"""
CLI Commands for the rewards ledger.

Usage:
    flask ledger settle                   # Settle pending entries past the hold
    flask ledger settle --entry-id 42     # Settle one entry
    flask ledger suspicious-referrals     # Referrers with low unique device/phone ratios
"""
from .ledger import init_app as init_ledger_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_ledger_commands(app)
