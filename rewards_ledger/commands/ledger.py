"""
CLI Commands for ledger maintenance.

Settlement can be driven from cron instead of the in-process scheduler:

# Settlement sweep (every 6 hours)
0 */6 * * * cd /app && flask ledger settle
"""

import click
from flask.cli import with_appcontext

from ..services.settlement_service import SettlementService
from ..services.referral_service import ReferralService


@click.group('ledger')
def ledger_cli():
    """Points ledger commands."""
    pass


@ledger_cli.command('settle')
@click.option('--entry-id', type=int, help='Settle a single entry instead of sweeping')
@click.option('--batch-size', type=int, help='Maximum entries to process')
@with_appcontext
def settle(entry_id, batch_size):
    """
    Confirm or reverse pending entries whose hold period has passed.

    Safe to run repeatedly; settled entries are never touched again.
    """
    service = SettlementService()

    if entry_id:
        result = service.settle_entry(entry_id)
        click.echo(f"Entry {entry_id}: {result['outcome']}")
        return

    summary = service.run_settlement(batch_size=batch_size)
    click.echo(f"Processed: {summary['processed']} entries")
    click.echo(f"  Confirmed: {summary['confirmed']}")
    click.echo(f"  Reversed: {summary['reversed']}")
    click.echo(f"  Still pending: {summary['still_pending']}")
    if summary['errors']:
        click.echo(f"  Lookup errors: {summary['errors']} (will retry next run)")


@ledger_cli.command('suspicious-referrals')
@click.option('--min-referrals', type=int, help='Only referrers with more referrals than this')
@click.option('--min-ratio', type=float, help='Flag unique device/phone ratios below this')
@with_appcontext
def suspicious_referrals(min_referrals, min_ratio):
    """List referrers whose referees share devices or phone numbers."""
    report = ReferralService().find_suspicious_referrers(
        min_referrals=min_referrals,
        min_unique_ratio=min_ratio,
    )

    summary = report['summary']
    click.echo(
        f"{summary['flagged']} of {summary['total_referrers']} referrers flagged "
        f"({summary['total_referrals']} referrals)"
    )
    for item in report['suspicious']:
        click.echo(
            f"  {item['referrer_id']}: risk {item['risk_score']}, "
            f"{item['total_referrals']} referrals, "
            f"devices {item['unique_devices']}, phones {item['unique_phones']}"
        )


def init_app(app):
    """Register ledger commands with Flask app."""
    app.cli.add_command(ledger_cli)
