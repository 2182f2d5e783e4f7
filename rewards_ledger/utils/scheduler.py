"""
Background scheduler for settlement.

Runs the settlement sweep every SETTLEMENT_INTERVAL_HOURS (6 by default),
well inside the 24 hour hold. Optional: settlement can equally be triggered
by cron (`flask ledger settle`) or POST /api/settlement/run.
"""
import os
import logging

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler = None
_flask_app = None  # Store Flask app reference for context


def init_scheduler(app):
    """
    Initialize the background scheduler.

    Only runs in production or when ENABLE_SCHEDULER=true.
    Only the main gunicorn process should run the scheduler.
    """
    global _scheduler, _flask_app

    _flask_app = app

    # Don't run scheduler in testing
    if app.config.get('TESTING'):
        # Use print to avoid app context issues during validation
        print('[Scheduler] Disabled in testing mode')
        return

    if not (os.getenv('FLASK_ENV') == 'production' or app.config.get('ENABLE_SCHEDULER')):
        print('[Scheduler] Disabled (set FLASK_ENV=production or ENABLE_SCHEDULER=true)')
        return

    # Prevent multiple scheduler instances (important for gunicorn workers)
    if os.getenv('SCHEDULER_RUNNING') == 'true':
        print('[Scheduler] Already running in another process')
        return

    from apscheduler.schedulers.background import BackgroundScheduler
    from apscheduler.triggers.interval import IntervalTrigger

    interval_hours = app.config['SETTLEMENT_INTERVAL_HOURS']

    _scheduler = BackgroundScheduler(
        timezone='UTC',
        job_defaults={
            'coalesce': True,  # Combine missed runs
            'max_instances': 1,  # Prevent concurrent runs
            'misfire_grace_time': 3600  # 1 hour grace period
        }
    )

    _scheduler.add_job(
        run_settlement_job,
        trigger=IntervalTrigger(hours=interval_hours),
        id='settlement',
        name='Settle pending ledger entries',
        replace_existing=True
    )

    _scheduler.start()
    os.environ['SCHEDULER_RUNNING'] = 'true'
    print(f'[Scheduler] Started: settlement every {interval_hours}h')

    import atexit
    atexit.register(shutdown_scheduler)


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info('[Scheduler] Shutdown complete')


def run_settlement_job():
    """Scheduled settlement sweep."""
    if not _flask_app:
        logger.error('[Scheduler] Flask app not initialized')
        return

    from ..services.settlement_service import SettlementService

    with _flask_app.app_context():
        try:
            summary = SettlementService().run_settlement()
            logger.info(
                f"[Scheduler] Settlement complete: {summary['confirmed']} confirmed, "
                f"{summary['reversed']} reversed, {summary['errors']} errors"
            )
        except Exception:
            # The next interval retries; entries stay pending
            logger.exception('[Scheduler] Settlement run failed')
