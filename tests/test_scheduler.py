"""
Tests for the settlement scheduler glue.
"""
from unittest.mock import patch

from rewards_ledger.utils import scheduler


class TestScheduler:

    def test_disabled_in_testing(self, app):
        scheduler.init_scheduler(app)

        assert scheduler._scheduler is None

    def test_job_runs_settlement_in_app_context(self, app):
        scheduler.init_scheduler(app)
        summary = {'processed': 0, 'confirmed': 0, 'reversed': 0, 'still_pending': 0, 'errors': 0}

        with patch('rewards_ledger.services.settlement_service.SettlementService.run_settlement',
                   return_value=summary) as run:
            scheduler.run_settlement_job()

        run.assert_called_once()

    def test_job_failure_is_logged_not_raised(self, app):
        """The next interval retries."""
        scheduler.init_scheduler(app)

        with patch('rewards_ledger.services.settlement_service.SettlementService.run_settlement',
                   side_effect=RuntimeError('db down')):
            with patch.object(scheduler.logger, 'exception') as log:
                scheduler.run_settlement_job()

        log.assert_called_once()
