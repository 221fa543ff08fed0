"""
Unit tests for scheduler (snaprotate/scheduler.py).

Tests APScheduler configuration and the scheduled job wrapper.
"""

from unittest.mock import MagicMock, patch

import pytest
from apscheduler.triggers.cron import CronTrigger

from snaprotate import scheduler as scheduler_module
from snaprotate.backup.report import format_summary
from snaprotate.backup.settings import BackupSettings
from snaprotate.backup.sync import SyncError


@pytest.fixture
def job_settings():
    return BackupSettings(sources=('/home/user/Documents',), destination='/backups/user')


class TestSchedulerInitialization:
    """Test scheduler initialization."""

    def test_init_scheduler_registers_job(self, job_settings):
        scheduler = scheduler_module.init_scheduler(job_settings, '0 2 * * *', timezone='UTC')

        jobs = scheduler.get_jobs()
        assert len(jobs) == 1
        job = jobs[0]
        assert job.id == scheduler_module.JOB_ID
        assert job.name == 'Backup: /backups/user'
        assert isinstance(job.trigger, CronTrigger)
        assert job.args[0] is job_settings
        assert not scheduler.running

    @patch('snaprotate.scheduler.BlockingScheduler')
    def test_job_defaults(self, mock_scheduler_class, job_settings):
        mock_scheduler = MagicMock()
        mock_scheduler_class.return_value = mock_scheduler

        result = scheduler_module.init_scheduler(job_settings, '30 1 * * *', timezone='UTC')

        assert result == mock_scheduler
        call_kwargs = mock_scheduler_class.call_args[1]
        assert call_kwargs['job_defaults'] == {
            'coalesce': True,
            'max_instances': 1,
            'misfire_grace_time': 300
        }
        assert call_kwargs['timezone'] == 'UTC'
        add_kwargs = mock_scheduler.add_job.call_args[1]
        assert add_kwargs['func'] is scheduler_module._execute_backup_wrapper
        assert add_kwargs['replace_existing'] is True

    def test_invalid_cron_expression(self, job_settings):
        with pytest.raises(ValueError):
            scheduler_module.init_scheduler(job_settings, 'every night', timezone='UTC')


class TestScheduledRun:
    """Test the wrapper executed by the scheduler."""

    @patch('snaprotate.scheduler.BackupExecutor')
    def test_successful_run(self, mock_executor_class, job_settings):
        run = MagicMock(status='success')
        mock_executor_class.return_value.execute.return_value = run
        on_start = MagicMock()
        on_finish = MagicMock()

        scheduler_module._execute_backup_wrapper(job_settings, on_start, on_finish)

        mock_executor_class.assert_called_once_with(job_settings, on_start=on_start)
        on_finish.assert_called_once_with(run)

    @patch('snaprotate.scheduler.BackupExecutor')
    def test_failed_run_is_logged_and_reported(self, mock_executor_class, job_settings, caplog):
        executor = mock_executor_class.return_value
        executor.execute.side_effect = SyncError("Rsync failed to sync (exit code 23)", 23)
        failed_run = MagicMock(status='failed')
        executor.run_record = failed_run
        on_finish = MagicMock()

        scheduler_module._execute_backup_wrapper(job_settings, None, on_finish)

        assert 'Scheduled backup failed' in caplog.text
        on_finish.assert_called_once_with(failed_run)

    def test_failed_run_prints_summary(self, capsys):
        # Validation fails before any I/O
        settings = BackupSettings(sources=('/home/user',), destination='/etc/',
                                  protected_paths=frozenset({'/etc'}))

        scheduler_module._execute_backup_wrapper(settings, None, lambda run: print(format_summary(run)))

        out = capsys.readouterr().out
        assert 'SUMMARY' in out
        assert 'Status:          failed' in out
        assert 'protected path' in out


class TestRunScheduler:

    def test_stops_on_keyboard_interrupt(self):
        scheduler = MagicMock()
        scheduler.get_jobs.return_value = []
        scheduler.start.side_effect = KeyboardInterrupt
        scheduler.running = True

        scheduler_module.run_scheduler(scheduler)

        scheduler.shutdown.assert_called_once_with(wait=False)
