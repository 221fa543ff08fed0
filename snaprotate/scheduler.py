"""
APScheduler configuration for running a backup job on a cron schedule.

The rotation is calendar driven, so the usual schedule is once a day, e.g.
``0 2 * * *``. Overlapping runs of the job are never started by the
scheduler; separate processes are not coordinated.
"""

import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from snaprotate.backup.errors import BackupError
from snaprotate.backup.executor import BackupExecutor


logger = logging.getLogger(__name__)

JOB_ID = 'snaprotate_backup'


def init_scheduler(settings, schedule_cron: str, timezone=None, on_start=None, on_finish=None) -> BlockingScheduler:
    """
    Create a scheduler with the backup job registered.

    Args:
        settings: BackupSettings of the job
        schedule_cron: Crontab expression (five fields)
        timezone: Scheduler timezone, local time when None
        on_start: Passed through to the executor for each run
        on_finish: Called with the BackupRun of each run, failed or not

    Returns:
        Configured, not yet started, BlockingScheduler

    Raises:
        ValueError: If the cron expression is invalid
    """
    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one instance of a job at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    scheduler_kwargs = {'job_defaults': job_defaults}
    if timezone:
        scheduler_kwargs['timezone'] = timezone
    scheduler = BlockingScheduler(**scheduler_kwargs)

    trigger = CronTrigger.from_crontab(schedule_cron, timezone=timezone)
    scheduler.add_job(
        func=_execute_backup_wrapper,
        args=[settings, on_start, on_finish],
        trigger=trigger,
        id=JOB_ID,
        name=f"Backup: {settings.destination}",
        replace_existing=True
    )
    logger.info(f"Scheduled backup of {settings.destination} ({schedule_cron})")
    return scheduler


def _execute_backup_wrapper(settings, on_start=None, on_finish=None):
    """
    Run one backup inside the scheduler.

    A failed run is logged; the scheduler keeps going so the next day's
    run can repair the tiers.
    """
    executor = BackupExecutor(settings, on_start=on_start)
    try:
        run = executor.execute()
        logger.info(f"Scheduled backup completed with status: {run.status}")
    except BackupError as e:
        logger.error(f"Scheduled backup failed: {e}")
        run = executor.run_record

    if on_finish and run is not None:
        on_finish(run)


def run_scheduler(scheduler: BlockingScheduler):
    """Block running the scheduler until interrupted."""
    for job in scheduler.get_jobs():
        logger.info(f"  - {job.id}: {job.name} ({job.trigger})")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")
    finally:
        if scheduler.running:
            scheduler.shutdown(wait=False)
