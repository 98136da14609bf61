"""
APScheduler configuration for repeated backups.

When a cron expression is configured the process stays up and runs one
backup per firing. Runs never overlap and missed firings are coalesced.
"""

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .cancellation import CancellationToken
from .config import Config
from .backup.executor import BackupExecutor


logger = logging.getLogger(__name__)

BACKUP_JOB_ID = 'unifi_backup'


def create_scheduler(config: Config, cancellation: CancellationToken) -> BackgroundScheduler:
    """
    Build a scheduler with the backup job registered (not started).

    Args:
        config: Application configuration; schedule.cron must be set
        cancellation: Root token; each run gets a child of it

    Raises:
        ValueError: If the cron expression is invalid
    """
    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one backup at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    scheduler = BackgroundScheduler(job_defaults=job_defaults, timezone='UTC')

    trigger = CronTrigger.from_crontab(config.schedule.cron, timezone='UTC')
    scheduler.add_job(
        func=run_scheduled_backup,
        args=[config, cancellation],
        trigger=trigger,
        id=BACKUP_JOB_ID,
        name='UniFi backup',
        replace_existing=True
    )

    return scheduler


def run_scheduled_backup(config: Config, cancellation: CancellationToken):
    """Run one backup as a scheduler job."""
    if cancellation.is_cancelled():
        logger.info("Skipping scheduled backup, shutdown in progress")
        return None

    try:
        result = BackupExecutor(config, cancellation=cancellation.child()).execute()
    except Exception as e:
        logger.exception(f"Scheduled backup crashed: {e}")
        return None

    logger.info(f"Scheduled backup completed with status: {result.status}")
    return result


def run_scheduled(config: Config, cancellation: CancellationToken, scheduler: Optional[BackgroundScheduler] = None):
    """
    Run backups on the configured schedule until cancelled.

    Blocks until the token is cancelled, then waits for a running backup
    to observe the cancellation and shuts the scheduler down.
    """
    scheduler = scheduler or create_scheduler(config, cancellation)
    scheduler.start()

    job = scheduler.get_job(BACKUP_JOB_ID)
    next_run = job.next_run_time.isoformat() if job and job.next_run_time else 'N/A'
    logger.info(f"Scheduler started (cron={config.schedule.cron}, next run: {next_run})")

    try:
        cancellation.wait()
    finally:
        logger.info("Stopping scheduler")
        scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped")
