"""
Background scheduler for automated tasks.

Handles:
- Free-service usage window resets (daily at 00:15 UTC)
"""
import os
import atexit
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler = None
_flask_app = None  # Flask app reference for job context


def init_scheduler(app):
    """
    Initialize the background scheduler.

    Only runs in production or when ENABLE_SCHEDULER=true.
    Only the first gunicorn worker to get here runs the scheduler.
    """
    global _scheduler, _flask_app

    _flask_app = app

    if app.config.get('TESTING'):
        logger.debug('[Scheduler] Disabled in testing mode')
        return

    if not (os.getenv('FLASK_ENV') == 'production' or os.getenv('ENABLE_SCHEDULER') == 'true'):
        logger.info('[Scheduler] Disabled (set FLASK_ENV=production or ENABLE_SCHEDULER=true)')
        return

    # Prevent multiple scheduler instances across gunicorn workers
    if os.getenv('SCHEDULER_RUNNING') == 'true':
        logger.info('[Scheduler] Already running in another process')
        return

    _scheduler = BackgroundScheduler(
        timezone='UTC',
        job_defaults={
            'coalesce': True,  # Combine missed runs
            'max_instances': 1,  # Prevent concurrent runs
            'misfire_grace_time': 3600  # 1 hour grace period
        }
    )

    _scheduler.add_job(
        run_usage_reset,
        trigger=CronTrigger(hour=0, minute=15),
        id='usage_reset',
        name='Reset stale free-service usage windows',
        replace_existing=True
    )

    _scheduler.start()
    os.environ['SCHEDULER_RUNNING'] = 'true'
    logger.info('[Scheduler] Started: usage reset daily at 0:15 UTC')

    atexit.register(shutdown_scheduler)


def shutdown_scheduler():
    """Gracefully shutdown the scheduler."""
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info('[Scheduler] Shutdown complete')


def run_usage_reset():
    """
    Reset usage counters for members whose window has rolled over.

    Pricing already treats a due window as empty; this sweep persists the
    reset so admin views and counters agree.
    """
    if not _flask_app:
        logger.error('[Scheduler] Flask app not initialized')
        return

    logger.info('[Scheduler] Checking usage windows...')

    with _flask_app.app_context():
        from ..extensions import db
        from ..services.membership_service import MembershipService

        try:
            result = MembershipService().reset_stale_usage()
            logger.info(
                f"[Scheduler] Usage reset complete: "
                f"{result['reset']} of {result['processed']} members reset"
            )
        except Exception as e:
            # Job must survive to its next run
            db.session.rollback()
            logger.exception(f'[Scheduler] Usage reset failed: {e}')

