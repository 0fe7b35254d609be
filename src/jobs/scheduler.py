"""In-process job schedule for the eligibility batch jobs (APScheduler).

Times are UTC:
- 02:00 notification cleanup
- 06:00 daily eligibility check, 06:45 retry of its failed customers
- 10:00 motivation notifications
- hourly activation reconciliation
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from src.jobs.eligibility import (
    cleanup_notifications,
    reconcile_activations,
    retry_failed_customers,
    run_daily_check,
    send_motivation_notifications,
)

logger = logging.getLogger(__name__)


def create_scheduler() -> AsyncIOScheduler:
    """Build the scheduler with every batch job registered (not started)."""
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(cleanup_notifications, CronTrigger(hour=2, minute=0), id="notification_cleanup")
    scheduler.add_job(run_daily_check, CronTrigger(hour=6, minute=0), id="daily_eligibility_check")
    scheduler.add_job(retry_failed_customers, CronTrigger(hour=6, minute=45), id="retry_failed_customers")
    scheduler.add_job(send_motivation_notifications, CronTrigger(hour=10, minute=0), id="motivation_notifications")
    scheduler.add_job(reconcile_activations, CronTrigger(minute=15), id="activation_reconciliation")
    logger.info("Scheduled %d eligibility jobs", len(scheduler.get_jobs()))
    return scheduler
