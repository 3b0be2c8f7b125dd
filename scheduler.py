"""
scheduler.py
Runs the expiry sweep once at start-up, then every hour.

Embedded:  start_scheduler()  (the Streamlit app does this once per process)
Headless:  python scheduler.py
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

import auth
import config
import db
import notifications

logger = logging.getLogger(__name__)

JOB_ID = "membership_expiry_sweep"


def sweep_job() -> int:
    logger.info("Running hourly membership check...")
    count = notifications.run_sweep()
    logger.info("Done: %d notification(s) sent", count)
    return count


def _add_sweep_job(scheduler) -> None:
    # Overlapping runs are allowed; the notifications ledger keeps them from double-alerting.
    scheduler.add_job(
        sweep_job,
        CronTrigger(minute=config.SWEEP_CRON_MINUTE),
        id=JOB_ID,
        replace_existing=True,
        max_instances=3,
        coalesce=True,
    )


def start_scheduler(run_now: bool = True) -> BackgroundScheduler:
    if run_now:
        logger.info("Initial membership check...")
        count = notifications.run_sweep()
        logger.info("Initial: %d notification(s) sent", count)

    scheduler = BackgroundScheduler(timezone="UTC")
    _add_sweep_job(scheduler)
    scheduler.start()
    logger.info("Expiry sweep scheduled hourly at minute %02d", config.SWEEP_CRON_MINUTE)
    return scheduler


def main():
    config.configure_logging("scheduler.log")
    db.init_db(auth.hash_password("admin123"))

    sweep_job()

    scheduler = BlockingScheduler(timezone="UTC")
    _add_sweep_job(scheduler)
    logger.info("Starting expiry scheduler (Ctrl+C to stop)")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Expiry scheduler stopped")


if __name__ == "__main__":
    main()
