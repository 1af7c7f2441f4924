"""
app/scheduler/jobs.py

APScheduler-based timer for the scrape orchestration core.

Schedule (all times UTC)
--------------------------
  scrape_tick        every SCRAPE_TICK_MINUTES (default 5) minutes
  credential_reset   daily at CREDENTIAL_RESET_HOUR_UTC:00

Overlapping ticks are prevented twice: APScheduler keeps at most one
instance of the tick job, and the service's TickGuard rejects a timer tick
while a manual tick holds the guard.

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from app.config import get_credential_pool_settings, get_orchestration_settings
from app.scraping.scheduler import TRIGGER_TIMER
from app.services.scrape_orchestration_service import get_scrape_orchestration_service

logger = logging.getLogger(__name__)


def run_scrape_tick() -> None:
    """
    Timer entry point. Never raises into APScheduler.
    """

    try:
        report = get_scrape_orchestration_service().run_tick(TRIGGER_TIMER)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Scheduler: scrape_tick crashed: %s", exc)
        return
    if report.skipped:
        logger.info("Scheduler: scrape_tick skipped, previous tick still running")


def run_credential_reset() -> None:
    logger.info("Scheduler: credential_reset starting")
    try:
        reset_count = get_scrape_orchestration_service().reset_credentials()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Scheduler: credential_reset failed: %s", exc)
        return
    logger.info("Scheduler: credential_reset complete reset_count=%d", reset_count)


def build_scheduler() -> BackgroundScheduler:
    """
    Build and register all periodic jobs.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    The caller must call ``.start()`` and ``.shutdown(wait=True)`` at the
    appropriate lifecycle points.
    """

    orchestration = get_orchestration_settings()
    pool_settings = get_credential_pool_settings()
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        run_scrape_tick,
        trigger="interval",
        minutes=orchestration.tick_minutes,
        id="scrape_tick",
        name="Due-user scrape tick",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
    scheduler.add_job(
        run_credential_reset,
        trigger="cron",
        hour=pool_settings.reset_hour_utc,
        minute=0,
        id="credential_reset",
        name="Credential credit reset sweep",
        replace_existing=True,
        misfire_grace_time=3600,
    )

    return scheduler
