"""
Tick-driven due-user scheduler.

One tick:
  1. acquire the single-flight guard (or return a skipped report),
  2. evaluate every user's schedule in listing order and run the retry
     driver's main pass for each due user, stamping ``last_scrape_at``
     afterwards regardless of outcome,
  3. run any delayed retry waves that have come due.

Job failures never abort a user; user failures never abort the tick.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from app.config import OrchestrationSettings
from app.domain.scraping import PassReport, ScrapeJob, TickReport
from app.scraping.clock import Clock, utcnow
from app.scraping.logging_utils import log_event, tick_context
from app.scraping.retry_driver import RetryDriver
from app.scraping.schedule import evaluate_due
from app.scraping.tick_guard import TickGuard
from db.repositories.monitored_item_repository import MonitoredItemRepository
from db.repositories.scrape_settings_repository import ScrapeSettingsRepository
from db.session import SessionFactory, session_scope

logger = logging.getLogger(__name__)

TRIGGER_TIMER = "timer"
TRIGGER_MANUAL = "manual"


@dataclass(frozen=True)
class UserSchedule:
    user_id: uuid.UUID
    interval_spec: str | None
    last_run_at: datetime | None


class ScrapeScheduler:
    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        driver: RetryDriver,
        settings: OrchestrationSettings,
        guard: TickGuard | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._driver = driver
        self._settings = settings
        self._guard = guard or TickGuard(clock=clock)
        self._clock = clock

    @property
    def guard(self) -> TickGuard:
        return self._guard

    def run_tick(self, trigger: str = TRIGGER_TIMER) -> TickReport:
        report = TickReport(trigger=trigger)
        with self._guard.hold(trigger) as tick_id:
            if tick_id is None:
                report.skipped = True
                log_event(
                    logger,
                    logging.WARNING,
                    "scrape_tick_skipped",
                    trigger=trigger,
                    running=self._guard.snapshot(),
                )
                return report

            report.tick_id = tick_id
            started_at = self._clock()
            with tick_context(tick_id):
                log_event(logger, logging.INFO, "scrape_tick_started", trigger=trigger)
                self._run_users(report, started_at)
                self._run_waves(report, started_at)
                log_event(
                    logger,
                    logging.INFO,
                    "scrape_tick_finished",
                    trigger=trigger,
                    users_evaluated=report.users_evaluated,
                    users_dispatched=report.users_dispatched,
                    jobs_failed=report.jobs_failed,
                    waves_processed=report.waves_processed,
                )
        return report

    def _load_schedules(self) -> list[UserSchedule]:
        with session_scope(self._session_factory) as session:
            return [
                UserSchedule(
                    user_id=row.user_id,
                    interval_spec=row.scraping_interval,
                    last_run_at=row.last_scrape_at,
                )
                for row in ScrapeSettingsRepository(session).list_settings()
            ]

    def _run_users(self, report: TickReport, started_at: datetime) -> None:
        try:
            schedules = self._load_schedules()
        except Exception as exc:  # noqa: BLE001
            report.errors.append(f"schedule listing failed: {exc}")
            logger.error("Scheduler: could not list user schedules: %s", exc)
            return

        for schedule in schedules:
            report.users_evaluated += 1
            now = self._clock()
            decision = evaluate_due(
                schedule.interval_spec,
                schedule.last_run_at,
                now,
                hourly_early_tolerance=self._settings.hourly_early_tolerance,
                daily_min_gap_hours=self._settings.daily_min_gap_hours,
            )
            if decision.reason == "invalid_interval":
                logger.warning(
                    "Scheduler: invalid scraping_interval format user=%s value=%r",
                    schedule.user_id,
                    schedule.interval_spec,
                )
                continue
            if not decision.due:
                logger.debug(
                    "Scheduler: skipped user=%s reason=%s hours_since=%s",
                    schedule.user_id,
                    decision.reason,
                    decision.hours_since_last_run,
                )
                continue

            try:
                pass_report = self.dispatch_user(schedule.user_id, started_at=started_at)
            except Exception as exc:  # noqa: BLE001
                report.errors.append(f"user {schedule.user_id}: {exc}")
                logger.warning("Scheduler: dispatch failed user=%s: %s", schedule.user_id, exc)
                continue
            report.users_dispatched += 1
            report.jobs_failed += len(pass_report.failed)

    def dispatch_user(self, user_id: uuid.UUID, *, started_at: datetime | None = None) -> PassReport:
        """
        Run the main pass over the user's non-archived items, then stamp the
        run time. Due-ness tracks attempts, not successes.
        """

        with session_scope(self._session_factory) as session:
            jobs = [
                ScrapeJob(user_id=user_id, item_id=item.item_id, country_market=item.country_market or "com")
                for item in MonitoredItemRepository(session).list_active_items(user_id)
            ]

        log_event(logger, logging.INFO, "user_scrape_started", user_id=user_id, jobs=len(jobs))
        pass_report = self._driver.run_main_pass(user_id, jobs, started_at=started_at)

        with session_scope(self._session_factory) as session:
            ScrapeSettingsRepository(session).stamp_last_scrape(user_id=user_id, at=self._clock())

        log_event(
            logger,
            logging.INFO,
            "user_scrape_finished",
            user_id=user_id,
            attempted=pass_report.attempted,
            failed=len(pass_report.failed),
        )
        return pass_report

    def _run_waves(self, report: TickReport, started_at: datetime) -> None:
        try:
            waves = self._driver.process_due_waves(started_at=started_at)
        except Exception as exc:  # noqa: BLE001
            report.errors.append(f"retry waves failed: {exc}")
            logger.error("Scheduler: retry wave processing failed: %s", exc)
            return
        report.waves_processed = len(waves)
