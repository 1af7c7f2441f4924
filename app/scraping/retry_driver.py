"""
Retry driver: bounded immediate retries per job, then two delayed waves for
whatever is still failing.

Delayed waves are durable rows (``scrape_retry_waves``) rather than
in-process timers. The scheduler tick polls them through
``process_due_waves`` with the same due-check style it uses for users, so a
restart between waves does not drop the retry.
Wave due times count from the start of the tick that scheduled them, so the
next waves line up with tick boundaries however long the pass itself took.
"""

from __future__ import annotations

import logging
import random
import time
import uuid
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

from app.config import OrchestrationSettings
from app.domain.scraping import JobOutcome, PassReport, ScrapeJob, ScrapeResult, WaveReport
from app.scraping.clock import Clock, utcnow
from app.scraping.errors import ScrapeError, TransientScrapeError, coerce_error
from app.scraping.logging_utils import log_event
from db.repositories.retry_wave_repository import RetryWaveRepository
from db.session import SessionFactory, session_scope

logger = logging.getLogger(__name__)

ScrapeOperation = Callable[[ScrapeJob], ScrapeResult]


class RetryDriver:
    """
    Drives Scrape Operations to a boolean outcome.

    ``sleep`` takes seconds and ``jitter`` returns milliseconds; both are
    injectable so callers can run the driver without wall-clock waits.
    """

    def __init__(
        self,
        *,
        operation: ScrapeOperation,
        session_factory: SessionFactory,
        settings: OrchestrationSettings,
        clock: Clock = utcnow,
        sleep: Callable[[float], None] = time.sleep,
        jitter: Callable[[], float] | None = None,
    ) -> None:
        self._operation = operation
        self._session_factory = session_factory
        self._settings = settings
        self._clock = clock
        self._sleep = sleep
        self._jitter = jitter or (lambda: random.uniform(0, settings.jitter_max_ms))

    # ------------------------------------------------------------------
    # Immediate retries
    # ------------------------------------------------------------------

    def attempt(self, job: ScrapeJob) -> ScrapeError | None:
        """
        One Scrape Operation call. Returns ``None`` on a complete success,
        otherwise the classified error.
        """

        try:
            result = self._operation(job)
        except Exception as exc:  # noqa: BLE001
            return coerce_error(exc)

        if not result.success:
            return result.error or ScrapeError("scraper returned failure")
        if result.data is None or not result.data.is_complete:
            missing = result.data.missing_fields() if result.data is not None else ["length", "availability"]
            return TransientScrapeError(f"incomplete scrape: missing {', '.join(missing)}")
        return None

    def run_job(self, job: ScrapeJob, *, base_delay_ms: int) -> JobOutcome:
        retries = max(1, self._settings.retries)
        error: ScrapeError | None = None
        attempt = 0

        while attempt < retries:
            attempt += 1
            error = self.attempt(job)
            if error is None:
                return JobOutcome(job=job, ok=True, attempts=attempt)
            if not error.transient or attempt >= retries:
                break
            delay_ms = base_delay_ms * attempt + self._jitter()
            log_event(
                logger,
                logging.DEBUG,
                "scrape_retry_scheduled",
                item_id=job.item_id,
                attempt=attempt,
                delay_ms=round(delay_ms),
                error=error.message,
            )
            self._sleep(delay_ms / 1000.0)

        message = error.message if error is not None else "unknown error"
        return JobOutcome(job=job, ok=False, attempts=attempt, error=message)

    def run_jobs(
        self,
        user_id: uuid.UUID,
        jobs: Sequence[ScrapeJob],
        *,
        base_delay_ms: int,
    ) -> PassReport:
        """
        Process jobs strictly one after another and collect the failures.
        """

        failed: list[ScrapeJob] = []
        for job in jobs:
            outcome = self.run_job(job, base_delay_ms=base_delay_ms)
            if outcome.ok:
                log_event(
                    logger,
                    logging.INFO,
                    "scrape_job_succeeded",
                    user_id=user_id,
                    item_id=job.item_id,
                    country_market=job.country_market,
                    attempts=outcome.attempts,
                )
                continue
            failed.append(job)
            log_event(
                logger,
                logging.WARNING,
                "scrape_job_failed",
                user_id=user_id,
                item_id=job.item_id,
                country_market=job.country_market,
                attempts=outcome.attempts,
                error=outcome.error,
            )
        return PassReport(user_id=user_id, attempted=len(jobs), failed=failed)

    # ------------------------------------------------------------------
    # Main pass + escalation
    # ------------------------------------------------------------------

    def run_main_pass(
        self,
        user_id: uuid.UUID,
        jobs: Sequence[ScrapeJob],
        *,
        started_at: datetime | None = None,
    ) -> PassReport:
        """
        ``started_at`` is the start of the tick running this pass; wave 1 is
        due T1 after it so a slow pass does not push the wave past the next
        tick.
        """

        report = self.run_jobs(user_id, jobs, base_delay_ms=self._settings.main_base_delay_ms)
        if report.failed:
            self.escalate(user_id, report.failed, started_at=started_at)
        return report

    def escalate(
        self,
        user_id: uuid.UUID,
        failed: Sequence[ScrapeJob],
        *,
        started_at: datetime | None = None,
    ) -> None:
        """
        Schedule wave 1 for the failed subset, replacing any pending wave.
        """

        due_at = (started_at or self._clock()) + timedelta(seconds=self._settings.wave1_delay_seconds)
        with session_scope(self._session_factory) as session:
            RetryWaveRepository(session).replace(
                user_id=user_id,
                jobs=[job.to_payload() for job in failed],
                due_at=due_at,
                wave=1,
            )
        log_event(
            logger,
            logging.INFO,
            "retry_wave_scheduled",
            user_id=user_id,
            wave=1,
            jobs=len(failed),
            due_at=due_at.isoformat(),
        )

    # ------------------------------------------------------------------
    # Delayed waves
    # ------------------------------------------------------------------

    def process_due_waves(self, *, started_at: datetime | None = None) -> list[WaveReport]:
        cutoff = self._clock() + timedelta(seconds=self._settings.wave_due_slack_seconds)
        with session_scope(self._session_factory) as session:
            due = [
                (row.user_id, row.wave, list(row.jobs or []))
                for row in RetryWaveRepository(session).list_due(cutoff)
            ]

        reports: list[WaveReport] = []
        for user_id, wave, payloads in due:
            jobs = [ScrapeJob.from_payload(user_id, payload) for payload in payloads]
            try:
                reports.append(self.run_wave(user_id, wave, jobs, started_at=started_at))
            except Exception as exc:  # noqa: BLE001
                logger.warning("Retry wave %s failed user=%s: %s", wave, user_id, exc)
        return reports

    def run_wave(
        self,
        user_id: uuid.UUID,
        wave: int,
        jobs: Sequence[ScrapeJob],
        *,
        started_at: datetime | None = None,
    ) -> WaveReport:
        log_event(logger, logging.INFO, "retry_wave_started", user_id=user_id, wave=wave, jobs=len(jobs))
        report = self.run_jobs(user_id, jobs, base_delay_ms=self._settings.wave_base_delay_ms)

        next_wave: int | None = None
        with session_scope(self._session_factory) as session:
            repository = RetryWaveRepository(session)
            if report.failed and wave == 1:
                next_wave = 2
                repository.replace(
                    user_id=user_id,
                    jobs=[job.to_payload() for job in report.failed],
                    due_at=(started_at or self._clock()) + timedelta(seconds=self._settings.wave2_delay_seconds),
                    wave=next_wave,
                )
            else:
                repository.clear(user_id)

        if report.failed and next_wave is None:
            log_event(
                logger,
                logging.WARNING,
                "retry_waves_exhausted",
                user_id=user_id,
                items=[job.item_id for job in report.failed],
            )
        return WaveReport(
            user_id=user_id,
            wave=wave,
            attempted=report.attempted,
            remaining=len(report.failed),
            next_wave=next_wave,
        )
