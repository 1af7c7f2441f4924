"""
Credential pool: selection, credit bookkeeping, failure classification and
periodic reset of metered scraping credentials.

The pool is shared by every caller that performs a Scrape Operation (the
scheduler's retry driver, enrichment jobs, manual refreshes). It keeps no
state of its own; every balance or status change is an atomic statement
against the store, committed before the next candidate is tried.
"""

from __future__ import annotations

import logging
import random
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.config import CredentialPoolSettings
from app.domain.scraping import ScrapeJob, ScrapePayload, ScrapeResult
from app.scraping.clock import Clock, as_utc, utcnow
from app.scraping.errors import NoUsableCredentialError, ScrapeError, coerce_error
from app.scraping.fetcher import ScrapeFetcher
from app.scraping.logging_utils import log_event
from db.models.api_credential import ApiCredential, CredentialStatus
from db.models.scrape_log import ScrapeLogStatus
from db.repositories.credential_repository import CredentialRepository
from db.repositories.scrape_log_repository import ScrapeLogRepository
from db.repositories.scrape_settings_repository import ScrapeSettingsRepository
from db.session import SessionFactory, session_scope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialCandidate:
    """
    Point-in-time view of one credential, detached from any session.
    """

    id: uuid.UUID
    secret_key: str
    status: str
    credits: int
    max_credits: int
    cost: int
    cooldown_until: datetime | None = None


class CredentialPool:
    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        fetcher: ScrapeFetcher,
        settings: CredentialPoolSettings,
        clock: Clock = utcnow,
        jitter: Callable[[], float] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._fetcher = fetcher
        self._settings = settings
        self._clock = clock
        # seconds
        self._jitter = jitter or (lambda: random.uniform(0, settings.cooldown_jitter_seconds))

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    def cost_for(self, cost_per_call: int | None) -> int:
        if cost_per_call is None:
            return max(1, self._settings.default_cost_per_call)
        return max(1, int(cost_per_call))

    @staticmethod
    def is_cooling_down(candidate: CredentialCandidate, now: datetime) -> bool:
        return candidate.cooldown_until is not None and as_utc(candidate.cooldown_until) > now

    @classmethod
    def is_usable(cls, candidate: CredentialCandidate, now: datetime | None = None) -> bool:
        if candidate.status != CredentialStatus.ACTIVE or candidate.credits < candidate.cost:
            return False
        return now is None or not cls.is_cooling_down(candidate, now)

    def cooldown_deadline(self, now: datetime) -> datetime:
        return now + timedelta(seconds=self._settings.cooldown_seconds + max(0.0, self._jitter()))

    def reset_threshold(self, now: datetime) -> datetime:
        return now - timedelta(days=self._settings.reset_period_days)

    def is_due_for_reset(self, credential: ApiCredential, now: datetime) -> bool:
        base = credential.last_reset_at or credential.created_at
        if base is None:
            return False
        return as_utc(base) <= self.reset_threshold(now)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def candidates(self, user_id: uuid.UUID) -> list[CredentialCandidate]:
        """
        All credentials for the user, highest balance first, after resetting
        any that are due and below ``max_credits``.
        """

        now = self._clock()
        threshold = self.reset_threshold(now)
        with session_scope(self._session_factory) as session:
            repository = CredentialRepository(session)
            rows = repository.list_candidates(user_id=user_id, service_name=self._settings.service_name)

            reset_ids = [
                row.id
                for row in rows
                if row.credits < row.max_credits and self.is_due_for_reset(row, now)
            ]
            for credential_id in reset_ids:
                if repository.reset_if_due(credential_id=credential_id, threshold=threshold, now=now):
                    log_event(
                        logger,
                        logging.INFO,
                        "credential_reset_on_use",
                        credential_id=credential_id,
                        user_id=user_id,
                    )
            if reset_ids:
                session.expire_all()
                rows = repository.list_candidates(user_id=user_id, service_name=self._settings.service_name)

            return [
                CredentialCandidate(
                    id=row.id,
                    secret_key=row.secret_key,
                    status=row.status,
                    credits=int(row.credits or 0),
                    max_credits=int(row.max_credits or 0),
                    cost=self.cost_for(row.cost_per_call),
                    cooldown_until=row.cooldown_until,
                )
                for row in rows
            ]

    # ------------------------------------------------------------------
    # Consumption
    # ------------------------------------------------------------------

    def execute(self, job: ScrapeJob) -> ScrapeResult:
        """
        Perform one Scrape Operation for ``job`` using the first usable
        credential that succeeds, then the account fallback key.
        """

        last_error: ScrapeError | None = None
        cooling_down = False
        now = self._clock()
        for candidate in self.candidates(job.user_id):
            if not self.is_usable(candidate):
                continue
            if self.is_cooling_down(candidate, now):
                cooling_down = True
                continue
            try:
                payload = self._fetcher.fetch(job, api_key=candidate.secret_key)
            except Exception as exc:  # noqa: BLE001
                last_error = coerce_error(exc)
                self.record_failure(candidate, job, last_error)
                continue
            self.record_success(candidate, job, payload)
            return ScrapeResult.ok(payload, credential_id=candidate.id)

        fallback_result = self._execute_with_fallback(job)
        if fallback_result is not None:
            if fallback_result.success:
                return fallback_result
            last_error = fallback_result.error

        error = NoUsableCredentialError(last_error, cooling_down=cooling_down)
        log_event(
            logger,
            logging.WARNING,
            "credential_pool_exhausted",
            user_id=job.user_id,
            item_id=job.item_id,
            country_market=job.country_market,
            error=error.message,
        )
        return ScrapeResult.failed(error)

    def _execute_with_fallback(self, job: ScrapeJob) -> ScrapeResult | None:
        with session_scope(self._session_factory) as session:
            api_key = ScrapeSettingsRepository(session).get_fallback_api_key(job.user_id)
        if api_key is None:
            return None

        try:
            payload = self._fetcher.fetch(job, api_key=api_key)
        except Exception as exc:  # noqa: BLE001
            error = coerce_error(exc)
            self._append_log(job, credential_id=None, status=ScrapeLogStatus.FAILURE, cost=0, error=error)
            log_event(
                logger,
                logging.WARNING,
                "fallback_credential_failed",
                user_id=job.user_id,
                item_id=job.item_id,
                error=error.message,
            )
            return ScrapeResult.failed(error)

        self._append_log(job, credential_id=None, status=ScrapeLogStatus.SUCCESS, cost=0)
        log_event(logger, logging.INFO, "fallback_credential_used", user_id=job.user_id, item_id=job.item_id)
        return ScrapeResult.ok(payload)

    def record_success(
        self,
        candidate: CredentialCandidate,
        job: ScrapeJob,
        payload: ScrapePayload | None = None,
    ) -> int | None:
        now = self._clock()
        with session_scope(self._session_factory) as session:
            balance = CredentialRepository(session).record_success(
                credential_id=candidate.id,
                cost=candidate.cost,
                now=now,
            )
            ScrapeLogRepository(session).append(
                credential_id=candidate.id,
                user_id=job.user_id,
                item_id=job.item_id,
                country_market=job.country_market,
                status=ScrapeLogStatus.SUCCESS,
                cost=candidate.cost,
            )
        log_event(
            logger,
            logging.INFO,
            "credential_debited",
            credential_id=candidate.id,
            item_id=job.item_id,
            cost=candidate.cost,
            balance=balance,
            complete=payload.is_complete if payload is not None else None,
        )
        return balance

    def record_failure(self, candidate: CredentialCandidate, job: ScrapeJob, error: ScrapeError) -> str | None:
        now = self._clock()
        cooldown_until = self.cooldown_deadline(now) if error.blocked else None
        with session_scope(self._session_factory) as session:
            status = CredentialRepository(session).record_failure(
                credential_id=candidate.id,
                cost=candidate.cost,
                quota=error.quota,
                now=now,
                cooldown_until=cooldown_until,
            )
            ScrapeLogRepository(session).append(
                credential_id=candidate.id,
                user_id=job.user_id,
                item_id=job.item_id,
                country_market=job.country_market,
                status=ScrapeLogStatus.FAILURE,
                cost=0,
                error_message=error.message,
            )
        level = logging.WARNING if status == CredentialStatus.EXHAUSTED else logging.INFO
        log_event(
            logger,
            level,
            "credential_call_failed",
            credential_id=candidate.id,
            item_id=job.item_id,
            kind=error.kind.value,
            status=status,
            cooldown_until=cooldown_until,
            error=error.message,
        )
        return status

    def _append_log(
        self,
        job: ScrapeJob,
        *,
        credential_id: uuid.UUID | None,
        status: str,
        cost: int,
        error: ScrapeError | None = None,
    ) -> None:
        with session_scope(self._session_factory) as session:
            ScrapeLogRepository(session).append(
                credential_id=credential_id,
                user_id=job.user_id,
                item_id=job.item_id,
                country_market=job.country_market,
                status=status,
                cost=cost,
                error_message=error.message if error is not None else None,
            )

    # ------------------------------------------------------------------
    # Reset sweep
    # ------------------------------------------------------------------

    def reset_due_credentials(self) -> int:
        """
        Reset every credential whose reset period has elapsed. Safe to run
        repeatedly; a second run in the same instant resets nothing.
        """

        now = self._clock()
        with session_scope(self._session_factory) as session:
            reset_count = CredentialRepository(session).reset_due(
                threshold=self.reset_threshold(now),
                now=now,
            )
        log_event(logger, logging.INFO, "credential_reset_sweep", reset_count=reset_count)
        return reset_count
