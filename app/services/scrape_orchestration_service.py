"""
app/services/scrape_orchestration_service.py

Wires the credential pool, retry driver and scheduler into one process-wide
service so the timer tick, the manual trigger and any other caller share
the same single-flight guard and credential pool.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable
from functools import lru_cache

from app.config import (
    CredentialPoolSettings,
    OrchestrationSettings,
    get_credential_pool_settings,
    get_orchestration_settings,
    get_scrape_endpoint_settings,
)
from app.domain.scraping import ScrapeJob, ScrapeResult, TickReport
from app.scraping.clock import Clock, utcnow
from app.scraping.credential_pool import CredentialPool
from app.scraping.fetcher import HTTPScrapeFetcher, ScrapeFetcher
from app.scraping.retry_driver import RetryDriver
from app.scraping.scheduler import TRIGGER_TIMER, ScrapeScheduler
from db.session import SessionFactory, SessionLocal


class ScrapeOrchestrationService:
    def __init__(
        self,
        *,
        session_factory: SessionFactory = SessionLocal,
        fetcher: ScrapeFetcher | None = None,
        orchestration: OrchestrationSettings | None = None,
        pool_settings: CredentialPoolSettings | None = None,
        clock: Clock = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = orchestration or get_orchestration_settings()
        self.pool = CredentialPool(
            session_factory=session_factory,
            fetcher=fetcher or HTTPScrapeFetcher(settings=get_scrape_endpoint_settings()),
            settings=pool_settings or get_credential_pool_settings(),
            clock=clock,
        )
        self.driver = RetryDriver(
            operation=self.pool.execute,
            session_factory=session_factory,
            settings=self.settings,
            clock=clock,
            sleep=sleep,
        )
        self.scheduler = ScrapeScheduler(
            session_factory=session_factory,
            driver=self.driver,
            settings=self.settings,
            clock=clock,
        )

    def run_tick(self, trigger: str = TRIGGER_TIMER) -> TickReport:
        return self.scheduler.run_tick(trigger)

    def reset_credentials(self) -> int:
        return self.pool.reset_due_credentials()

    def scrape_item(self, *, user_id: uuid.UUID, item_id: str, country_market: str = "com") -> ScrapeResult:
        """
        Single pooled Scrape Operation for callers outside the schedule
        (e.g. details enrichment). No retries, no waves.
        """

        return self.pool.execute(ScrapeJob(user_id=user_id, item_id=item_id, country_market=country_market))


@lru_cache(maxsize=1)
def get_scrape_orchestration_service() -> ScrapeOrchestrationService:
    """
    Build and cache the process-wide orchestration service.
    """

    return ScrapeOrchestrationService()
