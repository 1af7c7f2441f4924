"""
Repository for per-user scrape schedule configuration.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from db.models.scrape_settings import ScrapeSettings


class ScrapeSettingsRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def list_settings(self) -> list[ScrapeSettings]:
        stmt = select(ScrapeSettings).order_by(ScrapeSettings.created_at, ScrapeSettings.user_id)
        return list(self._session.scalars(stmt).all())

    def get(self, user_id: uuid.UUID) -> ScrapeSettings | None:
        return self._session.get(ScrapeSettings, user_id)

    def get_fallback_api_key(self, user_id: uuid.UUID) -> str | None:
        stmt = select(ScrapeSettings.fallback_api_key).where(ScrapeSettings.user_id == user_id)
        value = self._session.scalar(stmt)
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None

    def stamp_last_scrape(self, *, user_id: uuid.UUID, at: datetime) -> bool:
        result = self._session.execute(
            update(ScrapeSettings)
            .where(ScrapeSettings.user_id == user_id)
            .values(last_scrape_at=at)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)
