"""
Append-only writer for the per-attempt scrape audit log.
"""

from __future__ import annotations

import uuid

from sqlalchemy.orm import Session

from db.models.scrape_log import ScrapeLogEntry


class ScrapeLogRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def append(
        self,
        *,
        credential_id: uuid.UUID | None,
        user_id: uuid.UUID,
        item_id: str,
        country_market: str,
        status: str,
        cost: int,
        error_message: str | None = None,
    ) -> ScrapeLogEntry:
        entry = ScrapeLogEntry(
            credential_id=credential_id,
            user_id=user_id,
            item_id=item_id,
            country_market=country_market,
            status=status,
            cost=max(0, cost),
            error_message=error_message,
        )
        self._session.add(entry)
        self._session.flush()
        return entry
