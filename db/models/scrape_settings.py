"""
db/models/scrape_settings.py

Per-user scrape schedule configuration.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin, UTCDateTime


class ScrapeSettings(Base, TimestampMixin):
    """
    One row per user. The scheduler reads every row on each tick and only
    ever writes ``last_scrape_at``.
    """

    __tablename__ = "scrape_settings"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
    )
    scraping_interval: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
        comment="'N' for N runs per day, 'daily_at_H' for a fixed UTC hour, 'off' to disable",
    )
    last_scrape_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime,
        nullable=True,
    )
    scraping_start_hour: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Informational only; not used by the due check",
    )
    fallback_api_key: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Account-level legacy credential used when no pooled credential is usable",
    )

    def __repr__(self) -> str:
        return (
            f"<ScrapeSettings user_id={self.user_id} "
            f"interval={self.scraping_interval!r} last_scrape_at={self.last_scrape_at}>"
        )
