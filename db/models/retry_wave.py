"""
db/models/retry_wave.py

Durable delayed-retry state: at most one pending wave per user.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import CheckConstraint, Index, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONType, TimestampMixin, UTCDateTime


class RetryWave(Base, TimestampMixin):
    """
    Replacing a user's row cancels whatever wave was pending for that user.
    ``jobs`` holds ``{"item_id": ..., "country_market": ...}`` entries.
    """

    __tablename__ = "scrape_retry_waves"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
    )
    wave: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
    )
    due_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
    )
    jobs: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
    )

    __table_args__ = (
        CheckConstraint("wave IN (1, 2)", name="ck_scrape_retry_waves_wave"),
        Index("ix_scrape_retry_waves_due_at", "due_at"),
    )

    def __repr__(self) -> str:
        return f"<RetryWave user_id={self.user_id} wave={self.wave} due_at={self.due_at} jobs={len(self.jobs)}>"
