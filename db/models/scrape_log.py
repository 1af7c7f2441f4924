"""
db/models/scrape_log.py

Append-only audit trail, one row per credential attempt.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class ScrapeLogStatus:
    SUCCESS = "success"
    FAILURE = "failure"


class ScrapeLogEntry(Base, TimestampMixin):
    __tablename__ = "scrape_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    credential_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        comment="NULL when the account-level fallback key was used",
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
    )
    item_id: Mapped[str] = mapped_column(String(32), nullable=False)
    country_market: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="success, failure",
    )
    cost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_scrape_logs_credential_id", "credential_id"),
        Index("ix_scrape_logs_user_id_created_at", "user_id", "created_at"),
    )
