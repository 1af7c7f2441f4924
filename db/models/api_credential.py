"""
db/models/api_credential.py

Metered third-party scraping credentials with a consumable credit balance.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, UTCDateTime


class CredentialStatus:
    ACTIVE = "active"
    EXHAUSTED = "exhausted"
    DISABLED = "disabled"


class ApiCredential(Base):
    """
    A credential is created out-of-band when the user provisions it and is
    never deleted by the orchestration core.

    ``credits`` only decreases on a successful call and only increases on a
    reset back to ``max_credits``.
    """

    __tablename__ = "api_credentials"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
    )
    service_name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="scraperapi",
    )
    secret_key: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=CredentialStatus.ACTIVE,
        comment="active, exhausted, disabled",
    )
    credits: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    max_credits: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1000,
    )
    cost_per_call: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    success_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    failure_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=func.now(),
    )
    last_reset_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime,
        nullable=True,
    )
    last_used_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime,
        nullable=True,
    )
    last_success_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime,
        nullable=True,
    )
    cooldown_until: Mapped[datetime | None] = mapped_column(
        UTCDateTime,
        nullable=True,
        comment="skipped by selection until this instant",
    )

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_api_credentials_credits_non_negative"),
        Index("ix_api_credentials_user_service", "user_id", "service_name"),
        Index("ix_api_credentials_last_reset_at", "last_reset_at"),
    )

    def __repr__(self) -> str:
        return f"<ApiCredential id={self.id} status={self.status!r} credits={self.credits}/{self.max_credits}>"
