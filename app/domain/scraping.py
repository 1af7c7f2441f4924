"""
app/domain/scraping.py

Domain models for scrape orchestration: jobs, operation results and the
summaries produced by a pass, a retry wave and a scheduler tick.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

from app.scraping.errors import ScrapeError


@dataclass(frozen=True)
class ScrapeJob:
    """
    One item refresh for one user. Ephemeral; never persisted as-is.
    """

    user_id: uuid.UUID
    item_id: str
    country_market: str = "com"

    def to_payload(self) -> dict[str, str]:
        return {"item_id": self.item_id, "country_market": self.country_market}

    @classmethod
    def from_payload(cls, user_id: uuid.UUID, payload: dict[str, Any]) -> "ScrapeJob":
        return cls(
            user_id=user_id,
            item_id=str(payload["item_id"]),
            country_market=str(payload.get("country_market") or "com"),
        )


@dataclass(frozen=True)
class ScrapePayload:
    """
    Structured record returned by one successful fetch.

    ``length`` is the page/length field and ``availability`` the
    publication/availability field; both are required for a complete scrape.
    """

    length: int | None
    availability: str | None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return (
            self.length is not None
            and self.length > 0
            and bool(self.availability and str(self.availability).strip())
        )

    def missing_fields(self) -> list[str]:
        missing: list[str] = []
        if self.length is None or self.length <= 0:
            missing.append("length")
        if not (self.availability and str(self.availability).strip()):
            missing.append("availability")
        return missing


@dataclass(frozen=True)
class ScrapeResult:
    """
    Outcome of one Scrape Operation invocation: ``{success, data?, error?}``.
    """

    success: bool
    data: ScrapePayload | None = None
    error: ScrapeError | None = None
    credential_id: uuid.UUID | None = None

    @classmethod
    def ok(cls, data: ScrapePayload, *, credential_id: uuid.UUID | None = None) -> "ScrapeResult":
        return cls(success=True, data=data, credential_id=credential_id)

    @classmethod
    def failed(cls, error: ScrapeError, *, credential_id: uuid.UUID | None = None) -> "ScrapeResult":
        return cls(success=False, error=error, credential_id=credential_id)


@dataclass(frozen=True)
class JobOutcome:
    job: ScrapeJob
    ok: bool
    attempts: int
    error: str | None = None


@dataclass(frozen=True)
class PassReport:
    """
    Summary of one sequential pass over a user's jobs.
    """

    user_id: uuid.UUID
    attempted: int
    failed: list[ScrapeJob] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return self.attempted - len(self.failed)


@dataclass(frozen=True)
class WaveReport:
    user_id: uuid.UUID
    wave: int
    attempted: int
    remaining: int
    next_wave: int | None = None


@dataclass
class TickReport:
    """
    Summary of one scheduler tick. ``skipped`` ticks did no work because
    another tick held the guard.
    """

    trigger: str
    tick_id: str | None = None
    skipped: bool = False
    users_evaluated: int = 0
    users_dispatched: int = 0
    jobs_failed: int = 0
    waves_processed: int = 0
    errors: list[str] = field(default_factory=list)
