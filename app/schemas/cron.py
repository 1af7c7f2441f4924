"""
app/schemas/cron.py

Response schemas for operator cron endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class CredentialResetResponse(BaseModel):
    ok: bool
    reset_count: int = Field(..., ge=0)


class SchedulerStatusResponse(BaseModel):
    """
    Current state of the single-flight tick guard.
    """

    state: str
    tick_id: str | None = None
    trigger: str | None = None
    started_at: str | None = None
