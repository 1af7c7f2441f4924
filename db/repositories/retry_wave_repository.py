"""
Repository for durable delayed-retry waves.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.retry_wave import RetryWave


class RetryWaveRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, user_id: uuid.UUID) -> RetryWave | None:
        return self._session.get(RetryWave, user_id)

    def replace(
        self,
        *,
        user_id: uuid.UUID,
        jobs: Sequence[dict[str, Any]],
        due_at: datetime,
        wave: int = 1,
    ) -> RetryWave:
        """
        Install a new wave for the user, cancelling any pending one.
        """

        row = self.get(user_id)
        if row is None:
            row = RetryWave(user_id=user_id, wave=wave, due_at=due_at, jobs=list(jobs))
            self._session.add(row)
        else:
            row.wave = wave
            row.due_at = due_at
            row.jobs = list(jobs)
        self._session.flush()
        return row

    def list_due(self, cutoff: datetime) -> list[RetryWave]:
        stmt = (
            select(RetryWave)
            .where(RetryWave.due_at <= cutoff)
            .order_by(RetryWave.due_at, RetryWave.user_id)
        )
        return list(self._session.scalars(stmt).all())

    def clear(self, user_id: uuid.UUID) -> bool:
        row = self.get(user_id)
        if row is None:
            return False
        self._session.delete(row)
        self._session.flush()
        return True
