"""
Repository for metered scraping credentials.

Balance and status changes are single conditional UPDATE statements so
concurrent callers sharing one credential never drive ``credits`` below zero
and never lose a counter increment.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import and_, case, or_, select, update
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from db.models.api_credential import ApiCredential, CredentialStatus


def _reset_due_clause(threshold: datetime) -> ColumnElement[bool]:
    return or_(
        ApiCredential.last_reset_at <= threshold,
        and_(
            ApiCredential.last_reset_at.is_(None),
            ApiCredential.created_at <= threshold,
        ),
    )


def _reset_values(now: datetime) -> dict:
    return {
        "credits": ApiCredential.max_credits,
        "last_reset_at": now,
        "cooldown_until": None,
        # Exhausted credentials come back; disabled ones stay disabled.
        "status": case(
            (ApiCredential.status == CredentialStatus.EXHAUSTED, CredentialStatus.ACTIVE),
            else_=ApiCredential.status,
        ),
    }


class CredentialRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, credential_id: uuid.UUID) -> ApiCredential | None:
        return self._session.get(ApiCredential, credential_id)

    def list_candidates(self, *, user_id: uuid.UUID, service_name: str) -> list[ApiCredential]:
        """
        All credentials of one user and service, highest balance first.
        """

        stmt = (
            select(ApiCredential)
            .where(
                ApiCredential.user_id == user_id,
                ApiCredential.service_name == service_name,
            )
            .order_by(ApiCredential.credits.desc(), ApiCredential.created_at, ApiCredential.id)
        )
        return list(self._session.scalars(stmt).all())

    def reset_if_due(self, *, credential_id: uuid.UUID, threshold: datetime, now: datetime) -> bool:
        """
        Opportunistic per-call reset: only when due and below ``max_credits``.
        """

        result = self._session.execute(
            update(ApiCredential)
            .where(
                ApiCredential.id == credential_id,
                _reset_due_clause(threshold),
                ApiCredential.credits < ApiCredential.max_credits,
            )
            .values(**_reset_values(now))
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    def reset_due(self, *, threshold: datetime, now: datetime) -> int:
        """
        Batch reset sweep. Idempotent: reset rows get ``last_reset_at = now``
        and no longer match the due clause.
        """

        result = self._session.execute(
            update(ApiCredential)
            .where(_reset_due_clause(threshold))
            .values(**_reset_values(now))
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)

    def record_success(self, *, credential_id: uuid.UUID, cost: int, now: datetime) -> int | None:
        """
        Debit ``cost`` (floored at zero) and bump success counters atomically.
        Returns the new balance.
        """

        cost = max(1, cost)
        self._session.execute(
            update(ApiCredential)
            .where(ApiCredential.id == credential_id)
            .values(
                credits=case(
                    (ApiCredential.credits >= cost, ApiCredential.credits - cost),
                    else_=0,
                ),
                success_count=ApiCredential.success_count + 1,
                last_used_at=now,
                last_success_at=now,
                cooldown_until=None,
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.scalar(
            select(ApiCredential.credits).where(ApiCredential.id == credential_id)
        )

    def record_failure(
        self,
        *,
        credential_id: uuid.UUID,
        cost: int,
        quota: bool,
        now: datetime,
        cooldown_until: datetime | None = None,
    ) -> str | None:
        """
        Count a failed call without touching the balance. A quota-shaped
        failure on a credential that can no longer pay for a call marks it
        exhausted. ``cooldown_until`` is written only when given, so an
        unrelated failure never shortens a running cooldown. Returns the
        resulting status.
        """

        values: dict = {
            "failure_count": ApiCredential.failure_count + 1,
            "last_used_at": now,
        }
        if cooldown_until is not None:
            values["cooldown_until"] = cooldown_until
        if quota:
            values["status"] = case(
                (
                    and_(
                        ApiCredential.status == CredentialStatus.ACTIVE,
                        ApiCredential.credits < max(1, cost),
                    ),
                    CredentialStatus.EXHAUSTED,
                ),
                else_=ApiCredential.status,
            )
        self._session.execute(
            update(ApiCredential)
            .where(ApiCredential.id == credential_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return self._session.scalar(
            select(ApiCredential.status).where(ApiCredential.id == credential_id)
        )
