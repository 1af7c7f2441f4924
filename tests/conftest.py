"""
tests/conftest.py

Shared fixtures: an in-memory SQLite store with the full ORM schema, a
controllable clock, a recording sleep and row factories.

No network and no PostgreSQL. Every wall-clock wait is replaced by the
recording sleep so retry tests run instantly.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

import db.models  # noqa: F401  registers every model on Base.metadata
from app.config import CredentialPoolSettings, OrchestrationSettings
from db.base import Base
from db.models import ApiCredential, CredentialStatus, MonitoredItem, ScrapeSettings
from db.session import SessionFactory, build_session_factory
from tests.fakes import NOW, FakeClock, RecordingSleep


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> SessionFactory:
    return build_session_factory(engine)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def orchestration_settings() -> OrchestrationSettings:
    return OrchestrationSettings(jitter_max_ms=0)


@pytest.fixture()
def pool_settings() -> CredentialPoolSettings:
    return CredentialPoolSettings()


@pytest.fixture()
def user_id() -> uuid.UUID:
    return uuid.UUID("11111111-1111-1111-1111-111111111111")


@pytest.fixture()
def add_credential(session_factory: SessionFactory) -> Callable[..., uuid.UUID]:
    """Insert one credential and return its id."""

    def _add(
        user_id: uuid.UUID,
        *,
        secret_key: str,
        credits: int = 1000,
        max_credits: int = 1000,
        status: str = CredentialStatus.ACTIVE,
        cost_per_call: int | None = None,
        created_at: datetime = NOW - timedelta(days=1),
        last_reset_at: datetime | None = None,
        service_name: str = "scraperapi",
        cooldown_until: datetime | None = None,
    ) -> uuid.UUID:
        credential_id = uuid.uuid4()
        with session_factory() as session:
            session.add(
                ApiCredential(
                    id=credential_id,
                    user_id=user_id,
                    service_name=service_name,
                    secret_key=secret_key,
                    status=status,
                    credits=credits,
                    max_credits=max_credits,
                    cost_per_call=cost_per_call,
                    created_at=created_at,
                    last_reset_at=last_reset_at,
                    cooldown_until=cooldown_until,
                )
            )
            session.commit()
        return credential_id

    return _add


@pytest.fixture()
def add_user(session_factory: SessionFactory) -> Callable[..., None]:
    """Insert a scrape_settings row plus its monitored items."""

    def _add(
        user_id: uuid.UUID,
        *,
        interval: str | None = "4",
        last_scrape_at: datetime | None = None,
        items: tuple[str, ...] = (),
        archived_items: tuple[str, ...] = (),
        fallback_api_key: str | None = None,
        created_at: datetime = NOW - timedelta(days=30),
    ) -> None:
        with session_factory() as session:
            session.add(
                ScrapeSettings(
                    user_id=user_id,
                    scraping_interval=interval,
                    last_scrape_at=last_scrape_at,
                    fallback_api_key=fallback_api_key,
                    created_at=created_at,
                    updated_at=created_at,
                )
            )
            for offset, item_id in enumerate(items + archived_items):
                stamp = created_at + timedelta(minutes=offset)
                session.add(
                    MonitoredItem(
                        user_id=user_id,
                        item_id=item_id,
                        country_market="com",
                        archived=item_id in archived_items,
                        created_at=stamp,
                        updated_at=stamp,
                    )
                )
            session.commit()

    return _add


@pytest.fixture()
def get_credential(session_factory: SessionFactory) -> Callable[[uuid.UUID], ApiCredential]:
    def _get(credential_id: uuid.UUID) -> ApiCredential:
        with session_factory() as session:
            credential = session.get(ApiCredential, credential_id)
            assert credential is not None
            session.expunge(credential)
            return credential

    return _get
