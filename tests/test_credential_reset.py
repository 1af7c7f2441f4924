"""
tests/test_credential_reset.py

Periodic credential reset sweep.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from app.config import CredentialPoolSettings
from app.scraping.credential_pool import CredentialPool
from db.models import CredentialStatus
from tests.fakes import NOW, ScriptedFetcher


@pytest.fixture()
def pool(session_factory, pool_settings, clock) -> CredentialPool:
    return CredentialPool(
        session_factory=session_factory,
        fetcher=ScriptedFetcher(),
        settings=pool_settings,
        clock=clock,
    )


def test_resets_due_credentials_only(pool, add_credential, get_credential, user_id) -> None:
    due = add_credential(
        user_id,
        secret_key="due",
        credits=12,
        status=CredentialStatus.EXHAUSTED,
        created_at=NOW - timedelta(days=90),
        last_reset_at=NOW - timedelta(days=30, minutes=1),
    )
    fresh = add_credential(
        user_id,
        secret_key="fresh",
        credits=12,
        created_at=NOW - timedelta(days=90),
        last_reset_at=NOW - timedelta(days=3),
    )
    never_reset = add_credential(
        user_id,
        secret_key="never",
        credits=400,
        created_at=NOW - timedelta(days=31),
    )

    assert pool.reset_due_credentials() == 2

    reset = get_credential(due)
    assert reset.credits == 1000
    assert reset.status == CredentialStatus.ACTIVE
    assert reset.last_reset_at.replace(tzinfo=None) == NOW.replace(tzinfo=None)
    assert get_credential(fresh).credits == 12
    assert get_credential(never_reset).credits == 1000


def test_sweep_is_idempotent(pool, add_credential, get_credential, user_id) -> None:
    credential_id = add_credential(
        user_id,
        secret_key="k",
        credits=0,
        created_at=NOW - timedelta(days=45),
    )

    assert pool.reset_due_credentials() == 1
    assert pool.reset_due_credentials() == 0
    assert get_credential(credential_id).credits == 1000


def test_next_reset_counts_from_last_reset(pool, add_credential, get_credential, clock, user_id) -> None:
    credential_id = add_credential(user_id, secret_key="k", credits=0, created_at=NOW - timedelta(days=45))
    pool.reset_due_credentials()

    clock.advance(days=29)
    assert pool.reset_due_credentials() == 0

    clock.advance(days=1)
    assert pool.reset_due_credentials() == 1
    assert get_credential(credential_id).last_reset_at.replace(tzinfo=None) == clock.now.replace(tzinfo=None)


def test_disabled_credentials_keep_their_status(pool, add_credential, get_credential, user_id) -> None:
    credential_id = add_credential(
        user_id,
        secret_key="k",
        credits=0,
        status=CredentialStatus.DISABLED,
        created_at=NOW - timedelta(days=45),
    )

    pool.reset_due_credentials()

    credential = get_credential(credential_id)
    assert credential.status == CredentialStatus.DISABLED
    assert credential.credits == 1000


def test_reset_period_is_configurable(session_factory, clock, add_credential, user_id) -> None:
    add_credential(user_id, secret_key="k", credits=0, created_at=NOW - timedelta(days=8))
    pool = CredentialPool(
        session_factory=session_factory,
        fetcher=ScriptedFetcher(),
        settings=CredentialPoolSettings(reset_period_days=7),
        clock=clock,
    )

    assert pool.reset_due_credentials() == 1


def test_sweep_clears_cooldown(pool, add_credential, get_credential, user_id) -> None:
    credential_id = add_credential(
        user_id,
        secret_key="k",
        credits=0,
        created_at=NOW - timedelta(days=31),
        cooldown_until=NOW + timedelta(minutes=2),
    )

    pool.reset_due_credentials()

    assert get_credential(credential_id).cooldown_until is None
