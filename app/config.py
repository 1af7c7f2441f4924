"""
app/config.py

Application-level configuration helpers.

Every timing constant of the orchestration core is read from the
environment so cadence, retry and credit policy can be tuned without a
rebuild.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class OrchestrationSettings:
    """
    Scheduler cadence and retry policy.

    ``hourly_early_tolerance`` and ``daily_min_gap_hours`` are tuned for a
    5-minute tick; re-derive them when ``tick_minutes`` changes.
    """

    enabled: bool = True
    tick_minutes: int = 5
    retries: int = 3
    main_base_delay_ms: int = 900
    wave_base_delay_ms: int = 1200
    jitter_max_ms: int = 300
    wave1_delay_seconds: float = 300.0
    wave2_delay_seconds: float = 300.0
    wave_due_slack_seconds: float = 30.0
    hourly_early_tolerance: float = 0.05
    daily_min_gap_hours: float = 23.0


@dataclass(frozen=True)
class CredentialPoolSettings:
    """
    Credit bookkeeping and reset policy for metered scraping credentials.

    A credential that was served a bot-check page sits out
    ``cooldown_seconds`` plus up to ``cooldown_jitter_seconds``.
    """

    service_name: str = "scraperapi"
    default_cost_per_call: int = 5
    reset_period_days: int = 30
    reset_hour_utc: int = 0
    cooldown_seconds: float = 90.0
    cooldown_jitter_seconds: float = 30.0


@dataclass(frozen=True)
class ScrapeEndpointSettings:
    """
    Upstream scrape endpoint invoked once per attempt.
    """

    url: str | None = None
    auth_token: str | None = None
    timeout_seconds: float = 60.0
    length_field: str = "page_count"
    availability_field: str = "publication_date"


@lru_cache(maxsize=1)
def get_orchestration_settings() -> OrchestrationSettings:
    """
    Return cached scheduler/retry settings from environment variables.
    """

    return OrchestrationSettings(
        enabled=_get_bool_env("SCRAPE_SCHEDULER_ENABLED", True),
        tick_minutes=max(1, _get_int_env("SCRAPE_TICK_MINUTES", 5)),
        retries=max(1, _get_int_env("SCRAPE_RETRIES", 3)),
        main_base_delay_ms=max(0, _get_int_env("SCRAPE_MAIN_BASE_DELAY_MS", 900)),
        wave_base_delay_ms=max(0, _get_int_env("SCRAPE_WAVE_BASE_DELAY_MS", 1200)),
        jitter_max_ms=max(0, _get_int_env("SCRAPE_JITTER_MAX_MS", 300)),
        wave1_delay_seconds=max(0.0, _get_float_env("SCRAPE_WAVE1_DELAY_SECONDS", 300.0)),
        wave2_delay_seconds=max(0.0, _get_float_env("SCRAPE_WAVE2_DELAY_SECONDS", 300.0)),
        wave_due_slack_seconds=max(0.0, _get_float_env("SCRAPE_WAVE_DUE_SLACK_SECONDS", 30.0)),
        hourly_early_tolerance=min(
            0.5,
            max(0.0, _get_float_env("SCRAPE_HOURLY_EARLY_TOLERANCE", 0.05)),
        ),
        daily_min_gap_hours=max(0.0, _get_float_env("SCRAPE_DAILY_MIN_GAP_HOURS", 23.0)),
    )


@lru_cache(maxsize=1)
def get_credential_pool_settings() -> CredentialPoolSettings:
    """
    Return cached credential pool settings from environment variables.
    """

    return CredentialPoolSettings(
        service_name=_get_str_env("CREDENTIAL_SERVICE_NAME", "scraperapi"),
        default_cost_per_call=max(1, _get_int_env("CREDENTIAL_DEFAULT_COST_PER_CALL", 5)),
        reset_period_days=max(1, _get_int_env("CREDENTIAL_RESET_PERIOD_DAYS", 30)),
        reset_hour_utc=min(23, max(0, _get_int_env("CREDENTIAL_RESET_HOUR_UTC", 0))),
        cooldown_seconds=max(0.0, _get_float_env("CREDENTIAL_COOLDOWN_SECONDS", 90.0)),
        cooldown_jitter_seconds=max(0.0, _get_float_env("CREDENTIAL_COOLDOWN_JITTER_SECONDS", 30.0)),
    )


@lru_cache(maxsize=1)
def get_scrape_endpoint_settings() -> ScrapeEndpointSettings:
    """
    Return cached scrape endpoint settings from environment variables.
    """

    return ScrapeEndpointSettings(
        url=_get_optional_str_env("SCRAPE_ENDPOINT_URL"),
        auth_token=_get_optional_str_env("SCRAPE_ENDPOINT_TOKEN"),
        timeout_seconds=max(1.0, _get_float_env("SCRAPE_ENDPOINT_TIMEOUT_SECONDS", 60.0)),
        length_field=_get_str_env("SCRAPE_LENGTH_FIELD", "page_count"),
        availability_field=_get_str_env("SCRAPE_AVAILABILITY_FIELD", "publication_date"),
    )
