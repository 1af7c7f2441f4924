"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.api_credential import ApiCredential, CredentialStatus
from db.models.monitored_item import MonitoredItem
from db.models.retry_wave import RetryWave
from db.models.scrape_log import ScrapeLogEntry, ScrapeLogStatus
from db.models.scrape_settings import ScrapeSettings

__all__ = [
    "ApiCredential",
    "CredentialStatus",
    "MonitoredItem",
    "RetryWave",
    "ScrapeLogEntry",
    "ScrapeLogStatus",
    "ScrapeSettings",
]
