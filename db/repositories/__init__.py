"""
Repository layer exports.
"""

from db.repositories.credential_repository import CredentialRepository
from db.repositories.monitored_item_repository import MonitoredItemRepository
from db.repositories.retry_wave_repository import RetryWaveRepository
from db.repositories.scrape_log_repository import ScrapeLogRepository
from db.repositories.scrape_settings_repository import ScrapeSettingsRepository

__all__ = [
    "CredentialRepository",
    "MonitoredItemRepository",
    "RetryWaveRepository",
    "ScrapeLogRepository",
    "ScrapeSettingsRepository",
]
