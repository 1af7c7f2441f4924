"""
Scrape Operation boundary: one blocking network round trip per call.

Fetchers never retry; all retry policy lives in the retry driver and all
credential rotation lives in the credential pool.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import requests

from app.config import ScrapeEndpointSettings
from app.domain.scraping import ScrapeJob, ScrapePayload
from app.scraping.errors import (
    PermanentScrapeError,
    QuotaExceededError,
    ScrapeError,
    TransientScrapeError,
)


TRANSIENT_STATUS_CODES = {403, 408, 425, 429, 500, 502, 503, 504}
QUOTA_STATUS_CODES = {401, 402}


class ScrapeFetcher(ABC):
    """
    Performs a single fetch for one job with one credential secret.
    """

    @abstractmethod
    def fetch(self, job: ScrapeJob, *, api_key: str) -> ScrapePayload:
        """
        Return the structured record or raise ``ScrapeError``.
        """


def _to_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        return None
    return number


class HTTPScrapeFetcher(ScrapeFetcher):
    """
    Invokes the upstream scrape endpoint, which answers
    ``{"success": bool, "data": {...}, "error": str}``.
    """

    def __init__(
        self,
        *,
        settings: ScrapeEndpointSettings,
        session: requests.Session | None = None,
    ) -> None:
        if not settings.url:
            raise ValueError("SCRAPE_ENDPOINT_URL is not configured.")
        self._settings = settings
        self._session = session or requests.Session()

    def fetch(self, job: ScrapeJob, *, api_key: str) -> ScrapePayload:
        headers = {"Content-Type": "application/json"}
        if self._settings.auth_token:
            headers["Authorization"] = f"Bearer {self._settings.auth_token}"
        body = {
            "userId": str(job.user_id),
            "asin": job.item_id,
            "country": job.country_market,
            "apiKey": api_key,
        }

        try:
            response = self._session.post(
                self._settings.url,
                json=body,
                headers=headers,
                timeout=self._settings.timeout_seconds,
            )
        except requests.Timeout as exc:
            raise TransientScrapeError(f"timeout calling scrape endpoint: {exc}") from exc
        except requests.ConnectionError as exc:
            raise TransientScrapeError(f"scrape endpoint temporarily unreachable: {exc}") from exc

        document = self._decode(response)
        if response.status_code in QUOTA_STATUS_CODES:
            raise QuotaExceededError(
                f"scrape endpoint HTTP {response.status_code}: {document.get('error') or 'credit limit'}"
            )
        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientScrapeError(
                f"scrape endpoint HTTP {response.status_code}: {document.get('error') or response.reason}"
            )

        if document.get("success") is not True:
            message = document.get("error") or f"scraper returned failure (HTTP {response.status_code})"
            raise ScrapeError(str(message))
        if response.status_code >= 400:
            raise PermanentScrapeError(f"scrape endpoint HTTP {response.status_code}")

        data = document.get("data") or {}
        if not isinstance(data, dict):
            raise PermanentScrapeError("scrape endpoint returned a non-object data field")
        availability = data.get(self._settings.availability_field)
        return ScrapePayload(
            length=_to_int(data.get(self._settings.length_field)),
            availability=str(availability) if availability not in (None, "") else None,
            raw=data,
        )

    @staticmethod
    def _decode(response: requests.Response) -> dict[str, Any]:
        try:
            document = response.json()
        except ValueError:
            return {}
        return document if isinstance(document, dict) else {}
