"""
tests/test_fetcher.py

HTTPScrapeFetcher request shape and response classification. The HTTP
session is a mock; nothing leaves the process.
"""

from __future__ import annotations

import uuid
from unittest.mock import MagicMock

import pytest
import requests

from app.config import ScrapeEndpointSettings
from app.domain.scraping import ScrapeJob
from app.scraping.errors import (
    PermanentScrapeError,
    QuotaExceededError,
    ScrapeError,
    TransientScrapeError,
)
from app.scraping.fetcher import HTTPScrapeFetcher

USER_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
JOB = ScrapeJob(user_id=USER_ID, item_id="B0TEST0001", country_market="co.uk")
SETTINGS = ScrapeEndpointSettings(
    url="https://scraper.example.test/functions/v1/scrape",
    auth_token="service-token",
    timeout_seconds=30.0,
)


def _response(status_code: int = 200, body: object = None, reason: str = "OK") -> MagicMock:
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.reason = reason
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


def _fetcher(response: MagicMock | None = None, *, side_effect: Exception | None = None) -> tuple[HTTPScrapeFetcher, MagicMock]:
    session = MagicMock(spec=requests.Session)
    if side_effect is not None:
        session.post.side_effect = side_effect
    else:
        session.post.return_value = response
    return HTTPScrapeFetcher(settings=SETTINGS, session=session), session


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


def test_requires_endpoint_url() -> None:
    with pytest.raises(ValueError):
        HTTPScrapeFetcher(settings=ScrapeEndpointSettings(url=None))


def test_posts_job_and_key() -> None:
    fetcher, session = _fetcher(
        _response(body={"success": True, "data": {"page_count": 320, "publication_date": "2023-01-09"}})
    )

    fetcher.fetch(JOB, api_key="secret-1")

    session.post.assert_called_once_with(
        SETTINGS.url,
        json={"userId": str(USER_ID), "asin": "B0TEST0001", "country": "co.uk", "apiKey": "secret-1"},
        headers={"Content-Type": "application/json", "Authorization": "Bearer service-token"},
        timeout=30.0,
    )


# ---------------------------------------------------------------------------
# Success
# ---------------------------------------------------------------------------


class TestSuccess:
    def test_maps_configured_fields(self) -> None:
        fetcher, _ = _fetcher(
            _response(body={"success": True, "data": {"page_count": "320", "publication_date": "2023-01-09"}})
        )

        payload = fetcher.fetch(JOB, api_key="k")

        assert payload.length == 320
        assert payload.availability == "2023-01-09"
        assert payload.is_complete is True
        assert payload.raw["page_count"] == "320"

    def test_missing_fields_yield_incomplete_payload(self) -> None:
        fetcher, _ = _fetcher(_response(body={"success": True, "data": {"title": "Some Book"}}))

        payload = fetcher.fetch(JOB, api_key="k")

        assert payload.is_complete is False
        assert payload.missing_fields() == ["length", "availability"]

    def test_non_numeric_length_is_dropped(self) -> None:
        fetcher, _ = _fetcher(
            _response(body={"success": True, "data": {"page_count": "n/a", "publication_date": "2023"}})
        )

        assert fetcher.fetch(JOB, api_key="k").length is None


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    def test_timeout_is_transient(self) -> None:
        fetcher, _ = _fetcher(side_effect=requests.Timeout("read timed out"))
        with pytest.raises(TransientScrapeError):
            fetcher.fetch(JOB, api_key="k")

    def test_connection_error_is_transient(self) -> None:
        fetcher, _ = _fetcher(side_effect=requests.ConnectionError("reset by peer"))
        with pytest.raises(TransientScrapeError):
            fetcher.fetch(JOB, api_key="k")

    @pytest.mark.parametrize("status_code", [403, 429, 503])
    def test_transient_status_codes(self, status_code: int) -> None:
        fetcher, _ = _fetcher(_response(status_code, body={"success": False}, reason="Busy"))
        with pytest.raises(TransientScrapeError) as excinfo:
            fetcher.fetch(JOB, api_key="k")
        assert str(status_code) in excinfo.value.message

    def test_payment_required_is_quota(self) -> None:
        fetcher, _ = _fetcher(_response(402, body={"success": False, "error": "credit limit exceeded"}))
        with pytest.raises(QuotaExceededError) as excinfo:
            fetcher.fetch(JOB, api_key="k")
        assert excinfo.value.quota is True

    def test_upstream_failure_message_is_classified(self) -> None:
        fetcher, _ = _fetcher(_response(200, body={"success": False, "error": "Step is still running"}))
        with pytest.raises(ScrapeError) as excinfo:
            fetcher.fetch(JOB, api_key="k")
        assert excinfo.value.transient is True

    def test_bot_check_page_is_blocked(self) -> None:
        fetcher, _ = _fetcher(
            _response(200, body={"success": False, "error": "ScraperAPI blocked content (captcha/robot)"})
        )
        with pytest.raises(ScrapeError) as excinfo:
            fetcher.fetch(JOB, api_key="k")
        assert excinfo.value.blocked is True
        assert excinfo.value.transient is True

    def test_upstream_failure_without_message(self) -> None:
        fetcher, _ = _fetcher(_response(200, body={"success": False}))
        with pytest.raises(ScrapeError) as excinfo:
            fetcher.fetch(JOB, api_key="k")
        assert excinfo.value.message == "scraper returned failure (HTTP 200)"
        assert excinfo.value.transient is False

    def test_undecodable_body(self) -> None:
        fetcher, _ = _fetcher(_response(200, body=ValueError("no json")))
        with pytest.raises(ScrapeError):
            fetcher.fetch(JOB, api_key="k")

    def test_client_error_with_success_flag_is_permanent(self) -> None:
        fetcher, _ = _fetcher(_response(404, body={"success": True, "data": {}}))
        with pytest.raises(PermanentScrapeError):
            fetcher.fetch(JOB, api_key="k")

    def test_non_object_data_is_permanent(self) -> None:
        fetcher, _ = _fetcher(_response(200, body={"success": True, "data": ["unexpected"]}))
        with pytest.raises(PermanentScrapeError):
            fetcher.fetch(JOB, api_key="k")
