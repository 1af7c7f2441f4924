"""
tests/test_retry_driver.py

RetryDriver: immediate retries, escalation to delayed waves and the
wave 1 -> wave 2 -> drop progression.

The Scrape Operation is a scripted callable; waves are persisted in the
in-memory store and advanced with the fake clock.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import timedelta

import pytest

from app.config import OrchestrationSettings
from app.domain.scraping import ScrapeJob, ScrapePayload, ScrapeResult
from app.scraping.errors import PermanentScrapeError, ScrapeError, TransientScrapeError
from app.scraping.retry_driver import RetryDriver
from db.models import RetryWave
from db.repositories.retry_wave_repository import RetryWaveRepository
from db.session import SessionFactory
from tests.fakes import NOW, FakeClock, RecordingSleep, complete_payload


class ScriptedOperation:
    """
    Per-item scripted Scrape Operation. ``script[item_id]`` is a list of
    results (or exceptions); the last entry repeats.
    """

    def __init__(self, script: dict[str, list[ScrapeResult | Exception]] | None = None) -> None:
        self.script = script or {}
        self.calls: list[str] = []

    def __call__(self, job: ScrapeJob) -> ScrapeResult:
        self.calls.append(job.item_id)
        outcomes = self.script.get(job.item_id) or [ScrapeResult.ok(complete_payload())]
        index = min(self.calls.count(job.item_id), len(outcomes)) - 1
        outcome = outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def count(self, item_id: str) -> int:
        return self.calls.count(item_id)


OK = ScrapeResult.ok(complete_payload())
RATE_LIMITED = ScrapeResult.failed(TransientScrapeError("HTTP 429"))
NOT_FOUND = ScrapeResult.failed(PermanentScrapeError("item not found"))


@pytest.fixture()
def make_driver(
    session_factory: SessionFactory,
    orchestration_settings: OrchestrationSettings,
    clock: FakeClock,
    sleep: RecordingSleep,
) -> Callable[[ScriptedOperation], RetryDriver]:
    def _make(operation: ScriptedOperation) -> RetryDriver:
        return RetryDriver(
            operation=operation,
            session_factory=session_factory,
            settings=orchestration_settings,
            clock=clock,
            sleep=sleep,
            jitter=lambda: 0.0,
        )

    return _make


def _job(user_id: uuid.UUID, item_id: str) -> ScrapeJob:
    return ScrapeJob(user_id=user_id, item_id=item_id)


def _wave(session_factory: SessionFactory, user_id: uuid.UUID) -> RetryWave | None:
    with session_factory() as session:
        row = RetryWaveRepository(session).get(user_id)
        if row is not None:
            session.expunge(row)
        return row


# ---------------------------------------------------------------------------
# Immediate retries
# ---------------------------------------------------------------------------


class TestRunJob:
    def test_success_on_first_attempt(self, make_driver, user_id, sleep) -> None:
        operation = ScriptedOperation()
        outcome = make_driver(operation).run_job(_job(user_id, "A1"), base_delay_ms=900)
        assert outcome.ok is True
        assert outcome.attempts == 1
        assert operation.count("A1") == 1
        assert sleep.calls == []

    def test_transient_failure_uses_every_attempt(self, make_driver, user_id, sleep) -> None:
        operation = ScriptedOperation({"A1": [RATE_LIMITED]})
        outcome = make_driver(operation).run_job(_job(user_id, "A1"), base_delay_ms=900)
        assert outcome.ok is False
        assert outcome.attempts == 3
        assert operation.count("A1") == 3
        # Linear backoff between attempts, none after the last.
        assert sleep.calls == pytest.approx([0.9, 1.8])

    def test_non_transient_failure_stops_immediately(self, make_driver, user_id, sleep) -> None:
        operation = ScriptedOperation({"A1": [NOT_FOUND]})
        outcome = make_driver(operation).run_job(_job(user_id, "A1"), base_delay_ms=900)
        assert outcome.ok is False
        assert outcome.attempts == 1
        assert outcome.error == "item not found"
        assert sleep.calls == []

    def test_recovers_after_transient_failure(self, make_driver, user_id) -> None:
        operation = ScriptedOperation({"A1": [RATE_LIMITED, OK]})
        outcome = make_driver(operation).run_job(_job(user_id, "A1"), base_delay_ms=900)
        assert outcome.ok is True
        assert outcome.attempts == 2

    def test_zero_length_counts_as_transient_failure(self, make_driver, user_id) -> None:
        incomplete = ScrapeResult.ok(ScrapePayload(length=0, availability="2024-05-01"))
        operation = ScriptedOperation({"A1": [incomplete]})
        outcome = make_driver(operation).run_job(_job(user_id, "A1"), base_delay_ms=900)
        assert outcome.ok is False
        assert outcome.attempts == 3
        assert outcome.error == "incomplete scrape: missing length"

    def test_missing_availability_counts_as_failure(self, make_driver, user_id) -> None:
        incomplete = ScrapeResult.ok(ScrapePayload(length=200, availability=None))
        operation = ScriptedOperation({"A1": [incomplete, OK]})
        outcome = make_driver(operation).run_job(_job(user_id, "A1"), base_delay_ms=900)
        assert outcome.ok is True
        assert outcome.attempts == 2

    def test_raised_exceptions_are_classified(self, make_driver, user_id) -> None:
        operation = ScriptedOperation({"A1": [RuntimeError("read timeout"), OK]})
        outcome = make_driver(operation).run_job(_job(user_id, "A1"), base_delay_ms=900)
        assert outcome.ok is True
        assert operation.count("A1") == 2

    def test_failure_without_error_is_not_retried(self, make_driver, user_id) -> None:
        operation = ScriptedOperation({"A1": [ScrapeResult(success=False)]})
        outcome = make_driver(operation).run_job(_job(user_id, "A1"), base_delay_ms=900)
        assert outcome.attempts == 1
        assert outcome.error == "scraper returned failure"

    def test_retry_count_comes_from_settings(self, session_factory, clock, sleep, user_id) -> None:
        operation = ScriptedOperation({"A1": [RATE_LIMITED]})
        driver = RetryDriver(
            operation=operation,
            session_factory=session_factory,
            settings=OrchestrationSettings(retries=5),
            clock=clock,
            sleep=sleep,
            jitter=lambda: 0.0,
        )
        assert driver.run_job(_job(user_id, "A1"), base_delay_ms=100).attempts == 5


def test_jobs_run_sequentially_in_order(make_driver, user_id) -> None:
    operation = ScriptedOperation({"B2": [NOT_FOUND]})
    driver = make_driver(operation)
    report = driver.run_jobs(
        user_id,
        [_job(user_id, "A1"), _job(user_id, "B2"), _job(user_id, "C3")],
        base_delay_ms=900,
    )
    assert operation.calls == ["A1", "B2", "C3"]
    assert report.attempted == 3
    assert report.succeeded == 2
    assert [job.item_id for job in report.failed] == ["B2"]


# ---------------------------------------------------------------------------
# Main pass and escalation
# ---------------------------------------------------------------------------


class TestMainPass:
    def test_failed_subset_is_scheduled_as_wave_one(self, make_driver, session_factory, user_id) -> None:
        operation = ScriptedOperation({"B2": [RATE_LIMITED]})
        make_driver(operation).run_main_pass(user_id, [_job(user_id, "A1"), _job(user_id, "B2")])

        wave = _wave(session_factory, user_id)
        assert wave is not None
        assert wave.wave == 1
        assert wave.jobs == [{"item_id": "B2", "country_market": "com"}]
        assert wave.due_at.replace(tzinfo=None) == (NOW + timedelta(seconds=300)).replace(tzinfo=None)

    def test_wave_one_counts_from_tick_start(self, make_driver, session_factory, user_id, clock) -> None:
        driver = make_driver(ScriptedOperation({"A1": [NOT_FOUND]}))
        clock.advance(seconds=75)
        driver.run_main_pass(user_id, [_job(user_id, "A1")], started_at=NOW)

        assert _wave(session_factory, user_id).due_at == NOW + timedelta(seconds=300)

    def test_all_success_schedules_nothing(self, make_driver, session_factory, user_id) -> None:
        make_driver(ScriptedOperation()).run_main_pass(user_id, [_job(user_id, "A1")])
        assert _wave(session_factory, user_id) is None

    def test_new_failures_replace_pending_wave(self, make_driver, session_factory, user_id, clock) -> None:
        driver = make_driver(ScriptedOperation({"A1": [NOT_FOUND], "B2": [NOT_FOUND]}))
        driver.run_main_pass(user_id, [_job(user_id, "A1")])
        clock.advance(minutes=1)
        driver.run_main_pass(user_id, [_job(user_id, "B2")])

        with session_factory() as session:
            rows = session.query(RetryWave).all()
        assert len(rows) == 1
        assert rows[0].jobs == [{"item_id": "B2", "country_market": "com"}]
        assert rows[0].due_at.replace(tzinfo=None) == (NOW + timedelta(minutes=1, seconds=300)).replace(
            tzinfo=None
        )

    def test_all_success_leaves_pending_wave_alone(self, make_driver, session_factory, user_id) -> None:
        driver = make_driver(ScriptedOperation({"A1": [NOT_FOUND]}))
        driver.run_main_pass(user_id, [_job(user_id, "A1")])
        driver.run_main_pass(user_id, [_job(user_id, "Z9")])
        wave = _wave(session_factory, user_id)
        assert wave is not None
        assert wave.jobs == [{"item_id": "A1", "country_market": "com"}]


# ---------------------------------------------------------------------------
# Delayed waves
# ---------------------------------------------------------------------------


class TestWaves:
    def test_wave_not_run_before_due(self, make_driver, user_id, clock) -> None:
        operation = ScriptedOperation({"A1": [NOT_FOUND]})
        driver = make_driver(operation)
        driver.run_main_pass(user_id, [_job(user_id, "A1")])
        clock.advance(seconds=200)
        assert driver.process_due_waves() == []
        assert operation.count("A1") == 1

    def test_wave_runs_within_due_slack(self, make_driver, user_id, clock) -> None:
        operation = ScriptedOperation({"A1": [NOT_FOUND, OK]})
        driver = make_driver(operation)
        driver.run_main_pass(user_id, [_job(user_id, "A1")])
        clock.advance(seconds=280)
        reports = driver.process_due_waves()
        assert len(reports) == 1
        assert reports[0].wave == 1
        assert reports[0].remaining == 0

    def test_full_progression_then_drop(self, make_driver, session_factory, user_id, clock) -> None:
        operation = ScriptedOperation({"A1": [NOT_FOUND]})
        driver = make_driver(operation)
        driver.run_main_pass(user_id, [_job(user_id, "A1")])

        clock.advance(seconds=300)
        first = driver.process_due_waves()
        assert [(r.wave, r.remaining, r.next_wave) for r in first] == [(1, 1, 2)]
        wave = _wave(session_factory, user_id)
        assert wave is not None and wave.wave == 2

        clock.advance(seconds=300)
        second = driver.process_due_waves()
        assert [(r.wave, r.remaining, r.next_wave) for r in second] == [(2, 1, None)]
        assert _wave(session_factory, user_id) is None

        clock.advance(seconds=600)
        assert driver.process_due_waves() == []
        # main pass + wave 1 + wave 2, one call each for a permanent error
        assert operation.count("A1") == 3

    def test_wave_only_retries_still_failing_jobs(self, make_driver, session_factory, user_id, clock) -> None:
        operation = ScriptedOperation({"A1": [NOT_FOUND], "B2": [NOT_FOUND, OK]})
        driver = make_driver(operation)
        driver.run_main_pass(user_id, [_job(user_id, "A1"), _job(user_id, "B2")])

        clock.advance(seconds=300)
        driver.process_due_waves()
        wave = _wave(session_factory, user_id)
        assert wave is not None
        assert wave.jobs == [{"item_id": "A1", "country_market": "com"}]

    def test_wave_two_counts_from_tick_start(self, make_driver, session_factory, user_id, clock) -> None:
        driver = make_driver(ScriptedOperation({"A1": [NOT_FOUND]}))
        driver.run_main_pass(user_id, [_job(user_id, "A1")], started_at=NOW)

        tick_start = clock.advance(seconds=300)
        clock.advance(seconds=45)
        driver.process_due_waves(started_at=tick_start)

        wave = _wave(session_factory, user_id)
        assert wave.wave == 2
        assert wave.due_at == tick_start + timedelta(seconds=300)

    def test_wave_uses_wave_base_delay(self, make_driver, user_id, clock, sleep) -> None:
        operation = ScriptedOperation({"A1": [NOT_FOUND, RATE_LIMITED]})
        driver = make_driver(operation)
        driver.run_main_pass(user_id, [_job(user_id, "A1")])
        clock.advance(seconds=300)
        driver.process_due_waves()
        assert sleep.calls == pytest.approx([1.2, 2.4])

    def test_failing_wave_does_not_block_other_users(self, make_driver, monkeypatch, clock) -> None:
        first_user = uuid.uuid4()
        second_user = uuid.uuid4()
        driver = make_driver(ScriptedOperation({"A1": [NOT_FOUND], "B2": [NOT_FOUND]}))
        driver.run_main_pass(first_user, [_job(first_user, "A1")])
        clock.advance(seconds=1)
        driver.run_main_pass(second_user, [_job(second_user, "B2")])
        clock.advance(seconds=300)

        original_run_wave = driver.run_wave

        def run_wave(user_id, wave, jobs, **kwargs):
            if user_id == first_user:
                raise RuntimeError("store went away")
            return original_run_wave(user_id, wave, jobs, **kwargs)

        monkeypatch.setattr(driver, "run_wave", run_wave)
        reports = driver.process_due_waves()
        assert [report.user_id for report in reports] == [second_user]


def test_quota_error_is_not_retried(make_driver, user_id) -> None:
    operation = ScriptedOperation({"A1": [ScrapeResult.failed(ScrapeError("quota exceeded"))]})
    outcome = make_driver(operation).run_job(_job(user_id, "A1"), base_delay_ms=900)
    assert outcome.attempts == 1
    assert outcome.error == "quota exceeded"
