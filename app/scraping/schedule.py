"""
Interval grammar and due-check for per-user scrape schedules.

Grammar:
  "N"           N > 0 runs per day, i.e. every 24/N hours
  "daily_at_H"  once a day during UTC hour H (0-23)
  "off" / empty disabled
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from app.scraping.clock import as_utc, hours_between

HOURLY = "hourly"
DAILY_AT = "daily_at"

# Matched against the raw value: padded or signed strings are invalid.
_HOURLY_RE = re.compile(r"[0-9]+")
_DAILY_AT_RE = re.compile(r"daily_at_([0-9]{1,2})")
_DISABLED_VALUES = {"", "off"}


@dataclass(frozen=True)
class ParsedInterval:
    """
    ``value`` is the period in hours for hourly schedules and the target
    UTC hour for daily schedules.
    """

    kind: str
    value: float


@dataclass(frozen=True)
class DueDecision:
    due: bool
    reason: str
    hours_since_last_run: float | None = None


def is_disabled(interval_spec: str | None) -> bool:
    return interval_spec is None or interval_spec.strip().lower() in _DISABLED_VALUES


def parse_interval(interval_spec: str | None) -> ParsedInterval | None:
    if interval_spec is None:
        return None

    if _HOURLY_RE.fullmatch(interval_spec):
        runs_per_day = int(interval_spec)
        if runs_per_day > 0:
            return ParsedInterval(kind=HOURLY, value=24 / runs_per_day)
        return None

    match = _DAILY_AT_RE.fullmatch(interval_spec)
    if match:
        hour = int(match.group(1))
        if 0 <= hour <= 23:
            return ParsedInterval(kind=DAILY_AT, value=hour)
    return None


def evaluate_due(
    interval_spec: str | None,
    last_run_at: datetime | None,
    now: datetime,
    *,
    hourly_early_tolerance: float = 0.05,
    daily_min_gap_hours: float = 23.0,
) -> DueDecision:
    """
    Decide whether a user is due. Order matters: disabled and invalid specs
    are skipped even when the user has never run.
    """

    if is_disabled(interval_spec):
        return DueDecision(due=False, reason="disabled")

    parsed = parse_interval(interval_spec)
    if parsed is None:
        return DueDecision(due=False, reason="invalid_interval")

    if last_run_at is None:
        return DueDecision(due=True, reason="never_run")

    hours_since = hours_between(last_run_at, now)

    if parsed.kind == HOURLY:
        threshold = parsed.value * (1.0 - hourly_early_tolerance)
        if hours_since >= threshold:
            return DueDecision(due=True, reason="interval_elapsed", hours_since_last_run=hours_since)
        return DueDecision(due=False, reason="not_due", hours_since_last_run=hours_since)

    current_hour = as_utc(now).hour
    if current_hour == int(parsed.value) and hours_since >= daily_min_gap_hours:
        return DueDecision(due=True, reason="daily_hour_reached", hours_since_last_run=hours_since)
    return DueDecision(due=False, reason="not_due", hours_since_last_run=hours_since)
