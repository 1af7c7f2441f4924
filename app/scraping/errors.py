"""
Tagged error values for the Scrape Operation boundary.

Classification happens once, when the error is created. Callers read
``transient`` / ``quota`` instead of inspecting message text.
"""

from __future__ import annotations

import re
from enum import Enum

TRANSIENT_PATTERN = re.compile(
    r"(429|403|timeout|temporar|rate|still\s*running|step\s*is\s*still\s*running|incomplete|missing)",
    re.IGNORECASE,
)
QUOTA_PATTERN = re.compile(r"(quota|credit|exhaust|limit)", re.IGNORECASE)
# Bot-check / captcha pages served in place of the marketplace page.
BLOCKED_PATTERN = re.compile(
    r"(robot\s*check|automated\s*access|captcha|enter\s*the\s*characters\s*you\s*see\s*below|request\s*blocked)",
    re.IGNORECASE,
)


class ScrapeErrorKind(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    QUOTA_EXCEEDED = "quota_exceeded"
    BLOCKED = "blocked"


def is_transient_message(message: str) -> bool:
    return bool(TRANSIENT_PATTERN.search(message or ""))


def is_quota_message(message: str) -> bool:
    return bool(QUOTA_PATTERN.search(message or ""))


def is_blocked_message(message: str) -> bool:
    return bool(BLOCKED_PATTERN.search(message or ""))


class ScrapeError(Exception):
    """
    Failure of a single Scrape Operation.

    ``transient`` drives local retries; ``quota`` drives credential
    exhaustion; ``blocked`` puts the credential on cooldown. Flags not given
    explicitly are derived from the message. A blocked error is transient
    unless told otherwise.
    """

    def __init__(
        self,
        message: str,
        *,
        transient: bool | None = None,
        quota: bool | None = None,
        blocked: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.blocked = is_blocked_message(message) if blocked is None else blocked
        if transient is None:
            transient = self.blocked or is_transient_message(message)
        self.transient = transient
        self.quota = is_quota_message(message) if quota is None else quota

    @property
    def kind(self) -> ScrapeErrorKind:
        if self.quota:
            return ScrapeErrorKind.QUOTA_EXCEEDED
        if self.blocked:
            return ScrapeErrorKind.BLOCKED
        if self.transient:
            return ScrapeErrorKind.TRANSIENT
        return ScrapeErrorKind.PERMANENT

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, kind={self.kind.value})"


class TransientScrapeError(ScrapeError):
    def __init__(self, message: str, *, quota: bool | None = None) -> None:
        super().__init__(message, transient=True, quota=quota)


class PermanentScrapeError(ScrapeError):
    def __init__(self, message: str) -> None:
        super().__init__(message, transient=False, quota=False, blocked=False)


class BlockedScrapeError(ScrapeError):
    def __init__(self, message: str) -> None:
        super().__init__(message, transient=True, blocked=True)


class QuotaExceededError(ScrapeError):
    def __init__(self, message: str, *, transient: bool | None = None) -> None:
        super().__init__(message, transient=transient, quota=True)


class NoUsableCredentialError(ScrapeError):
    """
    Raised by the credential pool when neither a pooled credential nor the
    account fallback produced a result. Inherits the classification of the
    last underlying error, if any. With no underlying error it is transient
    only when some credential was skipped for a cooldown that will lapse.
    """

    def __init__(self, last_error: ScrapeError | None = None, *, cooling_down: bool = False) -> None:
        message = "no usable credential available"
        if last_error is not None:
            message = f"{message}: last error: {last_error.message}"
            super().__init__(
                message,
                transient=last_error.transient,
                quota=last_error.quota,
                blocked=last_error.blocked,
            )
        elif cooling_down:
            super().__init__(f"{message}: credentials cooling down", transient=True, quota=False, blocked=False)
        else:
            super().__init__(message, transient=False, quota=False, blocked=False)
        self.last_error = last_error
        self.cooling_down = cooling_down


def coerce_error(value: object) -> ScrapeError:
    """
    Wrap any exception or message into a ``ScrapeError``.
    """

    if isinstance(value, ScrapeError):
        return value
    if isinstance(value, BaseException):
        return ScrapeError(str(value) or type(value).__name__)
    return ScrapeError(str(value) if value is not None else "unknown error")
