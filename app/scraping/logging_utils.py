"""
Structured logging helpers for scrape orchestration.

Events emitted while a scheduler tick is running carry that tick's id, so
every credential debit, retry and wave line of one tick can be correlated
without threading the id through each call.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

_current_tick_id: ContextVar[str | None] = ContextVar("scrape_tick_id", default=None)


def current_tick_id() -> str | None:
    return _current_tick_id.get()


@contextmanager
def tick_context(tick_id: str) -> Iterator[None]:
    token = _current_tick_id.set(tick_id)
    try:
        yield
    finally:
        _current_tick_id.reset(token)


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON. UUIDs and datetimes are
    rendered with ``str``.
    """

    if not logger.isEnabledFor(level):
        return
    payload: dict[str, Any] = {"event": event}
    tick_id = _current_tick_id.get()
    if tick_id is not None:
        payload["tick_id"] = tick_id
    payload.update(fields)
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))
