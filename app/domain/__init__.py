"""
app/domain package marker.
"""

from app.domain.scraping import (
    JobOutcome,
    PassReport,
    ScrapeJob,
    ScrapePayload,
    ScrapeResult,
    TickReport,
    WaveReport,
)

__all__ = [
    "JobOutcome",
    "PassReport",
    "ScrapeJob",
    "ScrapePayload",
    "ScrapeResult",
    "TickReport",
    "WaveReport",
]
