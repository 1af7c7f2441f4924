"""
Service layer exports.
"""

from app.services.scrape_orchestration_service import (
    ScrapeOrchestrationService,
    get_scrape_orchestration_service,
)

__all__ = [
    "ScrapeOrchestrationService",
    "get_scrape_orchestration_service",
]
