"""
app/api/routers/cron_router.py

Operator endpoints for out-of-band scheduler runs.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import PlainTextResponse

from app.schemas.cron import CredentialResetResponse, SchedulerStatusResponse
from app.scraping.scheduler import TRIGGER_MANUAL
from app.services.scrape_orchestration_service import (
    ScrapeOrchestrationService,
    get_scrape_orchestration_service,
)

router = APIRouter(tags=["cron"])


@router.get("/invoke-cron", response_class=PlainTextResponse)
def invoke_cron(
    service: ScrapeOrchestrationService = Depends(get_scrape_orchestration_service),
) -> PlainTextResponse:
    """
    Run one full due-check pass synchronously.
    """

    report = service.run_tick(TRIGGER_MANUAL)
    if report.skipped:
        return PlainTextResponse(
            "Previous scraper check still in progress. Tick skipped.",
            status_code=status.HTTP_409_CONFLICT,
        )
    return PlainTextResponse(
        f"Scraper check executed manually. tick={report.tick_id} "
        f"users_dispatched={report.users_dispatched} jobs_failed={report.jobs_failed}"
    )


@router.get("/reset-credentials", response_model=CredentialResetResponse)
def reset_credentials(
    service: ScrapeOrchestrationService = Depends(get_scrape_orchestration_service),
) -> CredentialResetResponse:
    """
    Reset every credential whose reset period has elapsed.
    """

    try:
        reset_count = service.reset_credentials()
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc
    return CredentialResetResponse(ok=True, reset_count=reset_count)


@router.get("/scheduler/status", response_model=SchedulerStatusResponse)
def scheduler_status(
    service: ScrapeOrchestrationService = Depends(get_scrape_orchestration_service),
) -> SchedulerStatusResponse:
    return SchedulerStatusResponse(**service.scheduler.guard.snapshot())
