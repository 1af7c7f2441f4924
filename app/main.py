from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI


def _validate_env() -> None:
    """
    Validate all required environment variables at startup.

    Runs before any service or database connection is initialised.
    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.

    Rules:
    - No empty-string values are accepted.
    - A PostgreSQL connection must be configured for the scheduler.
    - SCRAPE_ENDPOINT_URL is required while the scheduler is enabled.
    - Numeric tuning variables must parse when set.
    """

    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []

    # --- Database URL ---------------------------------------------------
    url_names = ("DATABASE_URL", "SUPABASE_DB_URL", "CLOUD_DATABASE_URL", "LOCAL_DATABASE_URL")
    if not any(os.getenv(name, "").strip() for name in url_names):
        errors.append(
            "No database URL configured. Set DATABASE_URL, SUPABASE_DB_URL, "
            "CLOUD_DATABASE_URL or LOCAL_DATABASE_URL."
        )

    # --- Scrape endpoint ------------------------------------------------
    scheduler_enabled = os.getenv("SCRAPE_SCHEDULER_ENABLED", "true").strip().lower() in {
        "1",
        "true",
        "yes",
        "on",
    }
    if scheduler_enabled and not os.getenv("SCRAPE_ENDPOINT_URL", "").strip():
        errors.append(
            "SCRAPE_ENDPOINT_URL is not set but SCRAPE_SCHEDULER_ENABLED is true. "
            "Set SCRAPE_ENDPOINT_URL or disable the scheduler with SCRAPE_SCHEDULER_ENABLED=false."
        )

    # --- Numeric tuning -------------------------------------------------
    for name in (
        "SCRAPE_TICK_MINUTES",
        "SCRAPE_RETRIES",
        "SCRAPE_MAIN_BASE_DELAY_MS",
        "SCRAPE_WAVE_BASE_DELAY_MS",
        "CREDENTIAL_DEFAULT_COST_PER_CALL",
        "CREDENTIAL_RESET_PERIOD_DAYS",
    ):
        raw = os.getenv(name)
        if raw is None:
            continue
        try:
            int(raw.strip())
        except ValueError:
            errors.append(f"{name}='{raw}' is not an integer.")

    if errors:
        raise RuntimeError(
            "Startup validation failed: missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # APScheduler logs every job execution at INFO.
    logging.getLogger("apscheduler.executors.default").setLevel(logging.WARNING)


def _check_db() -> None:
    """Round-trip one query through the shared engine. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text

    from db.session import session_scope

    try:
        with session_scope() as session:
            session.execute(text("SELECT 1"))
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc


def _schema_drift() -> dict[str, list[str]]:
    """
    Map each ORM table to the columns it is missing in the live database.

    A missing table is reported as ``["<table missing>"]``. Column drift
    matters here because the credit debit and wave bookkeeping write
    columns by name in single UPDATE statements.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401  registers all ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    live_tables = set(inspector.get_table_names())

    drift: dict[str, list[str]] = {}
    for name, table in sorted(Base.metadata.tables.items()):
        if name not in live_tables:
            drift[name] = ["<table missing>"]
            continue
        live_columns = {column["name"] for column in inspector.get_columns(name)}
        missing = sorted(column.name for column in table.columns if column.name not in live_columns)
        if missing:
            drift[name] = missing
    return drift


def _check_schema() -> None:
    """
    Abort startup when the database lags behind the ORM models.

    Does NOT auto-migrate; the operator runs 'alembic upgrade head'.
    """

    drift = _schema_drift()
    if not drift:
        return

    summary = "; ".join(f"{table}: {', '.join(columns)}" for table, columns in drift.items())
    logging.getLogger(__name__).critical(
        "Schema mismatch in %d table(s): %s. Run 'alembic upgrade head' and restart.",
        len(drift),
        summary,
    )
    raise RuntimeError(f"Schema mismatch: {summary}. Run migrations and restart.")


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate DB connectivity and schema, start the scheduler on boot; shut it down on exit."""
    log = logging.getLogger(__name__)
    _check_db()
    log.info("Database connectivity confirmed")
    _check_schema()
    log.info("Database schema validated")

    from app.config import get_orchestration_settings

    if not get_orchestration_settings().enabled:
        log.warning("Scrape scheduler disabled; only manual triggers will run")
        yield
        return

    from app.scheduler.jobs import build_scheduler

    scheduler = build_scheduler()
    scheduler.start()
    log.info("Scheduler started with %d jobs", len(scheduler.get_jobs()))
    try:
        yield
    finally:
        scheduler.shutdown(wait=True)
        log.info("Scheduler shut down")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Marketplace Refresh Scheduler",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import cron_router

    application.include_router(cron_router)

    @application.get("/", response_model=None)
    def root() -> dict[str, str]:
        return {"message": "Cron job service is running. Use /invoke-cron to trigger manually."}

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
