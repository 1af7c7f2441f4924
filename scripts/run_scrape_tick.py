"""
Run one scheduler tick from the CLI, outside the API process.
"""

from __future__ import annotations

import argparse
import json
import logging

from app.scraping.scheduler import TRIGGER_MANUAL, TRIGGER_TIMER
from app.services.scrape_orchestration_service import ScrapeOrchestrationService


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one due-user scrape tick.")
    parser.add_argument(
        "--trigger",
        choices=(TRIGGER_MANUAL, TRIGGER_TIMER),
        default=TRIGGER_MANUAL,
        help="Trigger label recorded in logs.",
    )
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    report = ScrapeOrchestrationService().run_tick(args.trigger)
    payload = {
        "tick_id": report.tick_id,
        "trigger": report.trigger,
        "skipped": report.skipped,
        "users_evaluated": report.users_evaluated,
        "users_dispatched": report.users_dispatched,
        "jobs_failed": report.jobs_failed,
        "waves_processed": report.waves_processed,
        "errors": report.errors,
    }
    print(json.dumps(payload, indent=2))
    return 1 if report.errors else 0


if __name__ == "__main__":
    raise SystemExit(main())
