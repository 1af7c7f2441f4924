"""
Run the credential reset sweep from the CLI.
"""

from __future__ import annotations

import argparse
import json

from app.services.scrape_orchestration_service import ScrapeOrchestrationService


def main() -> int:
    argparse.ArgumentParser(
        description="Reset credits of every credential whose reset period has elapsed."
    ).parse_args()

    reset_count = ScrapeOrchestrationService().reset_credentials()
    print(json.dumps({"ok": True, "reset_count": reset_count}, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
