"""
Performance Sync Script
=======================
Runs the GS Engage → Supabase performance sync once from the command line.

Usage:
    python scripts/sync_performance.py                      # sync for today
    python scripts/sync_performance.py --date 2024-03-01
    python scripts/sync_performance.py --dry-run            # fetch + aggregate only
    python scripts/sync_performance.py --overrides rows.json
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

BASE_DIR = Path(__file__).resolve().parent.parent
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from integrations.growthstation import GrowthstationClient  # noqa: E402
from scripts.lib.config import Settings  # noqa: E402
from scripts.lib.errors import ConfigError  # noqa: E402
from scripts.lib.logger import setup_logger  # noqa: E402
from scripts.lib.metrics import overrides_from_rows  # noqa: E402
from scripts.lib.reconciler import PerformanceReconciler  # noqa: E402
from scripts.lib.supabase_client import get_client  # noqa: E402
from scripts.lib.sync_pipeline import run_sync  # noqa: E402

logger = setup_logger("sync_performance")


def _valid_date(value: str) -> str:
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a YYYY-MM-DD date: {value!r}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Sync GS Engage performance into Supabase")
    parser.add_argument("--date", type=_valid_date,
                        help="Date bucket for the records (default: today)")
    parser.add_argument("--dry-run", action="store_true",
                        help="Fetch and aggregate, print the rows, write nothing")
    parser.add_argument("--overrides", type=Path,
                        help="JSON list of performance rows whose values replace estimates")
    args = parser.parse_args(argv)

    try:
        settings = Settings.from_env()
    except ConfigError as e:
        logger.error("Configuration error: %s", e.message)
        return 2

    overrides = None
    if args.overrides:
        try:
            with open(args.overrides, "r", encoding="utf-8") as f:
                rows = json.load(f)
            if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
                raise ValueError("expected a JSON list of performance rows")
            overrides = overrides_from_rows(rows)
        except (OSError, ValueError) as e:
            logger.error("Could not load overrides from %s: %s", args.overrides, e)
            return 2
        logger.info("Loaded overrides from %s", args.overrides)

    logger.info("=== GS Performance Sync ===")
    source = GrowthstationClient(settings.growthstation)

    if args.dry_run:
        logger.info("DRY RUN — no changes will be made")
        result = run_sync(source, None, args.date, persist=False, overrides=overrides)
        if result.success:
            print(json.dumps(result.rows, indent=2, ensure_ascii=False))
    else:
        reconciler = PerformanceReconciler(get_client(settings.supabase))
        result = run_sync(source, reconciler, args.date, overrides=overrides)

    if not result.success:
        logger.error("%s (%s)", result.message, result.error)
        return 1

    logger.info("%s: %d records, %d users", result.message, result.records_count, result.users)
    logger.info("=== Sync complete ===")
    return 0


if __name__ == "__main__":
    sys.exit(main())
