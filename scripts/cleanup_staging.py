"""
Retention sweep for bulk upload staging data.

Releases commit claims left by dead commits, cancels STAGING batches
nobody finished and deletes uncommitted staging rows past the retention
window. Meant to run from cron.

Usage:
    # Run the sweep
    python scripts/cleanup_staging.py

    # Show what would be removed
    python scripts/cleanup_staging.py --dry-run

    # Sweep as of a given moment
    python scripts/cleanup_staging.py --now 2026-02-09T03:00:00+00:00
"""

import argparse
import os
import sys
from datetime import datetime, timezone

# Allow imports from the project root when running as a script
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import structlog

from config import configure_logging, settings
from exceptions import AppError
from services.cleanup_service import CleanupService

logger = structlog.get_logger(__name__)


def parse_now(value: str) -> datetime:
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def main():
    parser = argparse.ArgumentParser(
        description="Delete expired bulk upload staging data."
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report what would be removed",
    )
    parser.add_argument(
        "--now",
        default="",
        help="Reference time in ISO format (default: current UTC time)",
    )

    args = parser.parse_args()
    configure_logging()

    try:
        now = parse_now(args.now) if args.now else datetime.now(timezone.utc)
    except ValueError:
        print(f"ERROR: Invalid time '{args.now}'. Use ISO format, e.g. 2026-02-09T03:00:00.")
        sys.exit(1)

    service = CleanupService()

    try:
        if args.dry_run:
            stats = service.get_cleanup_stats(now)
            print(f"Retention: {settings.staging_retention_days} days, "
                  f"abandoned after {settings.abandoned_batch_hours} hours")
            print(f"Expired staging rows:  {stats['expired_rows']}")
            print(f"Abandoned batches:     {stats['abandoned_batches']}")
            print(f"Stale commit claims:   {stats['stale_claims']}")
            return

        result = service.run(now)
    except AppError as e:
        logger.error("cleanup_failed", code=e.code, error=e.message)
        sys.exit(1)

    print(f"Released claims:   {result.released_claims}")
    print(f"Cancelled batches: {result.cancelled_batches}")
    print(f"Deleted rows:      {result.deleted_rows}")


if __name__ == "__main__":
    main()
