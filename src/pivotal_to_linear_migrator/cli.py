"""
Command-line interface for the Pivotal Tracker to Linear migration tool.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from .config import MigrationConfig
from .orchestrator import create_migrator
from .utils import setup_logging

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .orchestrator import MigrationStats

logger: logging.Logger = logging.getLogger(__name__)


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Migrate a Pivotal Tracker project (API or CSV export) into a Linear team",
        epilog="Settings are read from the environment or a .env file: PIVOTAL_API_TOKEN, PIVOTAL_PROJECT_ID, "
        "LINEAR_API_TOKEN, LINEAR_TEAM_NAME, optional LINEAR_TIMEZONE and PT_CSV_FILE.",
    )

    _ = parser.add_argument("--migrate", action="store_true", help="Migrate epics and stories")
    _ = parser.add_argument(
        "--assign", action="store_true", help="Assign already-migrated issues to their Pivotal owners"
    )
    _ = parser.add_argument(
        "--dry-run", action="store_true", help="Log what would be created without writing to Linear"
    )
    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return parser.parse_args(argv)


def _print_stats(stats: MigrationStats) -> None:
    print(f"Epics:       {stats.epics_created} created, {stats.epics_skipped} skipped, {stats.epics_failed} failed")
    print(
        f"Stories:     {stats.stories_created} created, {stats.stories_skipped} skipped, "
        f"{stats.stories_failed} failed"
    )
    print(f"Assigned:    {stats.issues_assigned}")
    print(f"Attachments: {stats.attachments_uploaded}")
    if stats.errors:
        print(f"\nErrors ({len(stats.errors)}):")
        for error in stats.errors:
            print(f"  - {error}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)

    _ = load_dotenv()
    setup_logging(verbose=args.verbose)

    if not args.migrate and not args.assign:
        print("No action specified. Use --migrate or --assign.")
        return

    try:
        config = MigrationConfig.from_env()
        migrator = create_migrator(config, dry_run=args.dry_run)

        stats = migrator.migrate() if args.migrate else migrator.assign()
        _print_stats(stats)

    except Exception:
        logger.exception("Migration failed")
        sys.exit(1)
