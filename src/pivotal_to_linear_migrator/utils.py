"""
Utility functions for the Pivotal Tracker to Linear migration tool.
"""

from __future__ import annotations

import datetime as dt
import logging

# Coarse date format used by the Pivotal CSV export and by rendered comments
COARSE_DATE_FORMAT = "%b %d, %Y"

_CSV_DATE_FORMATS = (COARSE_DATE_FORMAT, "%b %d, %Y %I:%M %p", "%Y-%m-%d")


def setup_logging(*, verbose: bool = False) -> None:
    """Configure logging for the migration process."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(), logging.FileHandler("migration.log", mode="a")],
    )


def parse_timestamp(value: str | None) -> dt.datetime | None:
    """Parse an API (ISO 8601) or CSV ("Jan 5, 2024") timestamp.

    Naive values are taken to be UTC so that timestamps from both sources
    compare with each other.

    Returns:
        A timezone-aware datetime, or None if the value is empty or unparsable.
    """
    if not value:
        return None

    value = value.strip()
    try:
        parsed = dt.datetime.fromisoformat(value)
    except ValueError:
        parsed = None
        for fmt in _CSV_DATE_FORMATS:
            try:
                parsed = dt.datetime.strptime(value, fmt)  # noqa: DTZ007
                break
            except ValueError:
                continue

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed


def format_coarse_date(timestamp: dt.datetime) -> str:
    """Format a timestamp the way comment dates are shown (e.g. "Jan 05, 2024")."""
    return timestamp.strftime(COARSE_DATE_FORMAT)
