"""
Migration settings read from the environment.
"""

from __future__ import annotations

import datetime as dt
import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

logger: logging.Logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS: Final = ("PIVOTAL_API_TOKEN", "PIVOTAL_PROJECT_ID", "LINEAR_API_TOKEN", "LINEAR_TEAM_NAME")


def resolve_timezone(name: str | None) -> dt.tzinfo:
    """Timezone used to display rate limit reset times; UTC when unset or unknown."""
    if not name:
        return dt.UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', using UTC")
        return dt.UTC


@dataclass(frozen=True)
class MigrationConfig:
    pivotal_api_token: str
    pivotal_project_id: str
    linear_api_token: str
    linear_team_name: str
    timezone: dt.tzinfo = dt.UTC
    # Absent means the live API is the story source
    csv_path: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> MigrationConfig:
        """Build the configuration from environment variables.

        Raises:
            ConfigurationError: If any required variable is missing or empty
        """
        env = os.environ if environ is None else environ

        missing = [name for name in REQUIRED_ENV_VARS if not env.get(name)]
        if missing:
            msg = f"Missing required environment variables: {', '.join(missing)}"
            raise ConfigurationError(msg)

        return cls(
            pivotal_api_token=env["PIVOTAL_API_TOKEN"],
            pivotal_project_id=env["PIVOTAL_PROJECT_ID"],
            linear_api_token=env["LINEAR_API_TOKEN"],
            linear_team_name=env["LINEAR_TEAM_NAME"],
            timezone=resolve_timezone(env.get("LINEAR_TIMEZONE")),
            csv_path=env.get("PT_CSV_FILE") or None,
        )
