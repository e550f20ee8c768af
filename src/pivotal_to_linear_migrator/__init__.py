"""
Pivotal Tracker to Linear Migration Tool

Migrates a Pivotal Tracker project, read from the live API or a CSV export,
into a Linear team: epics become projects, stories become issues with their
comments, attachments, workflow state and ordering preserved.
"""

from __future__ import annotations

from .cli import main
from .config import MigrationConfig
from .exceptions import ConfigurationError, LinearAPIError, MigrationError, PivotalAPIError
from .orchestrator import MigrationStats, Migrator, create_migrator
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "LinearAPIError",
    "MigrationConfig",
    "MigrationError",
    "MigrationStats",
    "Migrator",
    "PivotalAPIError",
    "create_migrator",
    "main",
    "setup_logging",
]
