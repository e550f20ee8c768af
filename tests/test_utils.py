"""Tests for utility functions."""

from __future__ import annotations

import datetime as dt
import logging
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from pivotal_to_linear_migrator.utils import format_coarse_date, parse_timestamp, setup_logging

if TYPE_CHECKING:
    from pathlib import Path


@pytest.mark.unit
class TestParseTimestamp:
    def test_iso_with_zulu(self) -> None:
        assert parse_timestamp("2024-01-05T10:15:00Z") == dt.datetime(2024, 1, 5, 10, 15, tzinfo=dt.UTC)

    def test_csv_date(self) -> None:
        assert parse_timestamp("Jan 5, 2024") == dt.datetime(2024, 1, 5, tzinfo=dt.UTC)

    def test_naive_iso_is_utc(self) -> None:
        parsed = parse_timestamp("2024-01-05 10:00:00")
        assert parsed is not None
        assert parsed.tzinfo == dt.UTC

    def test_sources_compare(self) -> None:
        api = parse_timestamp("2024-01-05T00:00:00+00:00")
        csv = parse_timestamp("Jan 6, 2024")
        assert api is not None
        assert csv is not None
        assert api < csv

    def test_empty_and_garbage(self) -> None:
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None
        assert parse_timestamp("sometime") is None

    def test_format_coarse_date(self) -> None:
        assert format_coarse_date(dt.datetime(2024, 3, 7, tzinfo=dt.UTC)) == "Mar 07, 2024"


@pytest.mark.unit
class TestSetupLogging:
    @patch("pivotal_to_linear_migrator.utils.logging.basicConfig")
    def test_levels(self, mock_basic_config, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)

        setup_logging(verbose=True)
        assert mock_basic_config.call_args.kwargs["level"] == logging.DEBUG

        setup_logging()
        assert mock_basic_config.call_args.kwargs["level"] == logging.INFO

        for c in mock_basic_config.call_args_list:
            for handler in c.kwargs["handlers"]:
                handler.close()
