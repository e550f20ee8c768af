"""
Pytest configuration and fixtures.

Responses from both APIs are plain Mocks carrying the attributes the
clients read (`ok`, `status_code`, `text`, `headers`, `json()`), so no test
touches the network.
"""

from __future__ import annotations

import csv
from typing import TYPE_CHECKING, Any
from unittest.mock import Mock

import pytest

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


def make_response(
    payload: Any = None,
    *,
    status_code: int = 200,
    headers: dict[str, str] | None = None,
    text: str | None = None,
    content: bytes = b"",
) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.headers = headers or {}
    response.text = text if text is not None else str(payload)
    response.content = content
    response.json.return_value = payload
    return response


@pytest.fixture
def write_csv(tmp_path: Path) -> Callable[[list[list[str]]], Path]:
    """Write rows (header first) to export.csv inside a temporary export directory."""

    def _write(rows: list[list[str]]) -> Path:
        path = tmp_path / "export.csv"
        with path.open("w", newline="", encoding="utf-8") as f:
            csv.writer(f).writerows(rows)
        return path

    return _write
