"""Normalization of Pivotal Tracker CSV exports.

A Pivotal export is denormalized: sub-entities are spread over repeated
columns ("Comment", "Comment", "Task", "Task Status", "Task", ...) and a
story may span several rows. This module folds them back into one record
per story, shaped like the API payload so the rest of the migration can
treat both sources alike.

Attachments are not part of the CSV itself. The export ships them in
sibling directories named after the story id, e.g.::

    export/
        project_20241022.csv
        186164568/
            screenshot.png
"""

from __future__ import annotations

import csv
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .models import Blocker, Comment, PullRequestRef, Review, Task

logger: logging.Logger = logging.getLogger(__name__)

# Trailing "(Author Name - Jan 5, 2024)" appended by the exporter to each comment
COMMENT_META_PATTERN = re.compile(r"\s*\(([^()]+?) - (\w{3} \d{1,2}, \d{4})\)\s*$")

# Columns whose values are folded into sub-lists rather than copied as scalars
_GROUP_COLUMNS = frozenset(
    {"comment", "task", "task_status", "review_type", "reviewer", "review_status", "blocker", "blocker_status",
     "pull_request"}
)


@dataclass
class CsvRecord:
    """All rows of the export that share one story id, merged."""

    id: int
    fields: dict[str, str] = field(default_factory=dict)
    labels: list[str] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    reviews: list[Review] = field(default_factory=list)
    blockers: list[Blocker] = field(default_factory=list)
    pull_requests: list[PullRequestRef] = field(default_factory=list)

    def get(self, name: str, default: str | None = None) -> str | None:
        return self.fields.get(name, default)


@dataclass
class CsvExport:
    """A parsed export: merged records plus the ids that have attachment directories."""

    path: Path
    records: dict[int, CsvRecord]
    attachment_ids: set[int]

    def find(self, item_id: int) -> CsvRecord | None:
        return self.records.get(item_id)

    def has_attachments(self, item_id: int) -> bool:
        """Whether a sidecar attachment directory exists for the item."""
        return item_id in self.attachment_ids

    def attachment_path(self, item_id: int, filename: str) -> Path:
        return self.path.parent / str(item_id) / filename


def normalize_header(name: str) -> str:
    """Convert a CSV header to a field name ("Current State" -> "current_state")."""
    cleaned = re.sub(r"[^\s\w]+", "", name.lower()).strip()
    return re.sub(r"\s+", "_", cleaned)


def parse_comment_cell(cell: str, item_id: int) -> Comment:
    """Split a comment cell into text, author and date.

    Cells without the trailing "(Author - Mon DD, YYYY)" suffix keep their
    full text, with author and date left as None.
    """
    match = COMMENT_META_PATTERN.search(cell)
    if match is None:
        logger.warning(f"Comment without author and date on story {item_id}: {cell}")
        return Comment(item_id=item_id, text=cell)

    text = cell[: match.start()].strip()
    return Comment(item_id=item_id, text=text, author=match.group(1).strip(), date=match.group(2))


def split_labels(cell: str) -> list[str]:
    return [name.strip() for name in cell.split(",") if name.strip()]


def find_attachment_directories(directory: Path) -> set[int]:
    """Return ids of immediate subdirectories whose name is purely numeric."""
    return {int(entry.name) for entry in directory.iterdir() if entry.is_dir() and entry.name.isdigit()}


def _cell(row: list[str], index: int) -> str:
    return row[index].strip() if index < len(row) else ""


def _follows(headers: list[str], index: int, offset: int, expected: str) -> bool:
    position = index + offset
    return position < len(headers) and headers[position] == expected


def _fold_row(record: CsvRecord, headers: list[str], row: list[str]) -> None:
    for j, header in enumerate(headers):
        value = row[j] if j < len(row) else ""

        if header in _GROUP_COLUMNS:
            if not value.strip():
                continue
            if header == "comment":
                record.comments.append(parse_comment_cell(value, record.id))
            elif header == "task":
                status = _cell(row, j + 1) if _follows(headers, j, 1, "task_status") else ""
                record.tasks.append(Task(text=value, complete=status.lower() == "completed"))
            elif header == "review_type":
                reviewer = _cell(row, j + 1) if _follows(headers, j, 1, "reviewer") else ""
                status = _cell(row, j + 2) if _follows(headers, j, 2, "review_status") else ""
                record.reviews.append(Review(review_type=value, reviewer=reviewer, status=status))
            elif header == "blocker":
                status = _cell(row, j + 1) if _follows(headers, j, 1, "blocker_status") else ""
                record.blockers.append(Blocker(description=value, status=status))
            elif header == "pull_request":
                record.pull_requests.append(PullRequestRef(url=value.strip()))
            # Status/reviewer columns are consumed together with their leading column
            continue

        if not header or header == "id":
            continue
        if not value:
            continue

        if header == "labels":
            record.labels = split_labels(value)
        elif header == "description":
            record.fields[header] = value.removeprefix("\t")
        else:
            record.fields[header] = value


def _parse_rows(reader: Any) -> dict[int, CsvRecord]:
    raw_headers = next(reader, None)
    if raw_headers is None:
        return {}
    headers = [normalize_header(h) for h in raw_headers]

    records: dict[int, CsvRecord] = {}
    for line_number, row in enumerate(reader, start=2):
        if not row or not row[0].strip():
            continue
        raw_id = row[0].strip()
        if not raw_id.isdigit():
            logger.warning(f"Skipping CSV line {line_number}: non-numeric id {raw_id!r}")
            continue

        item_id = int(raw_id)
        record = records.setdefault(item_id, CsvRecord(id=item_id))
        _fold_row(record, headers, row)

    return records


def parse_export(path: str | Path | None) -> CsvExport | None:
    """Parse a Pivotal CSV export.

    Args:
        path: Path to the export, or None/empty to use the live API instead

    Returns:
        The parsed export, or None when no path was given
    """
    if not path:
        return None

    csv_path = Path(path)
    with csv_path.open(newline="", encoding="utf-8-sig") as f:
        records = _parse_rows(csv.reader(f))

    attachment_ids = find_attachment_directories(csv_path.parent)
    logger.info(
        f"Parsed {len(records)} stories from {csv_path} ({len(attachment_ids)} with attachment directories)"
    )
    return CsvExport(path=csv_path, records=records, attachment_ids=attachment_ids)
