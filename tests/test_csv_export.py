"""Tests for CSV export normalization."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from pivotal_to_linear_migrator.csv_export import (
    find_attachment_directories,
    normalize_header,
    parse_comment_cell,
    parse_export,
    split_labels,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


@pytest.mark.unit
class TestNormalizeHeader:
    def test_spaces_become_underscores(self) -> None:
        assert normalize_header("Current State") == "current_state"

    def test_punctuation_is_dropped(self) -> None:
        assert normalize_header("Owned By?") == "owned_by"
        assert normalize_header("  Pull Request ") == "pull_request"

    def test_id_header(self) -> None:
        assert normalize_header("Id") == "id"


@pytest.mark.unit
class TestParseCommentCell:
    def test_suffix_is_split_off(self) -> None:
        comment = parse_comment_cell("Looks good to me (Jane Doe - Jan 5, 2024)", 42)

        assert comment.text == "Looks good to me"
        assert comment.author == "Jane Doe"
        assert comment.date == "Jan 5, 2024"
        assert comment.item_id == 42

    def test_multiline_text_keeps_newlines(self) -> None:
        comment = parse_comment_cell("line one\nline two (Bob - Dec 12, 2023)", 1)

        assert comment.text == "line one\nline two"
        assert comment.author == "Bob"

    def test_hyphenated_author(self) -> None:
        comment = parse_comment_cell("done (Anne-Marie Smith - Feb 29, 2024)", 1)

        assert comment.author == "Anne-Marie Smith"
        assert comment.date == "Feb 29, 2024"

    def test_without_suffix_keeps_text_and_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        comment = parse_comment_cell("just some text", 7)

        assert comment.text == "just some text"
        assert comment.author is None
        assert comment.date is None
        assert "Comment without author and date on story 7" in caplog.text


@pytest.mark.unit
class TestSplitLabels:
    def test_split_and_strip(self) -> None:
        assert split_labels("backend, api ,, urgent") == ["backend", "api", "urgent"]

    def test_empty(self) -> None:
        assert split_labels("") == []


@pytest.mark.unit
class TestFindAttachmentDirectories:
    def test_only_numeric_directories(self, tmp_path: Path) -> None:
        (tmp_path / "123").mkdir()
        (tmp_path / "456").mkdir()
        (tmp_path / "notes").mkdir()
        (tmp_path / "789").write_text("a file, not a directory")

        assert find_attachment_directories(tmp_path) == {123, 456}


@pytest.mark.unit
class TestParseExport:
    HEADERS: list[str] = [
        "Id", "Title", "Labels", "Current State", "Created at", "Estimate", "Requested By", "Owned By",
        "Description", "Comment", "Comment", "Task", "Task Status", "Task", "Task Status",
        "Review Type", "Reviewer", "Review Status", "Blocker", "Blocker Status", "Pull Request",
    ]  # fmt: skip

    def test_no_path_means_live_api(self) -> None:
        assert parse_export(None) is None
        assert parse_export("") is None

    def test_single_row(self, write_csv: Callable[[list[list[str]]], Path]) -> None:
        row = [
            "100", "Add login", "auth, ui", "started", "Jan 5, 2024", "3", "Rita", "Owen",
            "\tHello", "First (Rita - Jan 6, 2024)", "", "Write tests", "completed", "Ship", "",
            "code", "Quinn", "pass", "Waiting on API", "unresolved", "https://github.com/o/r/pull/1",
        ]  # fmt: skip
        export = parse_export(write_csv([self.HEADERS, row]))

        assert export is not None
        record = export.find(100)
        assert record is not None
        assert record.get("title") == "Add login"
        assert record.get("current_state") == "started"
        assert record.get("estimate") == "3"
        assert record.get("owned_by") == "Owen"
        assert record.labels == ["auth", "ui"]
        assert [c.text for c in record.comments] == ["First"]
        assert [(t.text, t.complete) for t in record.tasks] == [("Write tests", True), ("Ship", False)]
        assert [(r.review_type, r.reviewer, r.status) for r in record.reviews] == [("code", "Quinn", "pass")]
        assert [(b.description, b.status) for b in record.blockers] == [("Waiting on API", "unresolved")]
        assert [p.url for p in record.pull_requests] == ["https://github.com/o/r/pull/1"]

    def test_leading_tab_is_stripped_from_description(self, write_csv: Callable[[list[list[str]]], Path]) -> None:
        rows = [["Id", "Description"], ["1", "\tHello"], ["2", "Hello"]]
        export = parse_export(write_csv(rows))

        assert export is not None
        assert export.records[1].get("description") == "Hello"
        assert export.records[2].get("description") == "Hello"

    def test_rows_sharing_an_id_are_merged(self, write_csv: Callable[[list[list[str]]], Path]) -> None:
        rows = [
            ["Id", "Title", "Current State", "Comment", "Comment", "Task", "Task Status"],
            ["7", "Story", "unstarted", "a (X - Jan 1, 2024)", "b (X - Jan 2, 2024)", "t1", "completed"],
            ["7", "", "", "c (Y - Jan 3, 2024)", "", "t2", "not completed"],
        ]
        export = parse_export(write_csv(rows))

        assert export is not None
        assert list(export.records) == [7]
        record = export.records[7]
        assert [c.text for c in record.comments] == ["a", "b", "c"]
        assert [t.text for t in record.tasks] == ["t1", "t2"]
        # Empty cells in later rows do not clobber earlier values
        assert record.get("title") == "Story"
        assert record.get("current_state") == "unstarted"

    def test_non_numeric_ids_are_skipped(
        self, write_csv: Callable[[list[list[str]]], Path], caplog: pytest.LogCaptureFixture
    ) -> None:
        rows = [["Id", "Title"], ["abc", "Broken"], ["", "Blank"], ["5", "Fine"]]
        export = parse_export(write_csv(rows))

        assert export is not None
        assert list(export.records) == [5]
        assert "non-numeric id 'abc'" in caplog.text

    def test_attachment_directories(self, write_csv: Callable[[list[list[str]]], Path]) -> None:
        path = write_csv([["Id", "Title"], ["11", "With files"], ["12", "Without"]])
        (path.parent / "11").mkdir()

        export = parse_export(path)

        assert export is not None
        assert export.has_attachments(11)
        assert not export.has_attachments(12)
        assert export.attachment_path(11, "shot.png") == path.parent / "11" / "shot.png"

    def test_utf8_bom_is_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "export.csv"
        path.write_bytes("\ufeffId,Title\n3,Bom\n".encode())

        export = parse_export(path)

        assert export is not None
        assert export.records[3].get("title") == "Bom"
