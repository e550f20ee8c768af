"""Tests for the Pivotal Tracker REST client."""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from pivotal_to_linear_migrator.exceptions import PivotalAPIError
from pivotal_to_linear_migrator.pivotal_client import BASE_URL, PivotalClient

from conftest import make_response


@pytest.mark.unit
class TestPivotalClient:
    def setup_method(self) -> None:
        self.session: Mock = Mock()
        self.session.headers = {}
        self.client = PivotalClient("token-123", 99, session=self.session, page_size=2)

    def test_token_header(self) -> None:
        assert self.session.headers["X-TrackerToken"] == "token-123"

    def test_fetch_project_members(self) -> None:
        self.session.get.return_value = make_response([{"person": {"id": 1}}])

        members = self.client.fetch_project_members()

        assert members == [{"person": {"id": 1}}]
        self.session.get.assert_called_once_with(f"{BASE_URL}/projects/99/memberships", params=None)

    def test_error_status_raises(self) -> None:
        self.session.get.return_value = make_response(None, status_code=403, text="forbidden")

        with pytest.raises(PivotalAPIError) as exc_info:
            self.client.fetch_all_epics()

        assert exc_info.value.status_code == 403
        assert exc_info.value.body == "forbidden"

    def test_pagination_accumulates_pages_in_order(self) -> None:
        headers = {"X-Tracker-Pagination-Total": "5"}
        self.session.get.side_effect = [
            make_response([{"id": 1}, {"id": 2}], headers=headers),
            make_response([{"id": 3}, {"id": 4}], headers=headers),
            make_response([{"id": 5}], headers=headers),
        ]

        stories = self.client.fetch_all_stories()

        assert [s["id"] for s in stories] == [1, 2, 3, 4, 5]
        offsets = [c.kwargs["params"]["offset"] for c in self.session.get.call_args_list]
        assert offsets == [0, 2, 4]

    def test_pagination_stops_on_short_page_despite_larger_total(self) -> None:
        self.session.get.side_effect = [
            make_response([{"id": 1}], headers={"X-Tracker-Pagination-Total": "50"}),
        ]

        stories = self.client.fetch_all_stories()

        assert stories == [{"id": 1}]
        assert self.session.get.call_count == 1

    def test_pagination_without_total_header(self) -> None:
        self.session.get.side_effect = [
            make_response([{"id": 1}, {"id": 2}]),
            make_response([]),
        ]

        assert len(self.client.fetch_all_stories()) == 2

    def test_story_details_default_empty_collections(self) -> None:
        self.session.get.return_value = make_response({"id": 5, "name": "S"})

        story = self.client.fetch_story_details(5)

        assert story["pull_requests"] == []
        assert story["branches"] == []
        _, kwargs = self.session.get.call_args
        assert kwargs["params"] == {"fields": ":default,pull_requests,branches"}

    def test_fetch_attachments_from_details(self) -> None:
        self.session.get.return_value = make_response({"id": 5, "attachments": [{"filename": "a.txt"}]})

        assert self.client.fetch_attachments(5) == [{"filename": "a.txt"}]

    def test_fetch_epic_stories_searches_by_epic(self) -> None:
        self.session.get.return_value = make_response({"stories": {"stories": []}})

        self.client.fetch_epic_stories(8)

        _, kwargs = self.session.get.call_args
        assert kwargs["params"] == {"query": "epic:8"}

    def test_comment_fields_include_attachments(self) -> None:
        self.session.get.return_value = make_response([])

        self.client.fetch_epic_comments(3)
        assert self.session.get.call_args.kwargs["params"]["fields"] == ":default,file_attachments,text"

        self.client.fetch_story_comments(4)
        assert self.session.get.call_args.kwargs["params"]["fields"] == ":default,file_attachments"

    def test_fetch_story_tasks(self) -> None:
        self.session.get.return_value = make_response([{"description": "t"}])

        assert self.client.fetch_story_tasks(4) == [{"description": "t"}]
        assert self.session.get.call_args.args[0] == f"{BASE_URL}/projects/99/stories/4/tasks"

    def test_download_relative_url(self) -> None:
        self.session.get.return_value = make_response(None, content=b"bytes")

        content = self.client.download_attachment("/file_attachments/1/download")

        assert content == b"bytes"
        url = self.session.get.call_args.args[0]
        assert url == "https://www.pivotaltracker.com/file_attachments/1/download"

    def test_download_failure_raises(self) -> None:
        self.session.get.return_value = make_response(None, status_code=404, text="missing")

        with pytest.raises(PivotalAPIError):
            self.client.download_attachment("https://example.com/f")
