"""Pivotal Tracker REST API (v5) client."""

from __future__ import annotations

import logging
from typing import Any, Final

import requests
from tqdm import tqdm

from .exceptions import PivotalAPIError

logger: logging.Logger = logging.getLogger(__name__)

PIVOTAL_HOST: Final = "https://www.pivotaltracker.com"
BASE_URL: Final = f"{PIVOTAL_HOST}/services/v5"
DEFAULT_PAGE_SIZE: Final = 100
_TOTAL_HEADER: Final = "X-Tracker-Pagination-Total"


class PivotalClient:
    """Typed fetch operations against one Pivotal Tracker project.

    Every non-success response raises PivotalAPIError. Nothing is retried
    here; callers decide whether a failed fetch aborts the item or the run.
    """

    _session: requests.Session
    project_id: str
    page_size: int

    def __init__(
        self,
        api_token: str,
        project_id: str | int,
        *,
        session: requests.Session | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.project_id = str(project_id)
        self.page_size = page_size
        self._session = session or requests.Session()
        self._session.headers.update({"X-TrackerToken": api_token, "Content-Type": "application/json"})

    def _project_path(self, path: str) -> str:
        return f"/projects/{self.project_id}{path}"

    def _request(self, path: str, params: dict[str, Any] | None = None) -> requests.Response:
        url = f"{BASE_URL}{path}"
        logger.debug(f"GET Request to: {url} params={params}")
        response = self._session.get(url, params=params)
        logger.debug(f"GET {path}: Status {response.status_code}")

        if not response.ok:
            logger.error(f"Pivotal API request failed: {response.status_code}")
            logger.debug(f"Response Body: {response.text}")
            raise PivotalAPIError(response.status_code, response.text)
        return response

    def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self._request(self._project_path(path), params).json()

    def _fetch_paginated(self, path: str, description: str) -> list[dict[str, Any]]:
        """Fetch all pages of a collection, accumulating them in order.

        The expected total only drives the progress bar; the loop stops on
        the first short page whatever the total says.
        """
        items: list[dict[str, Any]] = []
        offset = 0
        progress: tqdm[Any] | None = None

        try:
            while True:
                response = self._request(
                    self._project_path(path), {"limit": self.page_size, "offset": offset}
                )
                page: list[dict[str, Any]] = response.json()

                if progress is None:
                    total_header = response.headers.get(_TOTAL_HEADER)
                    total = int(total_header) if total_header and total_header.isdigit() else len(page)
                    progress = tqdm(total=total, desc=description, unit="item")

                items.extend(page)
                progress.update(len(page))

                if len(page) < self.page_size:
                    break
                offset += self.page_size
        finally:
            if progress is not None:
                progress.close()

        return items

    # Epics

    def fetch_all_epics(self) -> list[dict[str, Any]]:
        return self._get("/epics")

    def fetch_epic_details(self, epic_id: int) -> dict[str, Any]:
        return self._get(f"/epics/{epic_id}")

    def fetch_epic_comments(self, epic_id: int) -> list[dict[str, Any]]:
        return self._get(f"/epics/{epic_id}/comments", {"fields": ":default,file_attachments,text"})

    def fetch_epic_stories(self, epic_id: int) -> dict[str, Any]:
        """Search the project for stories carrying the epic."""
        return self._get("/search", {"query": f"epic:{epic_id}"})

    # Stories

    def fetch_all_stories(self) -> list[dict[str, Any]]:
        return self._fetch_paginated("/stories", "Fetching stories")

    def fetch_story_details(self, story_id: int) -> dict[str, Any]:
        """Fetch one story including pull requests and branches.

        The API omits empty collections, so both are defaulted to lists.
        """
        story: dict[str, Any] = self._get(f"/stories/{story_id}", {"fields": ":default,pull_requests,branches"})
        story["pull_requests"] = story.get("pull_requests") or []
        story["branches"] = story.get("branches") or []
        return story

    def fetch_story_comments(self, story_id: int) -> list[dict[str, Any]]:
        return self._get(f"/stories/{story_id}/comments", {"fields": ":default,file_attachments"})

    def fetch_story_tasks(self, story_id: int) -> list[dict[str, Any]]:
        return self._get(f"/stories/{story_id}/tasks")

    def fetch_attachments(self, story_id: int) -> list[dict[str, Any]]:
        story = self.fetch_story_details(story_id)
        return story.get("attachments") or []

    # Members and files

    def fetch_project_members(self) -> list[dict[str, Any]]:
        return self._get("/memberships")

    def download_attachment(self, download_url: str) -> bytes:
        """Download attachment bytes; relative URLs are resolved against the Pivotal host."""
        url = download_url if download_url.startswith("http") else f"{PIVOTAL_HOST}{download_url}"
        logger.debug(f"Downloading attachment from {url}")
        response = self._session.get(url, allow_redirects=True)
        if not response.ok:
            logger.error(f"Failed to download attachment from {url}: {response.status_code}")
            raise PivotalAPIError(response.status_code, response.text)
        return response.content
