"""Story sources: the live Pivotal API and the CSV export."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .models import Comment, FileAttachment, PullRequestRef, Story
from .utils import parse_timestamp

if TYPE_CHECKING:
    from .csv_export import CsvExport, CsvRecord
    from .people import PersonDirectory
    from .pivotal_client import PivotalClient

logger: logging.Logger = logging.getLogger(__name__)


def _parse_estimate(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        logger.warning(f"Ignoring unparsable estimate: {value!r}")
        return None


def story_from_api(payload: dict[str, Any]) -> Story:
    """Convert a story listing entry from the REST API."""
    return Story(
        id=int(payload["id"]),
        title=payload.get("name", ""),
        current_state=payload.get("current_state", ""),
        description=payload.get("description") or "",
        labels=[label["name"] for label in payload.get("labels") or [] if label.get("name")],
        created_at=parse_timestamp(payload.get("created_at")),
        estimate=_parse_estimate(payload.get("estimate")),
        owner_ids=list(payload.get("owner_ids") or []),
    )


def pull_request_from_api(payload: dict[str, Any]) -> PullRequestRef:
    repo = f"{payload.get('owner', '')}/{payload.get('repo', '')}"
    url = f"{payload.get('host_url', '')}{repo}/pull/{payload.get('number')}"
    return PullRequestRef(url=url, number=payload.get("number"), status=payload.get("status"))


def comment_from_api(payload: dict[str, Any], people: PersonDirectory, item_id: int) -> Comment:
    """Convert an API comment, resolving its author through the member directory."""
    person_id = payload.get("person_id")
    person = people.get(person_id)
    if person is None:
        logger.warning(f"Could not find person information for comment by person_id: {person_id}")
        author = f"Unknown Author (ID: {person_id})"
    else:
        author = person.name

    attachments = [
        FileAttachment(
            filename=a["filename"],
            download_url=a.get("download_url", ""),
            content_type=a.get("content_type"),
        )
        for a in payload.get("file_attachments") or []
    ]
    return Comment(
        item_id=item_id,
        text=payload.get("text") or "",
        author=author,
        created_at=parse_timestamp(payload.get("created_at")),
        person_id=person_id,
        attachments=attachments,
    )


class ApiStorySource:
    """Stories read from the live Pivotal Tracker API."""

    _pivotal: PivotalClient
    _people: PersonDirectory

    def __init__(self, pivotal: PivotalClient, people: PersonDirectory) -> None:
        self._pivotal = pivotal
        self._people = people

    def get_stories(self) -> list[Story]:
        stories = [story_from_api(s) for s in self._pivotal.fetch_all_stories()]
        logger.info(f"Fetched {len(stories)} stories from Pivotal Tracker")
        return stories

    def get_story_details(self, story: Story) -> Story:
        details = self._pivotal.fetch_story_details(story.id)
        full = story_from_api(details)
        full.owner = self._people.owner_text(full.owner_ids)
        full.requester = self._people.describe(details.get("requested_by_id"))
        full.pull_requests = [pull_request_from_api(pr) for pr in details["pull_requests"]]
        return full

    def get_comments(self, story: Story) -> list[Comment]:
        return [comment_from_api(c, self._people, story.id) for c in self._pivotal.fetch_story_comments(story.id)]


def story_from_record(record: CsvRecord) -> Story:
    """Convert a merged CSV record; the export names the story title "Title"."""
    return Story(
        id=record.id,
        title=record.get("title", ""),
        current_state=record.get("current_state", ""),
        description=record.get("description", ""),
        labels=list(record.labels),
        created_at=parse_timestamp(record.get("created_at")),
        owner=record.get("owned_by"),
        requester=record.get("requested_by"),
        estimate=_parse_estimate(record.get("estimate")),
        comments=list(record.comments),
        pull_requests=list(record.pull_requests),
        tasks=list(record.tasks),
        reviews=list(record.reviews),
        blockers=list(record.blockers),
    )


class CsvStorySource:
    """Stories read from a CSV export, with live lookups only for attachments."""

    _export: CsvExport
    _pivotal: PivotalClient
    _people: PersonDirectory

    def __init__(self, export: CsvExport, pivotal: PivotalClient, people: PersonDirectory) -> None:
        self._export = export
        self._pivotal = pivotal
        self._people = people

    def get_stories(self) -> list[Story]:
        stories = [story_from_record(r) for r in self._export.records.values()]
        logger.info(f"Using CSV with {len(stories)} stories")
        return stories

    def get_story_details(self, story: Story) -> Story:
        # The export already holds every field
        return story

    def get_comments(self, story: Story) -> list[Comment]:
        if not self._export.has_attachments(story.id):
            return list(story.comments)

        logger.debug(f"Story {story.id} has attachments, fetching its comments from the API")
        comments = [comment_from_api(c, self._people, story.id) for c in self._pivotal.fetch_story_comments(story.id)]
        for comment in comments:
            for attachment in comment.attachments:
                attachment.local_path = self._export.attachment_path(story.id, attachment.filename)
        return comments
