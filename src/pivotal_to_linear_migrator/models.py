"""Data models shared by the story sources, the Migrator and the Linear client.

Both story sources (live Pivotal API and CSV export) produce these dataclasses,
so the Migrator reads every field the same way regardless of provenance.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    import datetime as dt
    from pathlib import Path

# Pivotal Tracker story lifecycle states
UNSCHEDULED: Final = "unscheduled"
UNSTARTED: Final = "unstarted"
STARTED: Final = "started"
FINISHED: Final = "finished"
DELIVERED: Final = "delivered"
ACCEPTED: Final = "accepted"
REJECTED: Final = "rejected"

# Migration order of stories. Unknown states sort last.
STORY_STATE_ORDER: Final[dict[str, int]] = {
    DELIVERED: 0,
    FINISHED: 1,
    STARTED: 2,
    UNSTARTED: 3,
    UNSCHEDULED: 4,
    ACCEPTED: 5,
}
UNKNOWN_STATE_RANK: Final = 6

PT_TO_LINEAR_STATE: Final[dict[str, str]] = {
    UNSCHEDULED: "Triage",
    UNSTARTED: "Backlog",
    STARTED: "In Progress",
    FINISHED: "Finished",
    DELIVERED: "Ready to Merge",
    ACCEPTED: "Done",
    REJECTED: "Todo",
}


@dataclass
class Person:
    """A Pivotal Tracker project member."""

    id: int
    name: str
    email: str = ""

    def describe(self) -> str:
        return f"{self.name} <{self.email}>"


@dataclass
class FileAttachment:
    """A file attached to a Pivotal comment.

    Bytes are not held here; they are read from `local_path` (CSV sidecar
    directory) or downloaded from `download_url` right before upload.
    """

    filename: str
    download_url: str = ""
    content_type: str | None = None
    local_path: Path | None = None


@dataclass(frozen=True)
class UploadedFile:
    """An attachment after upload to Linear."""

    filename: str
    url: str
    content_type: str

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")

    def to_markdown(self) -> str:
        if self.is_image:
            return f"![{self.filename}]({self.url})"
        return f"[{self.filename}]({self.url})"


@dataclass
class Comment:
    """A comment on a story or epic.

    CSV comments carry `author` and a coarse `date` string ("Jan 5, 2024");
    API comments carry `person_id` and the exact `created_at`. Both shapes
    are kept as delivered by the source.
    """

    item_id: int
    text: str
    author: str | None = None
    date: str | None = None
    created_at: dt.datetime | None = None
    person_id: int | None = None
    attachments: list[FileAttachment] = field(default_factory=list)


@dataclass
class Task:
    text: str
    complete: bool = False


@dataclass
class Review:
    review_type: str
    reviewer: str = ""
    status: str = ""


@dataclass
class Blocker:
    description: str
    status: str = ""


@dataclass
class PullRequestRef:
    """A pull request linked to a story.

    The CSV export only has the URL; the API also provides number and status.
    """

    url: str
    number: int | None = None
    status: str | None = None


@dataclass
class Story:
    """A Pivotal story in normalized form.

    `tasks`, `reviews` and `blockers` are None when the source does not
    provide them (the API listing), and lists (possibly empty) otherwise.
    """

    id: int
    title: str
    current_state: str
    description: str = ""
    labels: list[str] = field(default_factory=list)
    created_at: dt.datetime | None = None
    owner: str | None = None
    requester: str | None = None
    estimate: int | None = None
    owner_ids: list[int] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)
    pull_requests: list[PullRequestRef] = field(default_factory=list)
    tasks: list[Task] | None = None
    reviews: list[Review] | None = None
    blockers: list[Blocker] | None = None


@dataclass
class Epic:
    """A Pivotal epic, migrated to a Linear project."""

    id: int
    name: str
    description: str = ""
    label: str | None = None
