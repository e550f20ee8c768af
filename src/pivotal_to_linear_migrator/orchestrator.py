"""Migration orchestrator that replays Pivotal Tracker data into Linear.

The Migrator coordinates the Pivotal client, a StorySource and the Linear
client. It never keeps state between runs: whether an item was already
migrated is always read back from Linear, through the back-reference URL
every migrated item embeds in its text.

Migration Flow
--------------
Phase 1: Preparation
    - Ensure the workflow states exist in the Linear team
    - Load Linear labels and team members
    - Map epic labels to epic ids (stories reference epics by label)
    - Find projects created by earlier runs (epic back-references)

Phase 2: Epics
    For each epic without a project:
        a. Fetch details and comments
        b. Upload comment attachments, render the comment thread
        c. Create the project and record epic id -> project id

Phase 3: Stories
    Stories are ordered by state rank, then creation time. For each story:
        a. Look it up by back-reference; if found, it becomes the link
           cursor and is skipped
        b. Fetch details and comments, upload attachments
        c. Create the issue with labels, estimate and assignee
        d. Set its workflow state and place it right after the previous
           issue (sortOrder = previous + 1); it becomes the cursor
        e. Attach it to the project of its first epic label

Per-item Failures
-----------------
A failing epic or story is logged and counted, and the run moves on. A
story that failed to be created leaves the cursor where it was, so the
next story is placed after the last issue that exists.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final

import requests
from tqdm import tqdm

from .attachments import AttachmentUploader
from .csv_export import parse_export
from .exceptions import MigrationError
from .issue_builder import (
    build_epic_content,
    build_story_description,
    render_comment,
    render_comment_thread,
    render_epic_comment,
    story_url,
)
from .labels import LabelResolver
from .linear_client import LinearClient
from .models import PT_TO_LINEAR_STATE, STORY_STATE_ORDER, UNKNOWN_STATE_RANK, Epic, Story
from .people import PersonDirectory, find_matching_user
from .pivotal_client import PivotalClient
from .rate_limiter import RateLimiter
from .sources import ApiStorySource, CsvStorySource, comment_from_api

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .config import MigrationConfig
    from .protocols import StorySource

logger: logging.Logger = logging.getLogger(__name__)

MIGRATED_LABEL: Final = "migrated_story"

_EARLIEST: Final = dt.datetime.min.replace(tzinfo=dt.UTC)

# Errors that abort one item but not the run
_ITEM_ERRORS = (MigrationError, requests.RequestException)


@dataclass
class MigrationStats:
    """Statistics collected during migration."""

    epics_created: int = 0
    epics_skipped: int = 0
    epics_failed: int = 0
    stories_created: int = 0
    stories_skipped: int = 0
    stories_failed: int = 0
    issues_assigned: int = 0
    attachments_uploaded: int = 0
    errors: list[str] = field(default_factory=list)

    def record_error(self, message: str) -> None:
        logger.error(message)
        self.errors.append(message)


def story_sort_key(story: Story) -> tuple[int, dt.datetime]:
    return (STORY_STATE_ORDER.get(story.current_state, UNKNOWN_STATE_RANK), story.created_at or _EARLIEST)


def sort_stories(stories: Iterable[Story]) -> list[Story]:
    """Order stories by state rank (delivered first, accepted last), then creation time."""
    return sorted(stories, key=story_sort_key)


def epic_from_api(payload: dict[str, Any]) -> Epic | None:
    if "id" not in payload:
        logger.warning(f"Unexpected epic structure: {payload}")
        return None

    label = payload.get("label")
    label_name = label.get("name") if isinstance(label, dict) else None
    if not label_name:
        # Still migrated, but no story can be linked to it
        logger.warning(f"Epic {payload['id']} has no label")
    return Epic(
        id=int(payload["id"]),
        name=payload.get("name", ""),
        description=payload.get("description") or "",
        label=label_name or None,
    )


def _unique(names: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(names))


class Migrator:
    """Orchestrates migration from Pivotal Tracker to a Linear team.

    Usage:
        migrator = create_migrator(config, dry_run=True)
        stats = migrator.migrate()

    In dry-run mode every lookup still runs against Linear, but every
    mutation is only logged.
    """

    _pivotal: PivotalClient
    _linear: LinearClient
    _stories: StorySource
    _people: PersonDirectory
    _labels: LabelResolver
    _attachments: AttachmentUploader

    def __init__(
        self,
        pivotal: PivotalClient,
        linear: LinearClient,
        stories: StorySource,
        people: PersonDirectory,
        *,
        dry_run: bool = False,
    ) -> None:
        self._pivotal = pivotal
        self._linear = linear
        self._stories = stories
        self._people = people
        self._labels = LabelResolver(linear)
        self._attachments = AttachmentUploader(pivotal, linear, dry_run=dry_run)
        self.dry_run = dry_run

        self.stats = MigrationStats()
        self.epics: list[Epic] = []
        # Pivotal epic id -> Linear project id
        self.epic_mapping: dict[int, str] = {}
        # Epic label name -> Pivotal epic id
        self.label_to_epic: dict[str, int] = {}
        self.linear_members: list[dict[str, Any]] = []
        # Linear id of the issue the next created issue is placed after
        self.previous_issue_id: str | None = None

    # Preparation

    def prepare(self) -> None:
        self._linear.setup_workflow_states(dry_run=self.dry_run)
        self._labels.refresh()
        self.load_epics()
        self.load_team_members()
        self.epic_mapping = self._linear.find_migrated_projects()

    def load_epics(self) -> None:
        epics = (epic_from_api(e) for e in self._pivotal.fetch_all_epics())
        self.epics = [e for e in epics if e is not None]
        self.label_to_epic = {e.label: e.id for e in self.epics if e.label}
        logger.info(f"Fetched {len(self.epics)} epics from Pivotal Tracker")

    def load_team_members(self) -> None:
        self.linear_members = self._linear.fetch_team_members()
        logger.debug(f"Loaded {len(self._people)} Pivotal members and {len(self.linear_members)} Linear members")

    # Entry points

    def migrate(self) -> MigrationStats:
        """Run the full migration: preparation, epics, then stories."""
        self.prepare()
        self.migrate_epics()
        # Epic migration may have added labels
        self._labels.refresh()
        self.migrate_stories()
        self.stats.attachments_uploaded = self._attachments.uploaded_count
        self._log_summary()
        return self.stats

    def assign(self) -> MigrationStats:
        """Assign already-migrated issues that have no assignee yet to their Pivotal owner."""
        self.load_team_members()
        for payload in self._pivotal.fetch_all_stories():
            try:
                self._assign_story(payload)
            except _ITEM_ERRORS as e:
                self.stats.record_error(f"Failed to assign story {payload.get('id')}: {e}")
        self._log_summary()
        return self.stats

    # Epics

    def migrate_epics(self) -> None:
        for epic in tqdm(self.epics, desc="Migrating epics", unit="epic"):
            try:
                self._migrate_epic(epic)
            except _ITEM_ERRORS as e:
                self.stats.epics_failed += 1
                self.stats.record_error(f"Failed to migrate epic {epic.id} ({epic.name}): {e}")

    def is_epic_migrated(self, epic: Epic) -> bool:
        """Whether a Linear project already embeds the epic's back-reference.

        `epic_mapping` is read from Linear during preparation, so this costs
        no request of its own.
        """
        return epic.id in self.epic_mapping

    def _migrate_epic(self, epic: Epic) -> None:
        if self.is_epic_migrated(epic):
            logger.info(f"Epic {epic.id} already migrated as project: {self.epic_mapping[epic.id]}")
            self.stats.epics_skipped += 1
            return

        details = self._pivotal.fetch_epic_details(epic.id)
        epic.description = details.get("description") or epic.description
        label = details.get("label")
        if isinstance(label, dict) and label.get("name"):
            epic.label = label["name"]

        blocks: list[str] = []
        for payload in self._pivotal.fetch_epic_comments(epic.id):
            comment = comment_from_api(payload, self._people, epic.id)
            person = self._people.get(comment.person_id)
            author = person.describe() if person else comment.author or "Unknown Author"
            uploaded = self._attachments.upload_all(comment.attachments, f"epic {epic.id}")
            blocks.append(render_epic_comment(author, comment.text, uploaded))

        content = build_epic_content(epic, blocks)
        logger.debug(f"Final content for Linear project '{epic.name}':\n{content}")

        if self.dry_run:
            logger.info(f"[DRY RUN] Would create project: '{epic.name}'")
            return

        project = self._linear.create_project(epic.name, content)
        self.epic_mapping[epic.id] = project["id"]
        self.stats.epics_created += 1
        logger.info(f"Created project in Linear: {epic.name} (ID: {project['id']})")

    # Stories

    def find_migrated_issue(self, story: Story) -> dict[str, Any] | None:
        """Look up the Linear issue created for `story` by an earlier run.

        This is one search request per story and it is the only record of
        progress: re-running after an interruption relies on it.
        """
        return self._linear.find_issue_by_backreference(story_url(story.id))

    def migrate_stories(self) -> None:
        stories = sort_stories(self._stories.get_stories())
        self.previous_issue_id = None

        for story in tqdm(stories, desc="Migrating stories", unit="story"):
            try:
                self._migrate_story(story)
            except _ITEM_ERRORS as e:
                self.stats.stories_failed += 1
                self.stats.record_error(f"Failed to migrate story {story.id} ({story.title}): {e}")

    def _migrate_story(self, story: Story) -> None:
        existing = self.find_migrated_issue(story)
        if existing:
            logger.info(f"Story already migrated: {existing.get('title')}")
            self.previous_issue_id = existing["id"]
            self.stats.stories_skipped += 1
            return

        details = self._stories.get_story_details(story)
        comments = self._stories.get_comments(details)
        logger.info(f"Adding {len(comments)} comments to the description of story {story.id}")

        blocks = [
            render_comment(c, self._attachments.upload_all(c.attachments, f"story {story.id}")) for c in comments
        ]
        description = build_story_description(details, render_comment_thread(blocks))
        label_names = _unique([*details.labels, MIGRATED_LABEL])
        user = find_matching_user(details.owner, self.linear_members)

        if self.dry_run:
            logger.info(f"[DRY RUN] Would create story: '{details.title}' with labels: {', '.join(label_names)}")
            return

        issue = self._linear.create_issue(
            details.title,
            description,
            label_ids=self._labels.resolve_all(label_names),
            estimate=details.estimate,
            assignee_id=user["id"] if user else None,
        )
        self.stats.stories_created += 1
        previous_issue_id = self.previous_issue_id
        self.previous_issue_id = issue["id"]
        logger.info(f"Created issue in Linear: {details.title} (ID: {issue['id']})")

        try:
            self._place_issue(issue["id"], details.current_state, previous_issue_id)
            self._link_to_epic(issue["id"], details.labels)
        except _ITEM_ERRORS as e:
            self.stats.record_error(f"Created issue {issue['id']} for story {story.id} but failed to update it: {e}")

    def _place_issue(self, issue_id: str, pivotal_state: str, previous_issue_id: str | None) -> None:
        """Set the workflow state and chain the issue right after the previous one."""
        update: dict[str, Any] = {}

        state_name = PT_TO_LINEAR_STATE.get(pivotal_state)
        state_id = self._linear.get_state_id(state_name) if state_name else None
        if state_id:
            update["stateId"] = state_id
        else:
            logger.warning(f"No Linear workflow state for Pivotal state '{pivotal_state}'")

        if previous_issue_id:
            previous = self._linear.get_issue(previous_issue_id)
            if previous and previous.get("sortOrder") is not None:
                update["sortOrder"] = float(previous["sortOrder"]) + 1

        if update:
            self._linear.update_issue(issue_id, update)

    def _link_to_epic(self, issue_id: str, labels: list[str]) -> None:
        """Attach the issue to the project of its first label that names a migrated epic."""
        for name in labels:
            epic_id = self.label_to_epic.get(name)
            if epic_id is None:
                continue
            project_id = self.epic_mapping.get(epic_id)
            if not project_id:
                continue

            self._linear.link_issue_to_project(issue_id, project_id)
            logger.info(f"Linked issue {issue_id} to project {project_id}")
            return

    # Assignment

    def _assign_story(self, payload: dict[str, Any]) -> None:
        owner_ids = payload.get("owner_ids") or []
        if not owner_ids:
            return

        story_id = payload["id"]
        issue = self._linear.find_issue_by_backreference(story_url(story_id))
        if not issue:
            logger.warning(f"Could not find Linear issue for PT story: {story_id}")
            return
        if issue.get("assignee"):
            logger.debug(f"Issue {issue['id']} already has an assignee")
            return

        owner = self._people.owner_text(owner_ids)
        if owner is None:
            logger.warning(f"Could not find owner information for PT story: {story_id}")
            return

        user = find_matching_user(owner, self.linear_members)
        if user is None:
            logger.warning(f"Could not find matching user for {owner}")
            return

        if self.dry_run:
            logger.info(f"[DRY RUN] Would assign issue {issue['id']} to {user['name']}")
            return

        if self._linear.assign_issue(issue["id"], user["id"]):
            self.stats.issues_assigned += 1
            logger.info(f"Assigned issue {issue['id']} to {user['name']}")
        else:
            self.stats.record_error(f"Failed to assign issue {issue['id']} to {user['name']}")

    def _log_summary(self) -> None:
        s = self.stats
        logger.info(
            f"Epics: {s.epics_created} created, {s.epics_skipped} skipped, {s.epics_failed} failed. "
            f"Stories: {s.stories_created} created, {s.stories_skipped} skipped, {s.stories_failed} failed. "
            f"Assigned: {s.issues_assigned}. Attachments uploaded: {s.attachments_uploaded}."
        )


def create_migrator(config: MigrationConfig, *, dry_run: bool = False) -> Migrator:
    """Wire up clients and the story source described by `config`."""
    pivotal = PivotalClient(config.pivotal_api_token, config.pivotal_project_id)
    linear = LinearClient(
        config.linear_api_token,
        config.linear_team_name,
        rate_limiter=RateLimiter(timezone=config.timezone),
    )
    people = PersonDirectory.from_memberships(pivotal.fetch_project_members())

    export = parse_export(config.csv_path)
    stories: StorySource
    if export is None:
        stories = ApiStorySource(pivotal, people)
    else:
        stories = CsvStorySource(export, pivotal, people)

    return Migrator(pivotal, linear, stories, people, dry_run=dry_run)
