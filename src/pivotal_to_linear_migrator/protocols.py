"""Protocol for the two places stories can come from.

A migration reads stories either from the live Pivotal Tracker API or from
a CSV export. Both deliver the same `Story`/`Comment` models, so the
Migrator never checks which one it is talking to:

- ApiStorySource: paginated REST listing, per-story detail and comment calls
- CsvStorySource: records from the export; comments of stories that have an
  attachment directory are still fetched live, because only the API knows
  which files belong to which comment
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .models import Comment, Story


class StorySource(Protocol):
    """Provides stories in normalized form."""

    def get_stories(self) -> list[Story]:
        """Return all stories of the project.

        The returned stories must at least carry id, title, state, creation
        time, labels and estimate, which is enough to order the migration.
        """
        ...

    def get_story_details(self, story: Story) -> Story:
        """Return the complete story: owner, requester, pull requests and,
        where the source has them, blockers, tasks and reviews.

        Called only for stories that still need migrating.
        """
        ...

    def get_comments(self, story: Story) -> list[Comment]:
        """Return the story's comments in source order, with authors resolved
        and attachment references ready for upload."""
        ...
