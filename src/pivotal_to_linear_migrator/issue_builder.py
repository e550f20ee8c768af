"""Build Linear issue descriptions and project contents from Pivotal data."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from .attachments import render_markdown
from .utils import format_coarse_date

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import Comment, Epic, PullRequestRef, Story, UploadedFile

STORY_URL_TEMPLATE: Final = "https://www.pivotaltracker.com/story/show/{id}"
EPIC_URL_TEMPLATE: Final = "https://www.pivotaltracker.com/epic/show/{id}"

UNASSIGNED: Final = "Unassigned"


def story_url(story_id: int) -> str:
    """Permanent link to a story; embedded in the issue to detect earlier migrations."""
    return STORY_URL_TEMPLATE.format(id=story_id)


def epic_url(epic_id: int) -> str:
    return EPIC_URL_TEMPLATE.format(id=epic_id)


def format_comment_date(comment: Comment) -> str:
    """Date shown in a comment header.

    CSV comments only know the coarse export date, which is shown verbatim.
    """
    if comment.date:
        return comment.date
    if comment.created_at is not None:
        return format_coarse_date(comment.created_at)
    return "unknown date"


def render_comment(comment: Comment, uploaded: Sequence[UploadedFile] = ()) -> str:
    author = comment.author or "Unknown Author"
    body = f"Comment by {author} [{format_comment_date(comment)}]:\n\n{comment.text}"
    if not uploaded:
        return body
    return f"{body}\n\n{render_markdown(uploaded)}"


def render_comment_thread(blocks: Sequence[str]) -> str:
    if not blocks:
        return ""
    return "\n" + "\n---\n".join(blocks)


def _render_pull_request(pr: PullRequestRef) -> str:
    if pr.number is None:
        return f"- {pr.url}"
    suffix = f" ({pr.status})" if pr.status else ""
    return f"- [#{pr.number}]({pr.url}){suffix}"


def _section(title: str, entries: Sequence[str]) -> str:
    if not entries:
        return f"{title}: none"
    return f"{title}:\n" + "\n".join(entries)


def build_story_description(story: Story, comments_markdown: str = "") -> str:
    """Build the full Linear issue description for a story.

    Blocker, task and review sections are only rendered when the source
    provided them.
    """
    lines = [
        story.description or "",
        "",
        "---",
        f"Pivotal Story: {story_url(story.id)}",
        f"Owner: {story.owner or UNASSIGNED}",
        f"Requested by: {story.requester or 'Unknown'}",
        _section("Pull Requests", [_render_pull_request(pr) for pr in story.pull_requests]),
    ]
    if story.blockers is not None:
        lines.append(_section("Blockers", [f" | {b.description} ({b.status})" for b in story.blockers]))
    if story.tasks is not None:
        lines.append(
            _section(
                "Tasks",
                [f" | {t.text} ({'completed' if t.complete else 'not completed'})" for t in story.tasks],
            )
        )
    if story.reviews is not None:
        lines.append(_section("Reviews", [f" | {r.review_type}: {r.reviewer} ({r.status})" for r in story.reviews]))

    description = "\n".join(lines)
    if comments_markdown:
        description += "\n\n---\n# PT Comments:\n" + comments_markdown
    return description


def build_epic_content(epic: Epic, comment_blocks: Sequence[str]) -> str:
    """Build the Linear project content for an epic, including its back-reference."""
    content = f"{epic.description or ''}\n\n---\nPivotal Epic: {epic_url(epic.id)}\n"
    content += f'PT Epic Label: "{epic.label or ""}"'
    content += "\n\n---\nComments:\n"
    for block in comment_blocks:
        content += f"\n{block}\n"
    return content


def render_epic_comment(author: str, text: str, uploaded: Sequence[UploadedFile] = ()) -> str:
    block = f"{author}:\n{text}"
    for u in uploaded:
        block += f"\n\n{u.to_markdown()}"
    return block
