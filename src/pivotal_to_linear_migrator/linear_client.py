"""Linear GraphQL API client.

All traffic goes through `LinearClient.post`, which owns the rate limiter:
it waits while a budget is used up, records the budgets reported by every
response and silently retries rate-limited requests.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from collections.abc import Callable, Iterator
from typing import Any, Final

import requests

from .exceptions import LinearAPIError, MigrationError
from .rate_limiter import RateLimiter

logger: logging.Logger = logging.getLogger(__name__)

API_URL: Final = "https://api.linear.app/graphql"

EPIC_BACKREFERENCE_PATTERN: Final = re.compile(r"https://www\.pivotaltracker\.com/epic/show/(\d+)")

# Workflow states the migration relies on, by Linear state type
LINEAR_WORKFLOW: Final[dict[str, list[tuple[str, str]]]] = {
    "backlog": [("Icebox", "#8DE8B5"), ("Backlog", "#E2E2E2")],
    "unstarted": [("Todo", "#F2C94C")],
    "started": [
        ("In Progress", "#5E6AD2"),
        ("Finished", "#9B51E0"),
        ("In Review", "#9B51E0"),
        ("Ready to Merge", "#5E6AD2"),
    ],
    "completed": [("Done", "#0BB97A")],
    "canceled": [
        ("Canceled", "#95A2B3"),
        ("Could not reproduce", "#95A2B3"),
        ("Won't Fix", "#95A2B3"),
        ("Duplicate", "#95A2B3"),
    ],
}

_PAGE_SIZE: Final = 100


@dataclass(frozen=True)
class UploadSlot:
    """A pre-signed upload target returned by the fileUpload mutation."""

    upload_url: str
    asset_url: str
    headers: dict[str, str] = field(default_factory=dict)


def _is_rate_limited(response: requests.Response) -> bool:
    if response.status_code == 429:
        return True
    return 400 <= response.status_code < 500 and "RATELIMITED" in response.text


class LinearClient:
    """Queries and mutations against one Linear team."""

    _session: requests.Session
    _rate_limiter: RateLimiter
    team_name: str

    def __init__(
        self,
        api_token: str,
        team_name: str,
        *,
        session: requests.Session | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.team_name = team_name
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json", "Authorization": api_token})
        self._rate_limiter = rate_limiter or RateLimiter()
        self._team_id: str | None = None
        self._workflow_states: list[dict[str, Any]] | None = None

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    def post(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send a GraphQL document and return its `data`.

        Raises:
            LinearAPIError: On any non-success response that is not a rate
                limit, or when the response carries GraphQL errors
        """
        payload: dict[str, Any] = {"query": query}
        if variables is not None:
            payload["variables"] = variables

        while True:
            self._rate_limiter.acquire()
            response = self._session.post(API_URL, json=payload)
            self._rate_limiter.update(response.headers)
            logger.debug(f"POST {API_URL}: Status {response.status_code}")

            if response.ok:
                break
            if _is_rate_limited(response):
                # The gate waits only if the response headers show a used-up budget
                logger.warning("Rate limit exceeded. Retrying.")
                continue

            logger.error(f"Linear API request failed: {response.status_code}")
            logger.debug(f"Response Body: {response.text}")
            raise LinearAPIError(response.status_code, response.text)

        body: dict[str, Any] = response.json()
        if body.get("errors"):
            msg = f"GraphQL errors: {body['errors']}"
            raise LinearAPIError(response.status_code, response.text, msg)
        return body.get("data") or {}

    def iter_nodes(
        self, query: str, variables: dict[str, Any], connection: Callable[[dict[str, Any]], dict[str, Any]]
    ) -> Iterator[dict[str, Any]]:
        """Yield the nodes of a paginated connection, following `pageInfo` cursors.

        `query` must take `$first` and `$after` variables, and `connection`
        picks the connection object out of the response data.
        """
        after: str | None = None
        while True:
            page = connection(self.post(query, {**variables, "first": _PAGE_SIZE, "after": after}))
            yield from page.get("nodes") or []

            page_info = page.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                return
            after = page_info.get("endCursor")

    # Team

    @property
    def team_id(self) -> str:
        if self._team_id is None:
            self._team_id = self.find_team_id(self.team_name)
        return self._team_id

    def find_team_id(self, team_name: str) -> str:
        query = """
        query Teams {
          teams {
            nodes { id name }
          }
        }
        """
        data = self.post(query)
        for team in data["teams"]["nodes"]:
            if team["name"] == team_name:
                logger.debug(f"Found team '{team_name}' with ID: {team['id']}")
                return team["id"]

        msg = f"Team '{team_name}' not found in Linear"
        raise MigrationError(msg)

    def fetch_team_members(self) -> list[dict[str, Any]]:
        query = """
        query TeamMembers($teamId: String!) {
          team(id: $teamId) {
            members { nodes { id name email } }
          }
        }
        """
        data = self.post(query, {"teamId": self.team_id})
        members: list[dict[str, Any]] = data["team"]["members"]["nodes"]
        logger.debug(f"Fetched {len(members)} team members from Linear")
        return members

    # Workflow states

    def fetch_workflow_states(self) -> list[dict[str, Any]]:
        query = """
        query TeamStates($teamId: String!) {
          team(id: $teamId) {
            states { nodes { id name type color } }
          }
        }
        """
        data = self.post(query, {"teamId": self.team_id})
        return data.get("team", {}).get("states", {}).get("nodes") or []

    def create_workflow_state(self, name: str, state_type: str, color: str) -> dict[str, Any] | None:
        mutation = """
        mutation CreateWorkflowState($input: WorkflowStateCreateInput!) {
          workflowStateCreate(input: $input) {
            workflowState { id name type color }
          }
        }
        """
        variables = {"input": {"name": name, "type": state_type, "color": color, "teamId": self.team_id}}
        data = self.post(mutation, variables)
        return data.get("workflowStateCreate", {}).get("workflowState")

    def setup_workflow_states(self, *, dry_run: bool = False) -> None:
        """Create the workflow states the migration needs, skipping existing names."""
        existing = {state["name"] for state in self.fetch_workflow_states()}
        for state_type, states in LINEAR_WORKFLOW.items():
            for name, color in states:
                if name in existing:
                    continue
                if dry_run:
                    logger.info(f"[DRY RUN] Would create workflow state '{name}' ({state_type})")
                    continue
                self.create_workflow_state(name, state_type, color)
                logger.info(f"Created workflow state '{name}' ({state_type})")

        self._workflow_states = self.fetch_workflow_states()

    def get_state_id(self, name: str) -> str | None:
        if self._workflow_states is None:
            self._workflow_states = self.fetch_workflow_states()
        for state in self._workflow_states:
            if state["name"] == name:
                return state["id"]
        return None

    # Projects

    def find_migrated_projects(self) -> dict[int, str]:
        """Map Pivotal epic ids to the Linear projects that embed their back-reference."""
        query = """
        query Projects($first: Int!, $after: String) {
          projects(first: $first, after: $after) {
            nodes { id name content }
            pageInfo { hasNextPage endCursor }
          }
        }
        """
        mapping: dict[int, str] = {}
        for project in self.iter_nodes(query, {}, lambda data: data["projects"]):
            match = EPIC_BACKREFERENCE_PATTERN.search(project.get("content") or "")
            if match:
                mapping[int(match.group(1))] = project["id"]

        if mapping:
            logger.info(f"Found {len(mapping)} Pivotal epics already migrated to Linear projects")
        else:
            logger.info("No Pivotal Tracker epics found in Linear project contents")
        return mapping

    def create_project(self, name: str, content: str) -> dict[str, Any]:
        mutation = """
        mutation CreateProject($input: ProjectCreateInput!) {
          projectCreate(input: $input) {
            success
            project { id name }
          }
        }
        """
        variables = {"input": {"name": name, "teamIds": [self.team_id], "content": content}}
        data = self.post(mutation, variables)
        project = (data.get("projectCreate") or {}).get("project")
        if not project:
            msg = f"Failed to create project '{name}': {data}"
            raise MigrationError(msg)
        return project

    # Issues

    def find_issue_by_backreference(self, url: str) -> dict[str, Any] | None:
        """Find the team's issue whose description embeds `url`.

        This is how already-migrated stories are recognized, at the cost of at
        least one search request per story. There is no local record of past runs.
        """
        query = """
        query FindIssue($link: String!, $first: Int!, $after: String) {
          issues(filter: { description: { contains: $link } }, first: $first, after: $after) {
            nodes {
              id
              title
              description
              sortOrder
              team { name }
              assignee { id }
            }
            pageInfo { hasNextPage endCursor }
          }
        }
        """
        # ".../story/show/12" must not match ".../story/show/123"
        exact = re.compile(re.escape(url) + r"(?!\d)")
        for issue in self.iter_nodes(query, {"link": url}, lambda data: data["issues"]):
            if (issue.get("team") or {}).get("name") != self.team_name:
                continue
            if exact.search(issue.get("description") or ""):
                return issue
        return None

    def create_issue(
        self,
        title: str,
        description: str,
        *,
        label_ids: list[str],
        estimate: int | None = None,
        assignee_id: str | None = None,
    ) -> dict[str, Any]:
        mutation = """
        mutation CreateIssue($input: IssueCreateInput!) {
          issueCreate(input: $input) {
            success
            issue { id title estimate }
          }
        }
        """
        issue_input: dict[str, Any] = {
            "title": title,
            "description": description,
            "teamId": self.team_id,
            "labelIds": label_ids,
        }
        if estimate is not None:
            issue_input["estimate"] = estimate
        if assignee_id is not None:
            issue_input["assigneeId"] = assignee_id

        data = self.post(mutation, {"input": issue_input})
        issue = (data.get("issueCreate") or {}).get("issue")
        if not issue:
            msg = f"Failed to create issue '{title}': {data}"
            raise MigrationError(msg)
        return issue

    def update_issue(self, issue_id: str, issue_input: dict[str, Any]) -> bool:
        mutation = """
        mutation UpdateIssue($id: String!, $input: IssueUpdateInput!) {
          issueUpdate(id: $id, input: $input) {
            success
            issue { id }
          }
        }
        """
        issue_input = dict(issue_input)
        if issue_input.get("sortOrder") is not None:
            issue_input["sortOrder"] = float(issue_input["sortOrder"])

        data = self.post(mutation, {"id": issue_id, "input": issue_input})
        return bool((data.get("issueUpdate") or {}).get("success"))

    def get_issue(self, issue_id: str) -> dict[str, Any] | None:
        query = """
        query Issue($id: String!) {
          issue(id: $id) { id sortOrder }
        }
        """
        return self.post(query, {"id": issue_id}).get("issue")

    def assign_issue(self, issue_id: str, user_id: str) -> bool:
        return self.update_issue(issue_id, {"assigneeId": user_id})

    def link_issue_to_project(self, issue_id: str, project_id: str) -> bool:
        return self.update_issue(issue_id, {"projectId": project_id})

    # Comments and attachments

    def create_comment(self, issue_id: str, body: str) -> dict[str, Any] | None:
        mutation = """
        mutation CreateComment($input: CommentCreateInput!) {
          commentCreate(input: $input) {
            success
            comment { id body }
          }
        }
        """
        data = self.post(mutation, {"input": {"issueId": issue_id, "body": body}})
        return (data.get("commentCreate") or {}).get("comment")

    def create_attachment(self, issue_id: str, url: str, title: str, content_type: str) -> dict[str, Any] | None:
        mutation = """
        mutation CreateAttachment($input: AttachmentCreateInput!) {
          attachmentCreate(input: $input) {
            success
            attachment { id url }
          }
        }
        """
        variables = {
            "input": {
                "issueId": issue_id,
                "url": url,
                "title": title,
                "subtitle": "Uploaded from Pivotal Tracker",
                "metadata": {"contentType": content_type},
            }
        }
        data = self.post(mutation, variables)
        return (data.get("attachmentCreate") or {}).get("attachment")

    # Files

    def request_upload(self, content_type: str, filename: str, size: int) -> UploadSlot:
        mutation = """
        mutation FileUpload($contentType: String!, $filename: String!, $size: Int!) {
          fileUpload(contentType: $contentType, filename: $filename, size: $size) {
            success
            uploadFile {
              uploadUrl
              assetUrl
              headers { key value }
            }
          }
        }
        """
        data = self.post(mutation, {"contentType": content_type, "filename": filename, "size": size})
        payload = data.get("fileUpload") or {}
        upload_file = payload.get("uploadFile")
        if not payload.get("success") or not upload_file:
            msg = f"Failed to request upload URL for {filename}"
            raise MigrationError(msg)

        return UploadSlot(
            upload_url=upload_file["uploadUrl"],
            asset_url=upload_file["assetUrl"],
            headers={h["key"]: h["value"] for h in upload_file.get("headers") or []},
        )

    def upload_file(self, filename: str, content: bytes, content_type: str) -> str:
        """Upload bytes to Linear storage and return the asset URL."""
        slot = self.request_upload(content_type, filename, len(content))
        headers = {"Content-Type": content_type, "Cache-Control": "public, max-age=31536000", **slot.headers}

        # Pre-signed URL: must not carry the API Authorization header
        response = requests.put(slot.upload_url, data=content, headers=headers)
        if not response.ok:
            logger.error(f"Failed to upload file to Linear: {filename}. Status: {response.status_code}")
            raise LinearAPIError(response.status_code, response.text)

        logger.debug(f"Uploaded {filename}: {slot.asset_url}")
        return slot.asset_url

    # Labels

    def fetch_labels(self) -> list[dict[str, Any]]:
        query = """
        query TeamLabels($teamId: String!, $first: Int!, $after: String) {
          team(id: $teamId) {
            labels(first: $first, after: $after) {
              nodes { id name }
              pageInfo { hasNextPage endCursor }
            }
          }
        }
        """
        labels = list(self.iter_nodes(query, {"teamId": self.team_id}, lambda data: data["team"]["labels"]))
        logger.debug(f"Fetched {len(labels)} labels from Linear")
        return labels

    def create_label(self, name: str) -> str:
        mutation = """
        mutation CreateLabel($input: IssueLabelCreateInput!) {
          issueLabelCreate(input: $input) {
            success
            issueLabel { id name }
          }
        }
        """
        data = self.post(mutation, {"input": {"name": name, "teamId": self.team_id}})
        label = (data.get("issueLabelCreate") or {}).get("issueLabel")
        if not label:
            msg = f"Failed to create label '{name}'"
            raise MigrationError(msg)
        return label["id"]
