"""
GitHub issue bridge: import open issues as goals and mirror goal status back.

Talks to the GitHub REST API with httpx.  Until owner, repo and token are
all known every operation is a no-op that reports "not configured"; once
configured, HTTP failures raise ``GitHubSyncError`` and callers decide
whether they are fatal.

Status mapping::

    todo, in_progress  -> issue open
    done, archived     -> issue closed

plus exactly one ``status:<status>`` label (other labels are left alone).
"""

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx

from devagent.core.errors import GitHubSyncError
from devagent.core.goals import Goal, GoalStatus

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
PER_PAGE = 100
MAX_PAGES = 10
STATUS_LABEL_PREFIX = "status:"

_CLOSED_STATUSES = (GoalStatus.DONE, GoalStatus.ARCHIVED)


class PullRequestStatus(Enum):
    MERGED = "merged"
    OPEN = "open"
    CLOSED = "closed"
    NOT_FOUND = "not_found"
    NOT_CONFIGURED = "not_configured"


@dataclass
class IssueSyncResult:
    """Counts from one issues -> goals pass."""

    created: int = 0
    updated: int = 0
    unchanged: int = 0
    errors: List[str] = field(default_factory=list)
    configured: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class GoalSyncResult:
    """Outcome of pushing one goal's status to its issue."""

    configured: bool = True
    issue_number: Optional[int] = None
    changed: bool = False
    commented: bool = False


def issue_state_for(status: GoalStatus) -> str:
    return "closed" if status in _CLOSED_STATUSES else "open"


def status_label_for(status: GoalStatus) -> str:
    return f"{STATUS_LABEL_PREFIX}{status.value}"


def completion_comment(goal: Goal) -> str:
    return (
        "**Goal completed**: this issue was marked as completed by Dev Agent.\n\n"
        f"**Goal ID**: {goal.id}\n"
        f"**Completed at**: {goal.completed_at or ''}"
    )


class GitHubBridge:
    """Two-way sync between goals in storage and issues of one repository."""

    def __init__(
        self,
        storage: Any,
        id_generator: Callable[[], str],
        http_client: Optional[httpx.Client] = None,
        milestone: Optional[str] = None,
        base_url: str = GITHUB_API_BASE,
    ) -> None:
        """
        Args:
            storage: Goal storage
            id_generator: Returns a fresh, unused goal id
            http_client: Injected client (tests); created on demand otherwise
            milestone: Only import issues in this milestone (case-insensitive title)
            base_url: API root
        """
        self.storage = storage
        self._new_id = id_generator
        self._client = http_client
        self._owns_client = http_client is None
        self.milestone = milestone
        self.base_url = base_url.rstrip("/")
        self.owner = ""
        self.repo = ""
        self._token = ""

    def initialize(self, owner: str, repo: str, token: Optional[str]) -> bool:
        """Bind the repository and token.  Returns is_configured()."""
        self.owner = owner or ""
        self.repo = repo or ""
        self._token = token or ""
        if self.is_configured():
            logger.info("GitHub bridge configured for %s/%s", self.owner, self.repo)
        else:
            logger.debug("GitHub bridge not configured (owner, repo and token required)")
        return self.is_configured()

    def is_configured(self) -> bool:
        return bool(self.owner and self.repo and self._token)

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=httpx.Timeout(30.0, connect=10.0))
        return self._client

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "Authorization": f"Bearer {self._token}",
            "User-Agent": "devagent",
        }

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}/repos/{self.owner}/{self.repo}{path}"
        try:
            response = self._http().request(method, url, headers=self._headers(), **kwargs)
        except httpx.RequestError as e:
            raise GitHubSyncError(f"GitHub request failed: {e}") from e
        if response.status_code >= 400:
            if response.status_code == 403:
                logger.error("GitHub returned 403; check GITHUB_TOKEN scopes and rate limits")
            raise GitHubSyncError(
                f"GitHub API error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise GitHubSyncError("GitHub response is not JSON") from e

    # ------------------------------------------------------------------
    # Issues -> goals
    # ------------------------------------------------------------------

    def fetch_open_issues(self) -> List[Dict[str, Any]]:
        """Open issues (pull requests excluded), at most MAX_PAGES pages."""
        issues: List[Dict[str, Any]] = []
        for page in range(1, MAX_PAGES + 1):
            data = self._request(
                "GET",
                "/issues",
                params={
                    "state": "open",
                    "per_page": PER_PAGE,
                    "page": page,
                    "sort": "updated",
                    "direction": "desc",
                },
            ) or []
            issues.extend(item for item in data if "pull_request" not in item and self._in_milestone(item))
            if len(data) < PER_PAGE:
                break
        return issues

    def _in_milestone(self, issue: Dict[str, Any]) -> bool:
        if not self.milestone:
            return True
        milestone = issue.get("milestone") or {}
        return str(milestone.get("title", "")).lower() == self.milestone.lower()

    def sync_issues_to_goals(self) -> IssueSyncResult:
        """Create a goal per unseen issue; refresh title/description of known ones."""
        result = IssueSyncResult()
        if not self.is_configured():
            result.configured = False
            return result

        logger.info("Syncing open issues from %s/%s", self.owner, self.repo)
        for issue in self.fetch_open_issues():
            number = issue.get("number")
            try:
                self._sync_issue(issue, result)
            except Exception as e:
                msg = f"Failed to sync issue #{number}: {e}"
                result.errors.append(msg)
                logger.warning(msg)

        logger.info(
            "GitHub sync: %d created, %d updated, %d unchanged, %d errors",
            result.created, result.updated, result.unchanged, len(result.errors),
        )
        return result

    def _sync_issue(self, issue: Dict[str, Any], result: IssueSyncResult) -> None:
        number = int(issue["number"])
        title = str(issue["title"])
        body = issue.get("body") or None

        existing = self.storage.find_goal_by_github_issue(number)
        if existing is None:
            goal = Goal(
                id=self._new_id(),
                title=title,
                description=body,
                status=GoalStatus.TODO,
                github_issue_id=number,
            )
            self.storage.create_goal(goal)
            result.created += 1
            logger.info("Created goal %s from issue #%d", goal.id, number)
        elif existing.title != title or (existing.description or None) != body:
            self.storage.update_goal(existing.id, title=title, description=body)
            result.updated += 1
            logger.info("Updated goal %s from issue #%d", existing.id, number)
        else:
            result.unchanged += 1

    # ------------------------------------------------------------------
    # Goal -> issue
    # ------------------------------------------------------------------

    def sync_goal_status_to_github(self, goal: Goal) -> GoalSyncResult:
        """Mirror goal status to its issue.  Writes nothing when already in sync."""
        if not self.is_configured():
            return GoalSyncResult(configured=False)
        if goal.github_issue_id is None:
            return GoalSyncResult()

        number = goal.github_issue_id
        issue = self._request("GET", f"/issues/{number}") or {}
        current_state = issue.get("state", "open")
        current_labels = [
            name
            for name in (
                label.get("name") if isinstance(label, dict) else label
                for label in issue.get("labels") or []
            )
            if name
        ]

        desired_state = issue_state_for(goal.status)
        desired_labels = [
            name for name in current_labels if not name.startswith(STATUS_LABEL_PREFIX)
        ] + [status_label_for(goal.status)]

        outcome = GoalSyncResult(issue_number=number)
        if current_state == desired_state and sorted(current_labels) == sorted(desired_labels):
            logger.debug("Issue #%d already in sync with goal %s", number, goal.id)
            return outcome

        self._request(
            "PATCH", f"/issues/{number}", json={"state": desired_state, "labels": desired_labels}
        )
        outcome.changed = True
        logger.info("Updated issue #%d: state=%s, label=%s", number, desired_state, desired_labels[-1])

        if goal.status == GoalStatus.DONE and current_state != "closed":
            self._request("POST", f"/issues/{number}/comments", json={"body": completion_comment(goal)})
            outcome.commented = True
            logger.info("Added completion comment to issue #%d", number)
        return outcome

    def check_pull_request_status(self, goal: Goal) -> PullRequestStatus:
        """State of the pull request opened from the goal's branch."""
        if not self.is_configured():
            return PullRequestStatus.NOT_CONFIGURED
        if not goal.branch_name:
            return PullRequestStatus.NOT_FOUND

        pulls = self._request(
            "GET",
            "/pulls",
            params={"state": "all", "head": f"{self.owner}:{goal.branch_name}"},
        ) or []
        if any(pr.get("merged_at") for pr in pulls):
            return PullRequestStatus.MERGED
        if any(pr.get("state") == "open" for pr in pulls):
            return PullRequestStatus.OPEN
        if pulls:
            return PullRequestStatus.CLOSED
        return PullRequestStatus.NOT_FOUND
