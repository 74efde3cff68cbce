"""
Tests for the GitHub issue bridge against an in-memory API (httpx.MockTransport).

Validates:
- unconfigured bridge is a no-op
- issues -> goals: create once, then update/unchanged; pull requests skipped
- goal -> issue: idempotent, completion comment only when closing
- pull request status resolution
"""

import json

import httpx
import pytest

from devagent.core.errors import GitHubSyncError
from devagent.core.goals import Goal, GoalStatus
from devagent.core.ids import GoalIdGenerator
from devagent.integrations.github import (
    GitHubBridge,
    PullRequestStatus,
    completion_comment,
    issue_state_for,
    status_label_for,
)


class FakeGitHub:
    """Just enough of the REST API for the bridge."""

    def __init__(self):
        self.issues = {}
        self.pulls = []
        self.requests = []
        self.fail_status = None

    def add_issue(self, number, title, body=None, labels=(), state="open", milestone=None, is_pull=False):
        issue = {
            "number": number,
            "title": title,
            "body": body,
            "state": state,
            "labels": [{"name": name} for name in labels],
            "milestone": {"title": milestone} if milestone else None,
        }
        if is_pull:
            issue["pull_request"] = {"url": "..."}
        self.issues[number] = issue
        return issue

    def writes(self):
        return [(m, p) for m, p in self.requests if m != "GET"]

    def __call__(self, request):
        path = request.url.path.replace("/repos/acme/widgets", "", 1)
        self.requests.append((request.method, path))
        if self.fail_status:
            return httpx.Response(self.fail_status)

        if request.method == "GET" and path == "/issues":
            page = int(request.url.params.get("page", "1"))
            per_page = int(request.url.params.get("per_page", "100"))
            items = [i for i in self.issues.values() if i["state"] == "open"]
            return httpx.Response(200, json=items[(page - 1) * per_page:page * per_page])

        if path.startswith("/issues/") and path.endswith("/comments"):
            number = int(path.split("/")[2])
            self.issues[number].setdefault("comments", []).append(json.loads(request.content)["body"])
            return httpx.Response(201, json={"id": 1})

        if path.startswith("/issues/"):
            number = int(path.split("/")[2])
            if number not in self.issues:
                return httpx.Response(404)
            if request.method == "PATCH":
                patch = json.loads(request.content)
                self.issues[number]["state"] = patch["state"]
                self.issues[number]["labels"] = [{"name": n} for n in patch["labels"]]
            return httpx.Response(200, json=self.issues[number])

        if path == "/pulls":
            head = request.url.params.get("head", "")
            return httpx.Response(200, json=[p for p in self.pulls if p["head"] == head])

        return httpx.Response(404)


@pytest.fixture
def github():
    return FakeGitHub()


@pytest.fixture
def configured(storage, github):
    bridge = GitHubBridge(
        storage,
        GoalIdGenerator(storage),
        http_client=httpx.Client(transport=httpx.MockTransport(github)),
    )
    bridge.initialize("acme", "widgets", "ghp_test")
    return bridge


# ── Helpers ────────────────────────────────────────────────────────

class TestMapping:

    def test_issue_state(self):
        assert issue_state_for(GoalStatus.TODO) == "open"
        assert issue_state_for(GoalStatus.IN_PROGRESS) == "open"
        assert issue_state_for(GoalStatus.DONE) == "closed"
        assert issue_state_for(GoalStatus.ARCHIVED) == "closed"

    def test_status_label(self):
        assert status_label_for(GoalStatus.IN_PROGRESS) == "status:in_progress"

    def test_completion_comment_mentions_goal(self):
        text = completion_comment(Goal(id="g-abc123", title="x", completed_at="2024-01-01T00:00:00.000Z"))
        assert "g-abc123" in text
        assert "2024-01-01T00:00:00.000Z" in text


# ── Configuration ──────────────────────────────────────────────────

class TestNotConfigured:

    def test_initialize_requires_all_parts(self, bridge):
        assert not bridge.initialize("acme", "", "token")
        assert not bridge.initialize("acme", "widgets", None)
        assert bridge.initialize("acme", "widgets", "token")

    def test_operations_are_noops(self, bridge):
        goal = Goal(id="g-abc123", title="x", github_issue_id=1, branch_name="feature/g-abc123")
        assert bridge.sync_issues_to_goals().configured is False
        assert bridge.sync_goal_status_to_github(goal).configured is False
        assert bridge.check_pull_request_status(goal) == PullRequestStatus.NOT_CONFIGURED


# ── Issues -> goals ────────────────────────────────────────────────

class TestIssueSync:

    def test_creates_goals_once(self, configured, github, storage):
        github.add_issue(1, "Add login page", body="Use OAuth")
        github.add_issue(2, "Fix crash on start")

        first = configured.sync_issues_to_goals()
        second = configured.sync_issues_to_goals()

        assert (first.created, first.updated, first.unchanged) == (2, 0, 0)
        assert (second.created, second.updated, second.unchanged) == (0, 0, 2)
        goal = storage.find_goal_by_github_issue(1)
        assert goal.title == "Add login page"
        assert goal.description == "Use OAuth"
        assert goal.status == GoalStatus.TODO
        assert storage.count_goals() == 2

    def test_updates_changed_issue(self, configured, github, storage):
        github.add_issue(7, "Old title")
        configured.sync_issues_to_goals()
        github.issues[7]["title"] = "New title"

        result = configured.sync_issues_to_goals()

        assert (result.created, result.updated) == (0, 1)
        assert storage.find_goal_by_github_issue(7).title == "New title"

    def test_status_is_never_imported(self, configured, github, storage):
        github.add_issue(3, "Some work")
        configured.sync_issues_to_goals()
        goal = storage.find_goal_by_github_issue(3)
        storage.update_goal(goal.id, status=GoalStatus.IN_PROGRESS)

        configured.sync_issues_to_goals()

        assert storage.get_goal(goal.id).status == GoalStatus.IN_PROGRESS

    def test_pull_requests_skipped(self, configured, github, storage):
        github.add_issue(4, "A real issue")
        github.add_issue(5, "A pull request", is_pull=True)

        result = configured.sync_issues_to_goals()

        assert result.created == 1
        assert storage.find_goal_by_github_issue(5) is None

    def test_pagination(self, configured, github, storage):
        for number in range(1, 151):
            github.add_issue(number, f"Issue number {number}")

        result = configured.sync_issues_to_goals()

        assert result.created == 150
        pages = [p for m, p in github.requests if p == "/issues"]
        assert len(pages) == 2

    def test_milestone_filter(self, storage, github):
        github.add_issue(1, "In scope", milestone="v1.0")
        github.add_issue(2, "Out of scope", milestone="v2.0")
        github.add_issue(3, "No milestone")
        bridge = GitHubBridge(
            storage,
            GoalIdGenerator(storage),
            http_client=httpx.Client(transport=httpx.MockTransport(github)),
            milestone="V1.0",
        )
        bridge.initialize("acme", "widgets", "ghp_test")

        assert bridge.sync_issues_to_goals().created == 1
        assert storage.find_goal_by_github_issue(1) is not None

    def test_http_error_raises(self, configured, github):
        github.fail_status = 500
        with pytest.raises(GitHubSyncError) as exc_info:
            configured.sync_issues_to_goals()
        assert exc_info.value.status_code == 500

    def test_sends_auth_headers(self, storage):
        seen = {}

        def handler(request):
            seen["headers"] = request.headers
            return httpx.Response(200, json=[])

        bridge = GitHubBridge(storage, GoalIdGenerator(storage), http_client=httpx.Client(transport=httpx.MockTransport(handler)))
        bridge.initialize("acme", "widgets", "ghp_test")
        bridge.sync_issues_to_goals()

        assert seen["headers"]["Authorization"] == "Bearer ghp_test"
        assert seen["headers"]["Accept"] == "application/vnd.github+json"


# ── Goal -> issue ──────────────────────────────────────────────────

class TestGoalStatusSync:

    def test_in_progress_sets_label(self, configured, github):
        github.add_issue(9, "Work", labels=["bug", "status:todo"])
        goal = Goal(id="g-abc123", title="Work", status=GoalStatus.IN_PROGRESS, github_issue_id=9)

        result = configured.sync_goal_status_to_github(goal)

        assert result.changed and not result.commented
        names = sorted(label["name"] for label in github.issues[9]["labels"])
        assert names == ["bug", "status:in_progress"]
        assert github.issues[9]["state"] == "open"

    def test_done_closes_and_comments_once(self, configured, github):
        github.add_issue(9, "Work", labels=["status:in_progress"])
        goal = Goal(id="g-abc123", title="Work", status=GoalStatus.DONE, github_issue_id=9,
                    completed_at="2024-05-01T10:00:00.000Z")

        first = configured.sync_goal_status_to_github(goal)
        second = configured.sync_goal_status_to_github(goal)

        assert first.changed and first.commented
        assert not second.changed and not second.commented
        assert github.issues[9]["state"] == "closed"
        assert len(github.issues[9]["comments"]) == 1

    def test_already_in_sync_writes_nothing(self, configured, github):
        github.add_issue(9, "Work", labels=["status:todo"])
        goal = Goal(id="g-abc123", title="Work", status=GoalStatus.TODO, github_issue_id=9)

        result = configured.sync_goal_status_to_github(goal)

        assert not result.changed
        assert github.writes() == []

    def test_labels_without_name_are_ignored(self, configured, github):
        github.add_issue(9, "Work")
        github.issues[9]["labels"] = [{"id": 1}, {"name": "bug"}]
        goal = Goal(id="g-abc123", title="Work", status=GoalStatus.IN_PROGRESS, github_issue_id=9)

        result = configured.sync_goal_status_to_github(goal)

        assert result.changed
        names = sorted(label["name"] for label in github.issues[9]["labels"])
        assert names == ["bug", "status:in_progress"]

    def test_goal_without_issue(self, configured, github):
        result = configured.sync_goal_status_to_github(Goal(id="g-abc123", title="Local only"))
        assert result.issue_number is None
        assert github.requests == []

    def test_missing_issue_raises(self, configured):
        with pytest.raises(GitHubSyncError):
            configured.sync_goal_status_to_github(Goal(id="g-abc123", title="x", github_issue_id=404))


# ── Pull requests ──────────────────────────────────────────────────

class TestPullRequestStatus:

    def _goal(self):
        return Goal(id="g-abc123", title="x", branch_name="feature/g-abc123")

    def test_merged_wins(self, configured, github):
        github.pulls = [
            {"head": "acme:feature/g-abc123", "state": "closed", "merged_at": None},
            {"head": "acme:feature/g-abc123", "state": "closed", "merged_at": "2024-05-01T00:00:00Z"},
        ]
        assert configured.check_pull_request_status(self._goal()) == PullRequestStatus.MERGED

    def test_open(self, configured, github):
        github.pulls = [{"head": "acme:feature/g-abc123", "state": "open", "merged_at": None}]
        assert configured.check_pull_request_status(self._goal()) == PullRequestStatus.OPEN

    def test_closed_unmerged(self, configured, github):
        github.pulls = [{"head": "acme:feature/g-abc123", "state": "closed", "merged_at": None}]
        assert configured.check_pull_request_status(self._goal()) == PullRequestStatus.CLOSED

    def test_not_found(self, configured, github):
        assert configured.check_pull_request_status(self._goal()) == PullRequestStatus.NOT_FOUND

    def test_no_branch(self, configured, github):
        goal = Goal(id="g-abc123", title="x")
        assert configured.check_pull_request_status(goal) == PullRequestStatus.NOT_FOUND
        assert github.requests == []
