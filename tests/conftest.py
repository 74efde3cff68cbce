"""Shared fixtures: isolated project root, temp SQLite storage, fake git."""

import os
import sys
from typing import List, Optional

import pytest

# Ensure project root is on the path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from devagent.core.errors import GitOperationError
from devagent.core.goals import Goal, GoalStatus, WorkflowContext
from devagent.core.ids import GoalIdGenerator
from devagent.integrations.github import GitHubBridge
from devagent.storage.sqlite_store import SQLiteStorage
from devagent.utils import config, paths


class FakeGit:
    """In-memory stand-in for GitRepository that records every call."""

    def __init__(self, current: str = "develop", clean: bool = True) -> None:
        self.current = current
        self.clean = clean
        self.branches = {"main", "develop"}
        self.calls: List[tuple] = []
        self.fail_on: dict = {}

    def _maybe_fail(self, op: str) -> None:
        self.calls.append((op,))
        if op in self.fail_on:
            raise GitOperationError(op, self.fail_on[op], returncode=1)

    def is_repository(self) -> bool:
        return True

    def is_clean(self) -> bool:
        return self.clean

    def current_branch(self) -> str:
        return self.current

    def branch_exists(self, name: str) -> bool:
        return name in self.branches

    def checkout(self, branch: str) -> None:
        self._maybe_fail("checkout")
        if branch not in self.branches:
            raise GitOperationError("checkout", f"pathspec '{branch}' did not match", returncode=1)
        self.current = branch

    def pull(self, remote: str, branch: str) -> None:
        self._maybe_fail("pull")

    def create_branch(self, name: str) -> None:
        self._maybe_fail("create_branch")
        self.branches.add(name)
        self.current = name

    def delete_branch(self, name: str, force: bool = True) -> None:
        self._maybe_fail("delete_branch")
        self.branches.discard(name)

    def delete_remote_branch(self, remote: str, name: str) -> None:
        self._maybe_fail("delete_remote_branch")

    def push(self, remote: str, branch: Optional[str] = None, force_with_lease: bool = False) -> None:
        self._maybe_fail("push")


@pytest.fixture(autouse=True)
def project_root(tmp_path, monkeypatch):
    """Point DEVAGENT_ROOT at an empty temp dir and clear cached config."""
    root = tmp_path / "project"
    (root / "config").mkdir(parents=True)
    monkeypatch.setenv("DEVAGENT_ROOT", str(root))
    for var in ("GITHUB_TOKEN", "OPENAI_API_KEY", "GEMINI_API_KEY", "ANTHROPIC_API_KEY",
                "CUSTOM_LLM_API_KEY", "CUSTOM_LLM_BASE_URL"):
        monkeypatch.delenv(var, raising=False)
    paths.reset_base_path()
    config.reload()
    yield root
    paths.reset_base_path()
    config.reload()


@pytest.fixture
def storage(tmp_path):
    return SQLiteStorage(str(tmp_path / "goals.db"))


@pytest.fixture
def context():
    return WorkflowContext()


@pytest.fixture
def fake_git():
    return FakeGit()


@pytest.fixture
def bridge(storage):
    """Bridge without owner/repo/token: every call reports 'not configured'."""
    return GitHubBridge(storage, GoalIdGenerator(storage))


def add_goal(storage, goal_id: str, title: str = "Some goal", **fields) -> Goal:
    goal = Goal(id=goal_id, title=title, **fields)
    storage.create_goal(goal)
    return goal


@pytest.fixture
def make_goal(storage):
    def _make(goal_id: str, title: str = "Some goal", status: GoalStatus = GoalStatus.TODO, **fields) -> Goal:
        return add_goal(storage, goal_id, title, status=status, **fields)

    return _make
