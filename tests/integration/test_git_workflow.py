"""
End-to-end goal lifecycle against a real git repository.

Builds a throwaway repo with ``main`` and ``develop`` plus a bare ``origin``
in tmp_path, then drives DevAgent through create -> start -> complete and
start -> stop.  Skipped when git is not installed.

Usage:
    pytest tests/integration/test_git_workflow.py -v
"""

import shutil
import subprocess

import pytest

from devagent.core.agent import DevAgent
from devagent.core.errors import ErrorKind, GitOperationError
from devagent.core.goals import GoalStatus
from devagent.models.translation_client import TranslationClient
from devagent.utils.git import GitRepository

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _run(cwd, *args):
    subprocess.run(["git"] + list(args), cwd=str(cwd), check=True, capture_output=True, text=True)


@pytest.fixture
def repo(tmp_path):
    origin = tmp_path / "origin.git"
    work = tmp_path / "work"
    work.mkdir()
    _run(tmp_path, "init", "--bare", str(origin))
    _run(work, "init")
    _run(work, "symbolic-ref", "HEAD", "refs/heads/main")
    _run(work, "config", "user.email", "dev@example.com")
    _run(work, "config", "user.name", "Dev")
    (work / "README.md").write_text("project\n", encoding="utf-8")
    _run(work, "add", "README.md")
    _run(work, "commit", "-m", "initial")
    _run(work, "branch", "develop")
    _run(work, "remote", "add", "origin", str(origin))
    _run(work, "push", "origin", "main", "develop")
    return work


@pytest.fixture
def agent(repo, storage, bridge, context):
    agent = DevAgent(
        storage=storage,
        git=GitRepository(str(repo)),
        github=bridge,
        translation=TranslationClient(providers={}),
        context=context,
    )
    yield agent
    agent.close()


# ── GitRepository ──────────────────────────────────────────────────

class TestGitRepository:

    def test_queries(self, repo):
        git = GitRepository(str(repo))
        assert git.is_repository()
        assert git.is_clean()
        assert git.current_branch() == "main"
        assert git.branch_exists("develop")
        assert not git.branch_exists("feature/g-abc123")
        assert sorted(git.local_branches()) == ["develop", "main"]

    def test_untracked_file_is_dirty(self, repo):
        (repo / "scratch.txt").write_text("wip", encoding="utf-8")
        assert not GitRepository(str(repo)).is_clean()

    def test_failure_carries_stderr(self, repo):
        with pytest.raises(GitOperationError) as exc_info:
            GitRepository(str(repo)).checkout("no-such-branch")
        assert exc_info.value.returncode != 0
        assert exc_info.value.stderr

    def test_not_a_repository(self, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()
        assert not GitRepository(str(empty)).is_repository()


# ── Goal lifecycle ─────────────────────────────────────────────────

class TestLifecycle:

    def test_start_complete(self, agent, repo, storage):
        goal_id = agent.create_goal("Add login page", "Users should be able to sign in").data["id"]

        started = agent.start_goal(goal_id)
        assert started.success, started.error
        git = GitRepository(str(repo))
        assert git.current_branch() == f"feature/{goal_id}"

        (repo / "login.py").write_text("def login():\n    return True\n", encoding="utf-8")
        _run(repo, "add", "login.py")
        _run(repo, "commit", "-m", "login")

        completed = agent.complete_goal(goal_id)
        assert completed.success, completed.error
        assert git.current_branch() == "develop"
        assert not git.branch_exists(f"feature/{goal_id}")

        goal = storage.get_goal(goal_id)
        assert goal.status == GoalStatus.DONE
        assert goal.branch_name is None
        assert goal.completed_at

    def test_start_then_stop(self, agent, repo, storage):
        goal_id = agent.create_goal("Refactor the settings page").data["id"]
        assert agent.start_goal(goal_id).success

        stopped = agent.stop_goal(goal_id)

        assert stopped.success, stopped.error
        git = GitRepository(str(repo))
        assert git.current_branch() == "develop"
        assert not git.branch_exists(f"feature/{goal_id}")
        assert storage.get_goal(goal_id).status == GoalStatus.TODO

    def test_dirty_tree_blocks_start(self, agent, repo, storage):
        goal_id = agent.create_goal("Write the changelog").data["id"]
        (repo / "notes.txt").write_text("uncommitted", encoding="utf-8")

        result = agent.start_goal(goal_id)

        assert not result.success
        assert result.error_kind == ErrorKind.STATE_CONFLICT
        assert storage.get_goal(goal_id).status == GoalStatus.TODO

    def test_cleanup_removes_pushed_branch(self, agent, repo, storage, make_goal):
        git = GitRepository(str(repo))
        git.checkout("develop")
        git.create_branch("feature/g-a1b2c3")
        git.push("origin", "feature/g-a1b2c3")
        git.checkout("develop")
        make_goal("g-a1b2c3", status=GoalStatus.DONE, branch_name="feature/g-a1b2c3")

        first = agent.cleanup_completed_goals()
        second = agent.cleanup_completed_goals()

        assert first.data["cleaned"] == ["g-a1b2c3"]
        assert second.data["cleaned_count"] == 0
        assert not git.branch_exists("feature/g-a1b2c3")
        remote = subprocess.run(
            ["git", "ls-remote", "--heads", "origin", "feature/g-a1b2c3"],
            cwd=str(repo), capture_output=True, text=True, check=True,
        )
        assert remote.stdout.strip() == ""
        assert storage.get_goal("g-a1b2c3").branch_name is None

    def test_initialize_project(self, agent):
        assert agent.initialize_project().success
