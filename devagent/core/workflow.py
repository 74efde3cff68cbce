"""
Goal Lifecycle - state machine over todo / in_progress / done.

Transitions:
    start     todo -> in_progress   checkout develop, pull, create feature branch
    complete  in_progress -> done   must be on the goal branch; delete it afterwards
    stop      in_progress -> todo   back to develop, delete the feature branch
    cleanup   done (branch set)     delete leftover remote/local branches

Failure policy:
- Preconditions (bad id, wrong status, wrong branch, dirty tree) fail the
  operation and leave storage untouched.
- ``start`` performs every git step before writing anything, so a git
  failure leaves no partial state.
- ``complete``/``stop`` keep the status change when branch deletion fails;
  the failure is returned as an advisory warning.
- GitHub sync is always advisory: the issue mirrors the goal, never the
  other way round during a transition.

``archived`` has no transition into it; it is only set by hand.
"""

import logging
import sqlite3
import time
from typing import Any, Callable, Dict, List, Optional, Union

from devagent.core.errors import (
    DevAgentError,
    ErrorKind,
    GitHubSyncError,
    GitOperationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from devagent.core.goals import Goal, GoalStatus, WorkflowContext, utc_now
from devagent.core.logger import ActionLogger
from devagent.core.results import Advisory, CommandResult
from devagent.core.validation import summarize, validate_goal
from devagent.integrations.github import GitHubBridge, PullRequestStatus

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = "GitHub integration is not configured (owner, repo and token are required)"


class GoalWorkflow:
    """Runs goal transitions against storage, git and the GitHub bridge."""

    def __init__(
        self,
        storage: Any,
        git: Any,
        github: GitHubBridge,
        context: WorkflowContext,
        id_generator: Callable[[], str],
        action_logger: Optional[ActionLogger] = None,
    ) -> None:
        self.storage = storage
        self.git = git
        self.github = github
        self.context = context
        self._new_id = id_generator
        self.actions = action_logger

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _run(self, action: str, parameters: Dict[str, Any], func: Callable[[], CommandResult]) -> CommandResult:
        """Run one operation, turning Dev Agent errors into failed envelopes."""
        start = time.perf_counter()
        try:
            result = func()
        except DevAgentError as e:
            logger.warning("%s failed: %s", action, e)
            result = CommandResult.from_error(e)
        duration_ms = round((time.perf_counter() - start) * 1000, 1)

        if self.actions is not None:
            self.actions.log_action(
                action_type=action,
                parameters=parameters,
                result="success" if result.success else "failure",
                duration_ms=duration_ms,
                error=result.error,
                warnings=[str(w) for w in result.warnings] or None,
            )
        return result

    def _require_goal(self, goal_id: str) -> Goal:
        if not self.context.is_valid_goal_id(goal_id):
            raise ValidationError(
                f"Invalid goal ID format: {goal_id!r}. Expected format: g-xxxxxx"
            )
        goal = self.storage.get_goal(goal_id)
        if goal is None:
            raise NotFoundError(f"Goal {goal_id} not found")
        return goal

    @staticmethod
    def _require_status(goal: Goal, expected: GoalStatus) -> None:
        if goal.status != expected:
            raise ValidationError(
                f"Goal {goal.id} is not in '{expected.value}' status. "
                f"Current status: {goal.status.value}"
            )

    def _sync_to_github(self, goal: Optional[Goal], warnings: List[Advisory]) -> None:
        """Mirror the goal to its issue; failures become advisories."""
        if goal is None or not self.github.is_configured():
            return
        try:
            self.github.sync_goal_status_to_github(goal)
        except GitHubSyncError as e:
            logger.warning("Failed to sync goal %s to GitHub: %s", goal.id, e)
            warnings.append(Advisory("github_sync", str(e)))
        except Exception as e:
            # the local transition is already stored
            logger.exception("Unexpected error syncing goal %s to GitHub", goal.id)
            warnings.append(Advisory("github_sync", f"{type(e).__name__}: {e}"))

    def _delete_local_branch(self, branch: str, warnings: List[Advisory]) -> bool:
        try:
            self.git.delete_branch(branch, force=True)
            logger.info("Deleted local feature branch %s", branch)
            return True
        except GitOperationError as e:
            logger.warning("Failed to delete local feature branch %s: %s", branch, e)
            warnings.append(Advisory("delete_branch", str(e)))
            return False

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start_goal(self, goal_id: str) -> CommandResult:
        return self._run("goal_start", {"goal_id": goal_id}, lambda: self._start(goal_id))

    def _start(self, goal_id: str) -> CommandResult:
        goal = self._require_goal(goal_id)
        self._require_status(goal, GoalStatus.TODO)
        if not self.git.is_clean():
            raise StateConflictError(
                "Working directory is not clean. Please commit or stash your changes first."
            )

        develop = self.context.branches.develop
        if self.git.current_branch() != develop:
            self.git.checkout(develop)
            logger.info("Switched to %s", develop)
        self.git.pull(self.context.remote, develop)

        branch = self.context.feature_branch_for(goal.id)
        if self.git.branch_exists(branch):
            self.git.checkout(branch)
            logger.info("Reusing existing feature branch %s", branch)
        else:
            self.git.create_branch(branch)
            logger.info("Created feature branch %s", branch)

        # status and branch_name are written together
        updated = self.storage.update_goal(goal.id, status=GoalStatus.IN_PROGRESS, branch_name=branch)

        warnings: List[Advisory] = []
        self._sync_to_github(updated, warnings)
        logger.info("Started goal %s on %s", goal.id, branch)
        return CommandResult.ok(
            f"Started working on goal {goal.id}",
            data={"goal_id": goal.id, "branch_name": branch, "status": GoalStatus.IN_PROGRESS.value},
            warnings=warnings,
        )

    def complete_goal(self, goal_id: str) -> CommandResult:
        return self._run("goal_complete", {"goal_id": goal_id}, lambda: self._complete(goal_id))

    def _complete(self, goal_id: str) -> CommandResult:
        goal = self._require_goal(goal_id)
        self._require_status(goal, GoalStatus.IN_PROGRESS)
        current = self.git.current_branch()
        if current != goal.branch_name:
            raise StateConflictError(
                f"You must be on branch {goal.branch_name} to complete goal {goal.id}. "
                f"Current branch: {current}"
            )

        completed_at = utc_now()
        updated = self.storage.update_goal(goal.id, status=GoalStatus.DONE, completed_at=completed_at)
        warnings: List[Advisory] = []

        develop = self.context.branches.develop
        try:
            self.git.checkout(develop)
        except GitOperationError as e:
            # still on the feature branch, so it cannot be deleted; cleanup will
            logger.warning("Goal %s is done but checkout of %s failed: %s", goal.id, develop, e)
            warnings.append(Advisory("checkout", str(e)))
        else:
            if goal.branch_name and self._delete_local_branch(goal.branch_name, warnings):
                updated = self.storage.update_goal(goal.id, branch_name=None)

        self._sync_to_github(updated, warnings)
        logger.info("Completed goal %s", goal.id)
        return CommandResult.ok(
            f"Goal {goal.id} completed successfully",
            data={"goal_id": goal.id, "status": GoalStatus.DONE.value, "completed_at": completed_at},
            warnings=warnings,
        )

    def stop_goal(self, goal_id: str) -> CommandResult:
        return self._run("goal_stop", {"goal_id": goal_id}, lambda: self._stop(goal_id))

    def _stop(self, goal_id: str) -> CommandResult:
        goal = self._require_goal(goal_id)
        self._require_status(goal, GoalStatus.IN_PROGRESS)

        develop = self.context.branches.develop
        self.git.checkout(develop)

        warnings: List[Advisory] = []
        if goal.branch_name:
            self._delete_local_branch(goal.branch_name, warnings)

        updated = self.storage.update_goal(goal.id, status=GoalStatus.TODO, branch_name=None)
        self._sync_to_github(updated, warnings)
        logger.info("Stopped goal %s", goal.id)
        return CommandResult.ok(
            f"Stopped working on goal {goal.id}",
            data={"goal_id": goal.id, "status": GoalStatus.TODO.value},
            warnings=warnings,
        )

    def cleanup_completed_goals(self) -> CommandResult:
        return self._run("goal_cleanup", {}, self._cleanup)

    def _cleanup(self) -> CommandResult:
        cleaned: List[str] = []
        errors: List[str] = []
        current = None
        try:
            current = self.git.current_branch()
        except GitOperationError as e:
            logger.debug("Could not read current branch: %s", e)

        for goal in self.storage.list_goals(GoalStatus.DONE):
            branch = goal.branch_name
            if not branch:
                continue
            try:
                try:
                    self.git.delete_remote_branch(self.context.remote, branch)
                    logger.info("Deleted remote branch %s", branch)
                except GitOperationError as e:
                    logger.debug("Remote branch %s not deleted (may not exist): %s", branch, e)
                if branch != current and self.git.branch_exists(branch):
                    self.git.delete_branch(branch, force=True)
                    logger.info("Deleted leftover local branch %s", branch)
                self.storage.update_goal(goal.id, branch_name=None)
                cleaned.append(goal.id)
            except (DevAgentError, sqlite3.Error) as e:
                msg = f"Failed to clean up goal {goal.id}: {e}"
                logger.warning(msg)
                errors.append(msg)

        message = f"Cleaned up {len(cleaned)} completed goals"
        if errors:
            message += f", {len(errors)} errors"
        return CommandResult.ok(
            message,
            data={"cleaned_count": len(cleaned), "cleaned": cleaned, "errors": errors},
            warnings=[Advisory("cleanup", e) for e in errors],
        )

    # ------------------------------------------------------------------
    # Goal management
    # ------------------------------------------------------------------

    def create_goal(self, title: str, description: Optional[str] = None) -> CommandResult:
        return self._run(
            "goal_create",
            {"title": title},
            lambda: self._create(title, description),
        )

    def _create(self, title: str, description: Optional[str]) -> CommandResult:
        goal = Goal(
            id=self._new_id(),
            title=(title or "").strip(),
            description=(description or "").strip() or None,
            status=self.context.default_status,
        )
        summary = summarize(validate_goal(goal, self.storage.list_goals()))
        if summary["errors"]:
            raise ValidationError("; ".join(str(r) for r in summary["errors"]))

        self.storage.create_goal(goal)
        logger.info("Created goal %s: %s", goal.id, goal.title)
        return CommandResult.ok(
            f"Created goal {goal.id}",
            data=goal.to_dict(),
            warnings=[Advisory("validation", str(r)) for r in summary["warnings"] + summary["info"]],
        )

    def list_goals(self, status: Optional[Union[GoalStatus, str]] = None) -> CommandResult:
        return self._run("goal_list", {"status": str(status) if status else None}, lambda: self._list(status))

    def _list(self, status: Optional[Union[GoalStatus, str]]) -> CommandResult:
        if isinstance(status, str):
            try:
                status = GoalStatus(status)
            except ValueError:
                valid = ", ".join(s.value for s in GoalStatus)
                raise ValidationError(f"Unknown status '{status}'. Use one of: {valid}") from None
        goals = self.storage.list_goals(status)
        counts = {s.value: self.storage.count_goals(s) for s in GoalStatus}
        return CommandResult.ok(
            f"Found {len(goals)} goals",
            data={"goals": [g.to_dict() for g in goals], "counts": counts},
        )

    # ------------------------------------------------------------------
    # GitHub
    # ------------------------------------------------------------------

    def _not_configured(self) -> CommandResult:
        return CommandResult.fail(
            NOT_CONFIGURED_MESSAGE, error="GitHub not configured", kind=ErrorKind.NOT_CONFIGURED
        )

    def sync_from_github(self) -> CommandResult:
        return self._run("github_sync", {}, self._sync_from_github)

    def _sync_from_github(self) -> CommandResult:
        if not self.github.is_configured():
            return self._not_configured()
        result = self.github.sync_issues_to_goals()
        return CommandResult.ok(
            f"Sync completed: {result.created} goals created, {result.updated} updated",
            data=result.to_dict(),
            warnings=[Advisory("sync_issue", e) for e in result.errors],
        )

    def sync_goal_to_github(self, goal_id: str) -> CommandResult:
        return self._run("github_push", {"goal_id": goal_id}, lambda: self._sync_goal(goal_id))

    def _sync_goal(self, goal_id: str) -> CommandResult:
        if not self.github.is_configured():
            return self._not_configured()
        goal = self._require_goal(goal_id)
        outcome = self.github.sync_goal_status_to_github(goal)
        if outcome.issue_number is None:
            message = f"Goal {goal.id} has no linked GitHub issue; nothing to sync"
        elif outcome.changed:
            message = f"Goal {goal.id} synced to GitHub issue #{outcome.issue_number}"
        else:
            message = f"GitHub issue #{outcome.issue_number} already matches goal {goal.id}"
        return CommandResult.ok(
            message,
            data={
                "goal_id": goal.id,
                "issue_number": outcome.issue_number,
                "changed": outcome.changed,
                "commented": outcome.commented,
            },
        )

    def check_pull_request_status(self, goal_id: str) -> CommandResult:
        return self._run("github_check_pr", {"goal_id": goal_id}, lambda: self._check_pr(goal_id))

    def _check_pr(self, goal_id: str) -> CommandResult:
        goal = self._require_goal(goal_id)
        if not goal.branch_name:
            raise ValidationError(f"Goal {goal.id} has no associated branch")

        status = self.github.check_pull_request_status(goal)
        if status == PullRequestStatus.NOT_CONFIGURED:
            return self._not_configured()

        data = {"goal_id": goal.id, "pull_request": status.value, "status": goal.status.value}
        if status != PullRequestStatus.MERGED or goal.status == GoalStatus.DONE:
            return CommandResult.ok(f"Pull request for goal {goal.id}: {status.value}", data=data)

        completed_at = utc_now()
        updated = self.storage.update_goal(goal.id, status=GoalStatus.DONE, completed_at=completed_at)
        warnings: List[Advisory] = []
        self._sync_to_github(updated, warnings)
        logger.info("Pull request for goal %s merged; marked done", goal.id)
        data.update(status=GoalStatus.DONE.value, completed_at=completed_at)
        return CommandResult.ok(
            f"Goal {goal.id} marked as done after pull request merge",
            data=data,
            warnings=warnings,
        )
