"""
Git branch operations for the goal workflow.

Thin wrapper around the ``git`` command line.  Every method either
succeeds or raises ``GitOperationError`` carrying git's stderr and exit
code; nothing is retried here.

Usage::

    from devagent.utils.git import GitRepository

    repo = GitRepository("/path/to/project")
    if repo.is_clean():
        repo.checkout("develop")
        repo.pull("origin", "develop")
        repo.create_branch("feature/g-a1b2c3")

All operations are non-interactive (no credential prompt, no pager).
"""

import logging
import os
import subprocess
from typing import List, Optional

from devagent.core.errors import GitOperationError
from devagent.utils.paths import base_path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
# pull/push talk to the network
NETWORK_TIMEOUT = 120


class GitRepository:
    """Git working copy rooted at ``cwd`` (default: project root)."""

    def __init__(self, cwd: Optional[str] = None, timeout: int = DEFAULT_TIMEOUT) -> None:
        self.cwd = cwd or base_path()
        self.timeout = timeout

    def _git(self, *args: str, timeout: Optional[int] = None) -> str:
        """Run a git command and return its stdout.

        Raises GitOperationError on a non-zero exit, a timeout, or when the
        git executable cannot be started.
        """
        cmd = ["git"] + list(args)
        env = {
            **os.environ,
            "GIT_TERMINAL_PROMPT": "0",   # never prompt
            "GIT_PAGER": "",              # no pager
        }
        limit = timeout or self.timeout
        logger.debug("Running: %s (cwd=%s)", " ".join(cmd), self.cwd)
        try:
            result = subprocess.run(
                cmd,
                cwd=self.cwd,
                capture_output=True,
                text=True,
                timeout=limit,
                env=env,
            )
        except subprocess.TimeoutExpired as e:
            raise GitOperationError(args[0], f"timed out after {limit}s") from e
        except OSError as e:
            raise GitOperationError(args[0], str(e)) from e

        if result.returncode != 0:
            stderr = (result.stderr or result.stdout).strip()
            logger.debug(
                "git %s failed (rc=%d): %s", args[0], result.returncode, stderr[:200]
            )
            raise GitOperationError(args[0], stderr, returncode=result.returncode)
        return result.stdout

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_repository(self) -> bool:
        try:
            return self._git("rev-parse", "--is-inside-work-tree").strip() == "true"
        except GitOperationError:
            return False

    def is_clean(self) -> bool:
        """True if the working tree has no uncommitted or untracked changes."""
        return not self._git("status", "--porcelain").strip()

    def current_branch(self) -> str:
        return self._git("rev-parse", "--abbrev-ref", "HEAD").strip()

    def branch_exists(self, name: str) -> bool:
        try:
            self._git("rev-parse", "--verify", "--quiet", f"refs/heads/{name}")
            return True
        except GitOperationError:
            return False

    def local_branches(self) -> List[str]:
        out = self._git("for-each-ref", "--format=%(refname:short)", "refs/heads/")
        return [b.strip() for b in out.splitlines() if b.strip()]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def checkout(self, branch: str) -> None:
        self._git("checkout", branch)
        logger.debug("Checked out %s", branch)

    def pull(self, remote: str, branch: str) -> None:
        self._git("pull", remote, branch, timeout=NETWORK_TIMEOUT)
        logger.debug("Pulled %s/%s", remote, branch)

    def create_branch(self, name: str) -> None:
        """Create ``name`` from HEAD and check it out."""
        self._git("checkout", "-b", name)
        logger.debug("Created branch %s", name)

    def delete_branch(self, name: str, force: bool = True) -> None:
        self._git("branch", "-D" if force else "-d", name)
        logger.debug("Deleted local branch %s", name)

    def delete_remote_branch(self, remote: str, name: str) -> None:
        self._git("push", remote, "--delete", name, timeout=NETWORK_TIMEOUT)
        logger.debug("Deleted remote branch %s/%s", remote, name)

    def push(self, remote: str, branch: Optional[str] = None, force_with_lease: bool = False) -> None:
        args = ["push"]
        if force_with_lease:
            args.append("--force-with-lease")
        args.append(remote)
        if branch:
            args.append(branch)
        self._git(*args, timeout=NETWORK_TIMEOUT)
        logger.debug("Pushed %s to %s", branch or "HEAD", remote)
