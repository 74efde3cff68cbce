"""
Goal model and workflow context.

A goal is a tracked unit of work.  Its status moves through
todo -> in_progress -> done (or back to todo); ``archived`` is terminal
and only set by hand.
"""

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

DEFAULT_GOAL_ID_PATTERN = r"^g-[a-z0-9]{6}$"


def utc_now() -> str:
    """ISO-8601 UTC timestamp with millisecond precision."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


class GoalStatus(Enum):
    """Lifecycle status of a goal."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    ARCHIVED = "archived"


@dataclass
class Goal:
    """Single goal row."""

    id: str
    title: str
    status: GoalStatus = GoalStatus.TODO
    description: Optional[str] = None
    branch_name: Optional[str] = None
    github_issue_id: Optional[int] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    completed_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "Goal":
        """Build from a ``sqlite3.Row`` (or any mapping with the column names)."""
        return cls(
            id=row["id"],
            title=row["title"],
            status=GoalStatus(row["status"]),
            description=row["description"],
            branch_name=row["branch_name"],
            github_issue_id=row["github_issue_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            completed_at=row["completed_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        d = asdict(self)
        d["status"] = self.status.value
        return d


@dataclass(frozen=True)
class BranchConfig:
    """Branch naming scheme."""

    main: str = "main"
    develop: str = "develop"
    feature_prefix: str = "feature"
    release_prefix: str = "release"


@dataclass(frozen=True)
class WorkflowContext:
    """Read-only settings bound once per process."""

    github_owner: str = ""
    github_repo: str = ""
    branches: BranchConfig = field(default_factory=BranchConfig)
    goal_id_pattern: str = DEFAULT_GOAL_ID_PATTERN
    default_status: GoalStatus = GoalStatus.TODO
    remote: str = "origin"

    def is_valid_goal_id(self, goal_id: str) -> bool:
        return bool(re.fullmatch(self.goal_id_pattern, goal_id or ""))

    def feature_branch_for(self, goal_id: str) -> str:
        """Feature branch name for a goal: ``<feature_prefix>/<id>``."""
        return f"{self.branches.feature_prefix}/{goal_id}"
