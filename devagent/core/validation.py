"""
Goal validation rules.

Each rule inspects a goal against the other stored goals and returns a
``RuleResult`` with a severity.  Only ``error`` results block goal creation;
warnings and info are reported back to the caller.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from devagent.core.goals import Goal, GoalStatus

logger = logging.getLogger(__name__)

ERROR = "error"
WARNING = "warning"
INFO = "info"

MIN_TITLE_LENGTH = 3
MAX_TITLE_LENGTH = 100
MAX_IN_PROGRESS = 3
SHORT_DESCRIPTION = 10
LONG_DESCRIPTION = 50


@dataclass
class RuleResult:
    rule: str
    valid: bool
    severity: str
    message: str = ""
    suggestion: Optional[str] = None

    def __str__(self) -> str:
        return self.message if not self.suggestion else f"{self.message} ({self.suggestion})"


def _ok(rule: str) -> RuleResult:
    return RuleResult(rule, True, INFO)


def unique_title(goal: Goal, others: List[Goal]) -> RuleResult:
    title = goal.title.strip().lower()
    if any(g.id != goal.id and g.title.strip().lower() == title for g in others):
        return RuleResult(
            "unique-title", False, ERROR,
            f'Goal title "{goal.title}" already exists',
            "Use a unique title or check existing goals",
        )
    return _ok("unique-title")


def title_format(goal: Goal, others: List[Goal]) -> RuleResult:
    title = (goal.title or "").strip()
    if not title:
        return RuleResult(
            "title-format", False, ERROR, "Goal title cannot be empty",
            "Provide a descriptive title for the goal",
        )
    if len(title) < MIN_TITLE_LENGTH:
        return RuleResult(
            "title-format", False, WARNING, "Goal title is too short",
            f"Use a more descriptive title (at least {MIN_TITLE_LENGTH} characters)",
        )
    if len(title) > MAX_TITLE_LENGTH:
        return RuleResult(
            "title-format", False, WARNING, "Goal title is too long",
            f"Keep title concise (under {MAX_TITLE_LENGTH} characters)",
        )
    return _ok("title-format")


def branch_consistency(goal: Goal, others: List[Goal]) -> RuleResult:
    if goal.branch_name and goal.status == GoalStatus.TODO:
        return RuleResult(
            "branch-consistency", False, WARNING,
            "Goal with branch should not be in 'todo' status",
            "Update status to 'in_progress' or remove branch name",
        )
    if not goal.branch_name and goal.status == GoalStatus.IN_PROGRESS:
        return RuleResult(
            "branch-consistency", False, WARNING,
            "Goal in progress should have a branch name",
            "Create a feature branch for this goal",
        )
    return _ok("branch-consistency")


def in_progress_limit(goal: Goal, others: List[Goal]) -> RuleResult:
    if goal.status == GoalStatus.IN_PROGRESS:
        count = sum(1 for g in others if g.status == GoalStatus.IN_PROGRESS and g.id != goal.id) + 1
        if count > MAX_IN_PROGRESS:
            return RuleResult(
                "in-progress-limit", False, WARNING, "Too many goals in progress",
                "Complete or pause some goals before starting new ones",
            )
    return _ok("in-progress-limit")


def github_consistency(goal: Goal, others: List[Goal]) -> RuleResult:
    if goal.github_issue_id is not None:
        for g in others:
            if g.id != goal.id and g.github_issue_id == goal.github_issue_id:
                return RuleResult(
                    "github-consistency", False, ERROR,
                    f"GitHub issue #{goal.github_issue_id} is already linked to goal {g.id}",
                    "Each GitHub issue should be linked to only one goal",
                )
    return _ok("github-consistency")


def description_quality(goal: Goal, others: List[Goal]) -> RuleResult:
    description = (goal.description or "").strip()
    if not description:
        return RuleResult(
            "description-quality", True, WARNING, "Goal has no description",
            "Consider adding a description to clarify the goal requirements",
        )
    if len(description) < SHORT_DESCRIPTION:
        return RuleResult(
            "description-quality", True, WARNING, "Goal description is very short",
            "Provide more details about what needs to be accomplished",
        )
    lowered = description.lower()
    has_criteria = (
        "acceptance criteria" in lowered
        or "- [ ]" in description
        or "* [ ]" in description
        or "1." in description
        or "should" in lowered
    )
    if not has_criteria and len(description) > LONG_DESCRIPTION:
        return RuleResult(
            "description-quality", True, INFO,
            "Goal description lacks clear acceptance criteria",
            "Consider adding acceptance criteria or a checklist",
        )
    return _ok("description-quality")


RULES: List[Callable[[Goal, List[Goal]], RuleResult]] = [
    unique_title,
    title_format,
    branch_consistency,
    in_progress_limit,
    github_consistency,
    description_quality,
]


def validate_goal(goal: Goal, others: List[Goal]) -> List[RuleResult]:
    """Run every rule; a rule that crashes is reported as an error result."""
    results = []
    for rule in RULES:
        try:
            results.append(rule(goal, others))
        except Exception as e:
            logger.error("Validation rule %s failed: %s", rule.__name__, e)
            results.append(RuleResult(rule.__name__, False, ERROR, f"Validation rule {rule.__name__} failed: {e}"))
    return results


def summarize(results: List[RuleResult]) -> Dict[str, List[RuleResult]]:
    """Split results by severity; only failed error-level results count as errors."""
    return {
        "errors": [r for r in results if not r.valid and r.severity == ERROR],
        "warnings": [r for r in results if r.severity == WARNING],
        "info": [r for r in results if r.severity == INFO and r.message],
    }
