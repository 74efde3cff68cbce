"""
Goal storage: goals, key/value config and LLM providers in SQLite (data/devagent.db).

Every public method opens its own connection and commits on exit, so each
call is atomic at the row level.  No transaction spans several calls.
"""

import json
import logging
import os
import sqlite3
from typing import Any, Dict, List, Optional, Union

from devagent.core.errors import ValidationError
from devagent.core.goals import Goal, GoalStatus, utc_now
from devagent.utils.paths import db_path as _default_db_path

logger = logging.getLogger(__name__)

# Columns update_goal() may touch; id and created_at are immutable.
_UPDATABLE_COLUMNS = (
    "title",
    "description",
    "status",
    "branch_name",
    "github_issue_id",
    "completed_at",
    "updated_at",
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS goals (
    id TEXT PRIMARY KEY NOT NULL,
    github_issue_id INTEGER UNIQUE,
    title TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'todo'
        CHECK(status IN ('todo', 'in_progress', 'done', 'archived')),
    branch_name TEXT,
    description TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    completed_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_goals_status ON goals(status);
CREATE INDEX IF NOT EXISTS idx_goals_branch ON goals(branch_name);

CREATE TABLE IF NOT EXISTS config (
    key TEXT PRIMARY KEY NOT NULL,
    value TEXT NOT NULL,
    category TEXT NOT NULL DEFAULT 'general',
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS llm (
    provider TEXT PRIMARY KEY NOT NULL,
    api_key TEXT NOT NULL,
    api_base TEXT,
    model TEXT,
    config TEXT,
    is_default INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'active'
        CHECK(status IN ('active', 'inactive', 'testing')),
    updated_at TEXT NOT NULL
);
"""


class SQLiteStorage:
    """Storage contract backed by a single SQLite file."""

    def __init__(self, db_path: Optional[str] = None) -> None:
        self.db_path = db_path or _default_db_path()
        self._init_db()
        logger.debug("Storage initialized (db=%s)", self.db_path)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_db(self) -> None:
        parent = os.path.dirname(self.db_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with self._conn() as conn:
            conn.executescript(_SCHEMA)

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    def create_goal(self, goal: Goal) -> Goal:
        """Insert a new goal.  Raises ValidationError on id/issue collisions."""
        try:
            with self._conn() as conn:
                conn.execute(
                    """
                    INSERT INTO goals (id, github_issue_id, title, status, branch_name,
                                       description, created_at, updated_at, completed_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        goal.id,
                        goal.github_issue_id,
                        goal.title,
                        goal.status.value,
                        goal.branch_name,
                        goal.description,
                        goal.created_at,
                        goal.updated_at,
                        goal.completed_at,
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise ValidationError(f"Cannot create goal {goal.id}: {e}") from e
        logger.debug("Created goal row %s", goal.id)
        return goal

    def get_goal(self, goal_id: str) -> Optional[Goal]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM goals WHERE id = ?", (goal_id,)).fetchone()
        return Goal.from_row(row) if row else None

    def update_goal(self, goal_id: str, **fields: Any) -> Optional[Goal]:
        """Update the given columns in one statement.  Returns the updated goal.

        Passing ``branch_name=None`` clears the branch.  ``updated_at`` is
        refreshed unless given explicitly.  A github_issue_id, once set,
        cannot be replaced by a different one.
        """
        unknown = set(fields) - set(_UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Cannot update goal columns: {', '.join(sorted(unknown))}")

        values: Dict[str, Any] = dict(fields)
        if isinstance(values.get("status"), GoalStatus):
            values["status"] = values["status"].value
        values.setdefault("updated_at", utc_now())

        with self._conn() as conn:
            if "github_issue_id" in values:
                row = conn.execute(
                    "SELECT github_issue_id FROM goals WHERE id = ?", (goal_id,)
                ).fetchone()
                current = row["github_issue_id"] if row else None
                if current is not None and values["github_issue_id"] != current:
                    raise ValidationError(
                        f"Goal {goal_id} is already linked to GitHub issue #{current}"
                    )
            assignments = ", ".join(f"{col} = ?" for col in values)
            cur = conn.execute(
                f"UPDATE goals SET {assignments} WHERE id = ?",
                (*values.values(), goal_id),
            )
            if cur.rowcount == 0:
                return None
            row = conn.execute("SELECT * FROM goals WHERE id = ?", (goal_id,)).fetchone()
        return Goal.from_row(row)

    def list_goals(self, status: Optional[Union[GoalStatus, str]] = None) -> List[Goal]:
        """All goals, oldest first, optionally filtered by status."""
        with self._conn() as conn:
            if status is None:
                rows = conn.execute("SELECT * FROM goals ORDER BY created_at ASC, rowid ASC").fetchall()
            else:
                value = status.value if isinstance(status, GoalStatus) else status
                rows = conn.execute(
                    "SELECT * FROM goals WHERE status = ? ORDER BY created_at ASC, rowid ASC",
                    (value,),
                ).fetchall()
        return [Goal.from_row(r) for r in rows]

    def count_goals(self, status: Optional[Union[GoalStatus, str]] = None) -> int:
        with self._conn() as conn:
            if status is None:
                row = conn.execute("SELECT COUNT(*) AS n FROM goals").fetchone()
            else:
                value = status.value if isinstance(status, GoalStatus) else status
                row = conn.execute(
                    "SELECT COUNT(*) AS n FROM goals WHERE status = ?", (value,)
                ).fetchone()
        return int(row["n"])

    def find_goal_by_github_issue(self, issue_id: int) -> Optional[Goal]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM goals WHERE github_issue_id = ?", (issue_id,)
            ).fetchone()
        return Goal.from_row(row) if row else None

    def find_goal_by_branch(self, branch_name: str) -> Optional[Goal]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM goals WHERE branch_name = ?", (branch_name,)
            ).fetchone()
        return Goal.from_row(row) if row else None

    # ------------------------------------------------------------------
    # Key/value config
    # ------------------------------------------------------------------

    def get_config(self, key: str) -> Optional[str]:
        with self._conn() as conn:
            row = conn.execute("SELECT value FROM config WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_config(self, key: str, value: str, category: Optional[str] = None) -> None:
        """Upsert a config value.  Category defaults to the key's first segment."""
        category = category or key.split(".")[0] or "general"
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO config (key, value, category, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    category = excluded.category,
                    updated_at = excluded.updated_at
                """,
                (key, str(value), category, utc_now()),
            )

    def get_all_config(self) -> Dict[str, str]:
        with self._conn() as conn:
            rows = conn.execute("SELECT key, value FROM config ORDER BY key").fetchall()
        return {r["key"]: r["value"] for r in rows}

    def delete_config(self, key: str) -> None:
        with self._conn() as conn:
            conn.execute("DELETE FROM config WHERE key = ?", (key,))

    # ------------------------------------------------------------------
    # LLM providers
    # ------------------------------------------------------------------

    def get_llm_providers(self) -> Dict[str, Dict[str, Any]]:
        """Active providers keyed by name."""
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM llm WHERE status = 'active' ORDER BY provider"
            ).fetchall()
        providers: Dict[str, Dict[str, Any]] = {}
        for r in rows:
            try:
                extra = json.loads(r["config"]) if r["config"] else {}
            except json.JSONDecodeError:
                logger.warning("Ignoring malformed config JSON for provider %s", r["provider"])
                extra = {}
            providers[r["provider"]] = {
                "api_key": r["api_key"],
                "base_url": r["api_base"],
                "model": r["model"],
                "config": extra,
                "is_default": bool(r["is_default"]),
            }
        return providers

    def set_llm_provider(
        self,
        provider: str,
        api_key: str,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO llm (provider, api_key, api_base, model, config, status, updated_at)
                VALUES (?, ?, ?, ?, ?, 'active', ?)
                ON CONFLICT(provider) DO UPDATE SET
                    api_key = excluded.api_key,
                    api_base = excluded.api_base,
                    model = excluded.model,
                    config = excluded.config,
                    status = 'active',
                    updated_at = excluded.updated_at
                """,
                (
                    provider,
                    api_key,
                    base_url,
                    model,
                    json.dumps(config) if config else None,
                    utc_now(),
                ),
            )

    def remove_llm_provider(self, provider: str) -> None:
        """Mark a provider inactive (kept for history, ignored by lookups)."""
        with self._conn() as conn:
            conn.execute(
                "UPDATE llm SET status = 'inactive', is_default = 0, updated_at = ? WHERE provider = ?",
                (utc_now(), provider),
            )

    def get_default_llm_provider(self) -> Optional[str]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT provider FROM llm WHERE is_default = 1 AND status = 'active'"
            ).fetchone()
        return row["provider"] if row else None

    def set_default_llm_provider(self, provider: str) -> None:
        with self._conn() as conn:
            conn.execute("UPDATE llm SET is_default = 0")
            cur = conn.execute(
                "UPDATE llm SET is_default = 1 WHERE provider = ? AND status = 'active'",
                (provider,),
            )
            if cur.rowcount == 0:
                raise ValidationError(f"LLM provider '{provider}' is not configured")
