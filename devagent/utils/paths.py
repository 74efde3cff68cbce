"""
Project-relative locations.

The project root holds ``config/devagent.yaml``, ``.env``, the goal
database under ``data/`` and the logs under ``logs/``.  It is resolved
once per process:

1. ``DEVAGENT_ROOT`` if set;
2. the nearest directory, from the working directory upwards, that has a
   ``config/`` directory or is a git checkout;
3. the working directory itself.
"""

import os
from pathlib import Path
from typing import Optional

ROOT_ENV_VAR = "DEVAGENT_ROOT"

_root: Optional[str] = None


def _looks_like_root(path: Path) -> bool:
    return (path / "config").is_dir() or (path / ".git").exists()


def base_path() -> str:
    """Project root (cached; see module docstring for the lookup order)."""
    global _root
    if _root is None:
        override = os.environ.get(ROOT_ENV_VAR)
        if override:
            _root = os.path.normpath(override)
        else:
            cwd = Path.cwd()
            found = next((p for p in (cwd, *cwd.parents) if _looks_like_root(p)), cwd)
            _root = str(found)
    return _root


def reset_base_path() -> None:
    """Forget the cached root (after changing DEVAGENT_ROOT or the cwd)."""
    global _root
    _root = None


def db_path() -> str:
    """Default goal database: ``data/devagent.db``."""
    return os.path.join(base_path(), "data", "devagent.db")


def logs_dir(subdir: str = "") -> str:
    """``logs/<subdir>``, created if missing."""
    path = os.path.join(base_path(), "logs", subdir)
    os.makedirs(path, exist_ok=True)
    return path
