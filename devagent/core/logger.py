"""
Logging for Dev Agent: process logging setup and the JSONL action log.

``setup_logging`` wires the console handler and a daily error log under
``logs/errors/``.  ``ActionLogger`` appends one record per workflow action
to ``logs/actions/YYYY-MM-DD.jsonl`` (UTC day), opening the file per write.
Record fields: timestamp, action_type, parameters, result, duration_ms, error.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from devagent.core.goals import utc_now
from devagent.utils.paths import logs_dir

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def setup_logging(level: str = "INFO", error_log: bool = True) -> None:
    """Configure root logging once per process."""
    handlers: list = [logging.StreamHandler()]
    if error_log:
        try:
            error_file = os.path.join(logs_dir("errors"), f"{_today()}.log")
            file_handler = logging.FileHandler(error_file, encoding="utf-8")
            file_handler.setLevel(logging.WARNING)
            handlers.append(file_handler)
        except OSError as e:
            logger.warning("Failed to set up error log file: %s", e)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )

    # Reduce noise from third-party libs
    for name in ("httpx", "httpcore", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)


class ActionLogger:
    """Append-only JSONL journal of workflow actions, one file per UTC day."""

    def __init__(self, actions_dir: Optional[str] = None) -> None:
        self.actions_dir = Path(actions_dir or logs_dir("actions"))

    def path_for(self, day: Optional[str] = None) -> Path:
        return self.actions_dir / f"{day or _today()}.jsonl"

    def log_action(
        self,
        *,
        action_type: str,
        parameters: Optional[Dict[str, Any]] = None,
        result: str = "success",
        duration_ms: Optional[float] = None,
        error: Optional[str] = None,
        **extra: Any,
    ) -> None:
        """Append one record.  Empty fields are dropped; write failures are logged, never raised."""
        record: Dict[str, Any] = {
            "timestamp": utc_now(),
            "action_type": action_type,
            "parameters": parameters or {},
            "result": result,
            "duration_ms": duration_ms,
            "error": error,
            **extra,
        }
        line = json.dumps({k: v for k, v in record.items() if v is not None}, default=str)
        try:
            self.actions_dir.mkdir(parents=True, exist_ok=True)
            with self.path_for().open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            logger.error("Failed to write action log: %s", e)

    def read_actions(self, day: Optional[str] = None) -> List[Dict[str, Any]]:
        """Records of one day (default today), oldest first."""
        path = self.path_for(day)
        if not path.is_file():
            return []
        with path.open("r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
