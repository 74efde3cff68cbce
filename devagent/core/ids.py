"""
Goal id generation.

Ids look like ``g-a1b2c3``: a fixed prefix plus six characters drawn from
``[a-z0-9]`` with the ``secrets`` module.  Uniqueness is checked against
storage; after ``max_attempts`` collisions generation gives up.
"""

import logging
import secrets
import string
from typing import Any

logger = logging.getLogger(__name__)

ALPHABET = string.ascii_lowercase + string.digits
GOAL_ID_PREFIX = "g-"
GOAL_ID_LENGTH = 6
MAX_ATTEMPTS = 10


def random_goal_id(prefix: str = GOAL_ID_PREFIX, length: int = GOAL_ID_LENGTH) -> str:
    return prefix + "".join(secrets.choice(ALPHABET) for _ in range(length))


class GoalIdGenerator:
    """Produces goal ids not yet present in storage."""

    def __init__(self, storage: Any, max_attempts: int = MAX_ATTEMPTS) -> None:
        self.storage = storage
        self.max_attempts = max_attempts

    def generate(self) -> str:
        for attempt in range(1, self.max_attempts + 1):
            candidate = random_goal_id()
            if self.storage.get_goal(candidate) is None:
                return candidate
            logger.debug("Goal id collision on %s (attempt %d)", candidate, attempt)
        raise RuntimeError(
            f"Could not generate a unique goal id after {self.max_attempts} attempts"
        )

    __call__ = generate
