"""
Error taxonomy for Dev Agent.

Every exception carries an ``ErrorKind`` so the workflow boundary can turn
it into a tagged ``CommandResult`` without type-specific handling.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Category of a failed operation."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STATE_CONFLICT = "state_conflict"
    GIT = "git"
    GITHUB = "github"
    NOT_CONFIGURED = "not_configured"
    TRANSLATION = "translation"
    INTERNAL = "internal"


class DevAgentError(Exception):
    """Base class for all Dev Agent errors."""

    kind = ErrorKind.INTERNAL


class ValidationError(DevAgentError):
    """Malformed goal id or wrong status for the requested transition."""

    kind = ErrorKind.VALIDATION


class NotFoundError(DevAgentError):
    """Unknown goal id."""

    kind = ErrorKind.NOT_FOUND


class StateConflictError(DevAgentError):
    """Repository state disagrees with goal state (e.g. wrong branch)."""

    kind = ErrorKind.STATE_CONFLICT


class ConfigurationError(DevAgentError):
    """Required configuration is missing or invalid."""

    kind = ErrorKind.NOT_CONFIGURED


class GitOperationError(DevAgentError):
    """A git subprocess failed."""

    kind = ErrorKind.GIT

    def __init__(self, command: str, message: str, returncode: Optional[int] = None) -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = message
        super().__init__(f"git {command} failed: {message}" if message else f"git {command} failed")


class GitHubSyncError(DevAgentError):
    """A GitHub API call failed. Never fatal to a local transition."""

    kind = ErrorKind.GITHUB

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ProviderError(DevAgentError):
    """An LLM provider call failed for a reason other than rate limiting."""

    kind = ErrorKind.TRANSLATION

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")


class RateLimitError(ProviderError):
    """Provider rejected the call because of rate limiting or quota."""


class TranslationUnavailableError(DevAgentError):
    """No translation could be produced (empty response, no provider)."""

    kind = ErrorKind.TRANSLATION
