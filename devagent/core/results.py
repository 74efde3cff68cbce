"""
Uniform result envelope returned by every public Dev Agent operation.

Callers check ``success`` and read ``message``; ``data`` carries the
operation payload, ``error``/``error_kind`` describe a failure, and
``warnings`` lists advisory (non-fatal) problems such as a failed branch
deletion or a GitHub sync that could not be completed.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from devagent.core.errors import DevAgentError, ErrorKind


@dataclass
class Advisory:
    """A side operation that failed without aborting the transition."""

    step: str
    message: str

    def __str__(self) -> str:
        return f"{self.step}: {self.message}"


@dataclass
class CommandResult:
    """``{success, message, data?, error?}`` envelope."""

    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    warnings: List[Advisory] = field(default_factory=list)

    @classmethod
    def ok(
        cls,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        warnings: Optional[List[Advisory]] = None,
    ) -> "CommandResult":
        return cls(True, message, data=data, warnings=list(warnings or []))

    @classmethod
    def fail(
        cls,
        message: str,
        error: str,
        kind: ErrorKind = ErrorKind.INTERNAL,
        data: Optional[Dict[str, Any]] = None,
    ) -> "CommandResult":
        return cls(False, message, data=data, error=error, error_kind=kind)

    @classmethod
    def from_error(cls, exc: DevAgentError, message: Optional[str] = None) -> "CommandResult":
        """Build a failed envelope from a Dev Agent exception."""
        return cls(
            False,
            message or str(exc),
            error=str(exc),
            error_kind=exc.kind,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a plain dict (drops empty optional fields)."""
        out: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        if self.error is not None:
            out["error"] = self.error
        if self.error_kind is not None:
            out["error_kind"] = self.error_kind.value
        if self.warnings:
            out["warnings"] = [str(w) for w in self.warnings]
        return out
