"""Error taxonomy for markmv.

Every error carries a stable ``ErrorCode`` so the CLI can render it as JSON
for programmatic callers (``markmv --json-errors ...``).

Planning errors abort before any disk I/O, so a failed plan can always be
retried. Execution errors are never raised out of the executor; they are
recorded on the ``OperationResult`` instead.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes for --json-errors output."""

    PARSE_ERROR = "PARSE_ERROR"
    SOURCE_NOT_FOUND = "SOURCE_NOT_FOUND"
    DESTINATION_EXISTS = "DESTINATION_EXISTS"
    DUPLICATE_DESTINATION = "DUPLICATE_DESTINATION"
    DEPENDENCY_CYCLE = "DEPENDENCY_CYCLE"
    MERGE_CONFLICT = "MERGE_CONFLICT"
    HEADING_NOT_FOUND = "HEADING_NOT_FOUND"
    UNSUPPORTED_STRATEGY = "UNSUPPORTED_STRATEGY"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    EXECUTION_FAILED = "EXECUTION_FAILED"
    STALE_SNAPSHOT = "STALE_SNAPSHOT"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    CONFIG_ERROR = "CONFIG_ERROR"


class MarkmvError(Exception):
    """Base class for all markmv errors."""

    code: ErrorCode = ErrorCode.INVALID_ARGUMENT

    def __init__(
        self,
        code: ErrorCode | None = None,
        message: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        if code is not None:
            self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"error": error}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class ParseError(MarkmvError):
    """Raised when a document cannot be read or parsed.

    A partial link graph cannot be trusted, so this aborts planning for the
    whole operation.
    """

    code = ErrorCode.PARSE_ERROR

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(None, f"{path}: {message}", {"path": path})


class PlanError(MarkmvError):
    """Raised when an operation cannot be planned."""


class SourceNotFoundError(PlanError):
    code = ErrorCode.SOURCE_NOT_FOUND

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(None, f"Source is not a document in the working set: {path}", {"path": path})


class DestinationCollisionError(PlanError):
    """Two sources share a destination, or a destination is already taken."""

    code = ErrorCode.DESTINATION_EXISTS

    def __init__(self, destination: str, message: str, code: ErrorCode | None = None) -> None:
        self.destination = destination
        super().__init__(code, message, {"destination": destination})


class DependencyCycleError(PlanError):
    code = ErrorCode.DEPENDENCY_CYCLE

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(
            None,
            "Dependency cycle between joined files: " + " -> ".join(cycle),
            {"cycle": cycle},
        )


class ConflictResolutionRequired(PlanError):
    """Heading conflicts need an external decision before merging can proceed.

    Callers supply ``resolutions={conflict.id: "append" | "prepend"}`` and
    plan again.
    """

    code = ErrorCode.MERGE_CONFLICT

    def __init__(self, conflicts: list[Any]) -> None:
        self.conflicts = conflicts
        ids = ", ".join(conflict.id for conflict in conflicts)
        first = conflicts[0].id if conflicts else "ID"
        super().__init__(
            None,
            f"{len(conflicts)} heading conflict(s) need resolution: {ids}",
            {
                "conflicts": [conflict.model_dump() for conflict in conflicts],
                "suggestion": (
                    f"Re-run with --resolve {first}=append|prepend (one per conflict) or --strategy append|prepend"
                ),
            },
        )


class UnsupportedStrategyError(PlanError):
    code = ErrorCode.UNSUPPORTED_STRATEGY


class ExecutionError(MarkmvError):
    """A disk operation failed while applying a change set."""

    code = ErrorCode.EXECUTION_FAILED

    def __init__(self, path: str, message: str, code: ErrorCode | None = None) -> None:
        self.path = path
        super().__init__(code, f"{path}: {message}", {"path": path})


class ConfigurationError(MarkmvError):
    """Raised when configuration is missing or invalid."""

    code = ErrorCode.CONFIG_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(None, message)


def format_error_json(code: str, message: str, details: dict | None = None) -> str:
    """Format an error as JSON for --json-errors output."""
    error: dict[str, dict[str, object]] = {"error": {"code": code, "message": message}}
    if details:
        error["error"]["details"] = details
    return json.dumps(error, default=str)
