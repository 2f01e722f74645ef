# errors.py
# Error taxonomy shared by every agent role.
#
# Completion failures carry an ErrorKind instead of being split into
# subclasses; handling sites branch on `error.kind`.

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    TIMEOUT = "timeout"
    CONTENT_POLICY = "content_policy"
    PROVIDER = "provider"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self not in (ErrorKind.CONTENT_POLICY, ErrorKind.CANCELLED)


class CompletionError(Exception):
    """Raised by the completion engine. Inspect `kind` to decide what to do."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        *,
        attempt: int | None = None,
        status: int | None = None,
        headers: dict[str, str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.attempt = attempt
        self.status = status
        self.headers = headers
        self.details = details

    def __repr__(self) -> str:
        return f"CompletionError(kind={self.kind.value!r}, attempt={self.attempt}, message={self.message!r})"


class StructuredOutputError(Exception):
    """Raised when a model never produced JSON that parses and validates."""


class AgentError(Exception):
    """Raised when a planner or solver role cannot produce its result."""
