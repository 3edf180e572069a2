"""Error taxonomy and typed results shared by the scanner components."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Failure categories recorded on attempts and results."""

    TOKEN_ACQUISITION = "token_acquisition"
    LOCATION_SWITCH = "location_switch"
    TASK_EXTRACTION = "task_extraction"
    AGENT_CREATION = "agent_creation"
    TIMEOUT = "timeout"


class ScanError(RuntimeError):
    """Base class for scanner exceptions."""


class CapabilityUnavailableError(ScanError):
    """Raised when a collaborator the whole run depends on cannot be reached.

    This is the only error that escapes ``ScanOrchestrator.start_scan``.
    """


class OperationTimeout(ScanError):
    """Raised by page drivers when a navigation or request exceeds its timeout."""

    def __init__(self, operation: str, timeout_ms: Optional[int] = None) -> None:
        message = f"{operation} timed out"
        if timeout_ms is not None:
            message = f"{message} after {timeout_ms}ms"
        super().__init__(message)
        self.operation = operation
        self.timeout_ms = timeout_ms


class NavigationError(ScanError):
    """Raised when a page cannot be loaded at all (DNS, connection reset, ...)."""


@dataclass(frozen=True)
class Result(Generic[T]):
    """Value-or-error return type used by strategies.

    Use :meth:`ok` / :meth:`fail` instead of the constructor.
    """

    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: str = ""

    @classmethod
    def ok(cls, value: T, message: str = "") -> "Result[T]":
        return cls(value=value, error=None, message=message)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str = "") -> "Result[T]":
        return cls(value=None, error=kind, message=message)

    @property
    def is_ok(self) -> bool:
        return self.error is None


__all__ = [
    "ErrorKind",
    "ScanError",
    "CapabilityUnavailableError",
    "OperationTimeout",
    "NavigationError",
    "Result",
]
