"""
Typed operation results shared by every service.

Business-rule violations are returned, never raised, so that the HTTP and
tooling layers can render a short reason next to a machine-readable kind.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    FORBIDDEN = "FORBIDDEN"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    DEPENDENCY_UNAVAILABLE = "DEPENDENCY_UNAVAILABLE"
    ALREADY_SOLD = "ALREADY_SOLD"
    ALREADY_INACTIVE = "ALREADY_INACTIVE"
    NO_ACCOUNT = "NO_ACCOUNT"
    INVALID_AMOUNT = "INVALID_AMOUNT"


@dataclass
class Result(Generic[T]):
    """Success carries `value`; failure carries `error`, `message` and `details`."""

    ok: bool
    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, value: Optional[T] = None, message: str = "") -> "Result[T]":
        return cls(ok=True, value=value, message=message)

    @classmethod
    def failure(cls, error: ErrorKind, message: str, value: Optional[T] = None, **details: Any) -> "Result[T]":
        return cls(ok=False, value=value, error=error, message=message, details=details)
