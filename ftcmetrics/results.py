"""Explicit result objects for the store and persistence layers.

Degraded paths (Redis down, a DB write failing) are reported as values that
callers branch on, instead of exceptions caught and swallowed at every call site.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Why a store or persistence operation did not produce a value."""

    NOT_CONFIGURED = "not_configured"
    TIMEOUT = "timeout"
    BACKEND = "backend_error"
    DECODE = "decode_error"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Value-or-error container. `value` is only meaningful when `ok`."""

    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorKind, detail: Optional[str] = None) -> "Result[T]":
        return cls(error=error, detail=detail)
