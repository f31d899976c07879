"""
auth/errors.py -- Error taxonomy and the Result value returned by credential operations.

Every credential operation (codec, session manager, one-time manager, mailer)
returns a Result instead of raising. The route layer inspects result.error
and picks the HTTP status; nothing inside auth/ uses exceptions for control
flow.

Layer rule: stdlib only.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    EXPIRED = "expired"  # failed solely because time ran out
    MALFORMED = "malformed"  # codec level: bad signature or structure
    INVALID = "invalid"  # manager level equivalent of MALFORMED
    NOT_FOUND = "not_found"
    STORE_ERROR = "store_error"
    DELIVERY_ERROR = "delivery_error"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Success value or a single ErrorKind.

    detail is for logs only. Never echo it to clients -- it can reveal which
    check failed.
    """

    value: T | None = None
    error: ErrorKind | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorKind, detail: str | None = None) -> Result[T]:
        return cls(error=error, detail=detail)
