"""Operation results returned across the synchronization boundary."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Failure taxonomy for trip operations."""

    not_found = "not_found"
    unauthorized = "unauthorized"
    sign_in_required = "sign_in_required"
    link_expired = "link_expired"
    invalid = "invalid"
    upstream = "upstream"
    rate_limited = "rate_limited"
    quota_exceeded = "quota_exceeded"
    transient = "transient"
    configuration = "configuration"


@dataclass(frozen=True)
class Result(Generic[T]):
    """``{success, value | error}`` envelope. Operations never raise past it."""

    success: bool
    value: T | None = None
    error: str | None = None
    kind: ErrorKind | None = None

    @classmethod
    def ok(cls, value: T | None = None) -> "Result[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, error: str) -> "Result[T]":
        return cls(success=False, error=error, kind=kind)


class UpstreamError(Exception):
    """External call (pricing, generation, image) failed or returned a bad shape."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.upstream) -> None:
        super().__init__(message)
        self.kind = kind


class ConfigurationError(Exception):
    """Required configuration for an external call is missing."""

    pass
