"""Map operation results onto HTTP responses."""

from typing import TypeVar

from fastapi import HTTPException

from backend.app.models.results import ErrorKind, Result

T = TypeVar("T")

STATUS_FOR_KIND: dict[ErrorKind, int] = {
    ErrorKind.not_found: 404,
    ErrorKind.unauthorized: 403,
    ErrorKind.sign_in_required: 401,
    ErrorKind.link_expired: 409,
    ErrorKind.invalid: 422,
    ErrorKind.rate_limited: 429,
    ErrorKind.quota_exceeded: 402,
    ErrorKind.upstream: 502,
    ErrorKind.transient: 503,
    ErrorKind.configuration: 500,
}


def unwrap(result: Result[T]) -> T:
    """Return the result value or raise the matching HTTPException."""
    if result.success:
        return result.value  # type: ignore[return-value]

    kind = result.kind or ErrorKind.upstream
    headers = {"WWW-Authenticate": "Bearer"} if kind == ErrorKind.sign_in_required else None
    raise HTTPException(
        status_code=STATUS_FOR_KIND[kind],
        detail={"error": result.error, "kind": kind.value},
        headers=headers,
    )
