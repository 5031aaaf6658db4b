"""Minimal viewer identity dependency.

Stub implementation: the bearer token is the viewer's user id. Real token
validation belongs to the auth service in front of this API.
"""

import uuid
from typing import Annotated

from fastapi import Header, HTTPException, status


async def get_viewer(
    authorization: Annotated[str | None, Header()] = None,
) -> uuid.UUID | None:
    """Extract the viewer's user id from the authorization header.

    Args:
        authorization: Authorization header ("Bearer <user_uuid>")

    Returns:
        User id, or None for anonymous viewers (no header)

    Raises:
        HTTPException: If the header is present but malformed
    """
    if not authorization:
        return None

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = authorization[7:].strip()  # Strip "Bearer "

    try:
        return uuid.UUID(token)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid bearer token (expected user id)",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
