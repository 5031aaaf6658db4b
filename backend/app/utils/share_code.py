"""Share code generation."""

import secrets

from backend.app.models.trip import SHARE_CODE_ALPHABET

SHARE_CODE_LENGTH = 6


def generate_share_code(length: int = SHARE_CODE_LENGTH) -> str:
    """Random code from the unambiguous alphabet (no 0/O, 1/I/L)."""
    return "".join(secrets.choice(SHARE_CODE_ALPHABET) for _ in range(length))
