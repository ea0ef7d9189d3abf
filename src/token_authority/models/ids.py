"""Identifier generation for grants, sessions and tokens.

Grant and session ids are ULIDs so stored rows sort by creation time. JWT ids
are random UUIDs; authorization codes are 256-bit URL-safe random strings.
"""

import re
import secrets
import uuid

from ulid import ULID

JTI_PATTERN = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-5][0-9a-f]{3}-[089ab][0-9a-f]{3}-[0-9a-f]{12}"
_JTI_RE = re.compile(JTI_PATTERN, re.IGNORECASE)

AUTHORIZATION_CODE_BYTES = 32


def generate_id() -> str:
    """Generate a new 26-character ULID string."""
    return str(ULID())


def generate_jti() -> str:
    return str(uuid.uuid4())


def generate_authorization_code() -> str:
    """Return an unguessable authorization code.

    Example:
        >>> len(generate_authorization_code()) >= 43
        True
    """
    return secrets.token_urlsafe(AUTHORIZATION_CODE_BYTES)


def is_valid_jti(value: object) -> bool:
    """Return True if ``value`` is a UUID string in canonical 8-4-4-4-12 form.

    Example:
        >>> is_valid_jti("4b4cdd4c-3cbb-4d8c-8b39-8d2d9c5c4f0e")
        True
        >>> is_valid_jti("not-a-uuid")
        False
    """
    return isinstance(value, str) and _JTI_RE.fullmatch(value) is not None
