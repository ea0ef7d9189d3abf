"""Enumerations for the token authority."""

from enum import Enum


class SessionStatus(str, Enum):
    """Token session lifecycle states.

    A session starts ``created``; every other state is terminal for refresh
    purposes, and ``revoked`` is absorbing.

    Example:
        >>> SessionStatus.REFRESHED.is_terminal()
        True
        >>> SessionStatus.CREATED.is_active()
        True
    """

    CREATED = "created"
    REFRESHED = "refreshed"
    EXPIRED = "expired"
    REVOKED = "revoked"

    @classmethod
    def terminal_states(cls) -> frozenset["SessionStatus"]:
        return frozenset({cls.REFRESHED, cls.EXPIRED, cls.REVOKED})

    def is_terminal(self) -> bool:
        return self in self.terminal_states()

    def is_active(self) -> bool:
        return self is SessionStatus.CREATED


class ClientType(str, Enum):
    """OAuth client types (RFC 6749 section 2.1)."""

    CONFIDENTIAL = "confidential"
    PUBLIC = "public"


class CodeChallengeMethod(str, Enum):
    """Supported PKCE transformations. ``plain`` is deliberately absent."""

    S256 = "S256"


class GrantType(str, Enum):
    """Token endpoint grant types this authority accepts."""

    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"


class TokenKind(str, Enum):
    """Which half of a token pair a JWT is; also the revocation hint values."""

    ACCESS_TOKEN = "access_token"
    REFRESH_TOKEN = "refresh_token"


class SessionSideEffect(str, Enum):
    """Status change a claim validation failure asks the caller to apply."""

    NONE = "none"
    EXPIRE = "expire"
    REVOKE = "revoke"
