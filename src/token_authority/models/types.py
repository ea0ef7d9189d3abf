"""Type aliases documenting the meaning of string identifiers."""

from typing import TypeAlias

GrantID: TypeAlias = str
"""Internal authorization grant identifier (ULID format)"""

SessionID: TypeAlias = str
"""Token session identifier (ULID format)"""

ClientID: TypeAlias = str
"""Public OAuth client identifier"""

UserID: TypeAlias = str
"""Resource owner identifier, carried as the ``sub`` claim"""

JTI: TypeAlias = str
"""JWT ID (UUID format), the revocation lookup key"""

AuthorizationCode: TypeAlias = str
"""Opaque single-use authorization code"""

URI: TypeAlias = str
"""Absolute URI (resource indicators, redirect URIs)"""
