"""Records and value types for the token authority."""

from token_authority.models.base import TokenAuthorityBaseModel
from token_authority.models.entities import (
    AuthorizationGrant,
    AuthorizationResponse,
    Client,
    PKCEChallenge,
    Session,
    TokenResult,
    generate_client_secret,
    hash_client_secret,
)
from token_authority.models.enums import (
    ClientType,
    CodeChallengeMethod,
    GrantType,
    SessionSideEffect,
    SessionStatus,
    TokenKind,
)
from token_authority.models.ids import (
    generate_authorization_code,
    generate_id,
    generate_jti,
    is_valid_jti,
)

__all__ = [
    "AuthorizationGrant",
    "AuthorizationResponse",
    "Client",
    "ClientType",
    "CodeChallengeMethod",
    "GrantType",
    "PKCEChallenge",
    "Session",
    "SessionSideEffect",
    "SessionStatus",
    "TokenAuthorityBaseModel",
    "TokenKind",
    "TokenResult",
    "generate_authorization_code",
    "generate_client_secret",
    "generate_id",
    "generate_jti",
    "hash_client_secret",
    "is_valid_jti",
]
