"""token-authority: an OAuth 2.1 authorization server core.

Issues, validates, rotates and revokes access/refresh token pairs bound to
clients, authorization grants, scopes and resource indicators, with PKCE,
refresh-token replay detection and audience/issuer claim integrity.

Example:
    >>> from token_authority import AuthorityConfig, InMemoryAuthorityStore, TokenAuthority
    >>> from token_authority import StaticClientResolver
"""

__version__ = "0.1.0"

from token_authority.authority import TokenAuthority
from token_authority.claims import ClaimValidationResult, ClaimValidator
from token_authority.clients import ClientResolver, StaticClientResolver
from token_authority.clock import Clock, FrozenClock, SystemClock
from token_authority.config import AuthorityConfig
from token_authority.errors import (
    ClientAuthenticationError,
    ClientMismatchError,
    ClientNotFoundError,
    ConfigurationError,
    InvalidGrantError,
    InvalidRequestError,
    InvalidScopeError,
    InvalidTargetError,
    InvalidTokenError,
    InvalidTransitionError,
    MalformedTokenError,
    ResourceNotConfiguredError,
    RevokedSessionError,
    ServerError,
    TokenAuthorityError,
    UnauthorizedTokenError,
    UnsuccessfulChallengeError,
    UnsupportedGrantTypeError,
)
from token_authority.metadata import AuthorizationServerMetadata, ProtectedResourceMetadata
from token_authority.models import (
    AuthorizationGrant,
    AuthorizationResponse,
    Client,
    ClientType,
    PKCEChallenge,
    Session,
    SessionStatus,
    TokenResult,
)
from token_authority.resources import ResourceSet
from token_authority.scopes import ScopeSet
from token_authority.stores import (
    AuthorityStore,
    InMemoryAuthorityStore,
    SQLiteAuthorityStore,
    create_store,
)
from token_authority.tokens import AccessToken, RefreshToken, TokenCodec

__all__ = [
    "__version__",
    "AccessToken",
    "AuthorityConfig",
    "AuthorityStore",
    "AuthorizationGrant",
    "AuthorizationResponse",
    "AuthorizationServerMetadata",
    "ClaimValidationResult",
    "ClaimValidator",
    "Client",
    "ClientAuthenticationError",
    "ClientMismatchError",
    "ClientNotFoundError",
    "ClientResolver",
    "ClientType",
    "Clock",
    "ConfigurationError",
    "FrozenClock",
    "InMemoryAuthorityStore",
    "InvalidGrantError",
    "InvalidRequestError",
    "InvalidScopeError",
    "InvalidTargetError",
    "InvalidTokenError",
    "InvalidTransitionError",
    "MalformedTokenError",
    "PKCEChallenge",
    "ProtectedResourceMetadata",
    "RefreshToken",
    "ResourceNotConfiguredError",
    "ResourceSet",
    "RevokedSessionError",
    "SQLiteAuthorityStore",
    "ScopeSet",
    "ServerError",
    "Session",
    "SessionStatus",
    "StaticClientResolver",
    "SystemClock",
    "TokenAuthority",
    "TokenAuthorityError",
    "TokenCodec",
    "TokenResult",
    "UnauthorizedTokenError",
    "UnsuccessfulChallengeError",
    "UnsupportedGrantTypeError",
    "create_store",
]
