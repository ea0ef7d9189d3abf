"""Core records: clients, authorization grants, token sessions and results."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from collections.abc import Mapping
from datetime import datetime
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import Field, field_validator, model_validator

from token_authority.errors import InvalidRequestError
from token_authority.models.base import TokenAuthorityBaseModel
from token_authority.models.enums import ClientType, CodeChallengeMethod, SessionStatus
from token_authority.models.ids import generate_id, is_valid_jti
from token_authority.models.types import (
    URI,
    AuthorizationCode,
    ClientID,
    GrantID,
    JTI,
    SessionID,
    UserID,
)
from token_authority.resources import ResourceSet
from token_authority.scopes import ScopeSet

CLIENT_SECRET_BYTES = 32


def generate_client_secret() -> str:
    return secrets.token_urlsafe(CLIENT_SECRET_BYTES)


def hash_client_secret(secret: str) -> str:
    """Hex SHA-256 digest stored in place of a client secret.

    Client secrets are high-entropy random strings, so a fast digest is
    sufficient; user passwords never pass through here.
    """
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def _is_valid_redirect_uri(uri: str) -> bool:
    try:
        parsed = urlsplit(uri)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc) and not parsed.fragment


class Client(TokenAuthorityBaseModel):
    """A registered OAuth client.

    Public clients never hold a secret and are identified by ``public_id``
    alone. Confidential clients store only a digest of their secret.

    Attributes:
        public_id: The ``client_id`` presented on the wire
        name: Display name for consent screens
        client_type: confidential or public
        secret_digest: SHA-256 hex digest of the secret (confidential only)
        redirect_uris: Registered redirect URIs, the first is primary
        access_token_duration: Override of the configured access token lifetime
        refresh_token_duration: Override of the configured refresh token lifetime

    Example:
        >>> client, secret = Client.register(
        ...     name="Reporting", redirect_uris=["https://app.example.com/callback"]
        ... )
        >>> client.authenticate_with_secret(secret)
        True
    """

    public_id: ClientID = Field(min_length=1)
    name: str = Field(min_length=1, max_length=255)
    client_type: ClientType = ClientType.CONFIDENTIAL
    secret_digest: str | None = None
    redirect_uris: list[URI] = Field(min_length=1)
    access_token_duration: int | None = Field(default=None, gt=0)
    refresh_token_duration: int | None = Field(default=None, gt=0)

    @field_validator("redirect_uris")
    @classmethod
    def _check_redirect_uris(cls, value: list[str]) -> list[str]:
        invalid = [uri for uri in value if not _is_valid_redirect_uri(uri)]
        if invalid:
            raise ValueError(f"Invalid redirect URIs: {invalid}")
        return value

    @model_validator(mode="after")
    def _check_secret(self) -> Client:
        if self.client_type is ClientType.PUBLIC and self.secret_digest is not None:
            raise ValueError("Public clients cannot have a secret")
        if self.client_type is ClientType.CONFIDENTIAL and not self.secret_digest:
            raise ValueError("Confidential clients require a secret digest")
        return self

    @classmethod
    def register(
        cls,
        name: str,
        redirect_uris: list[str],
        client_type: ClientType = ClientType.CONFIDENTIAL,
        public_id: str | None = None,
        **overrides: Any,
    ) -> tuple[Client, str | None]:
        """Create a client with a fresh public id and, if confidential, a secret.

        Returns:
            The client and the plaintext secret (None for public clients). The
            secret is not recoverable from the client afterwards.
        """
        secret = generate_client_secret() if client_type is ClientType.CONFIDENTIAL else None
        client = cls(
            public_id=public_id or generate_id().lower(),
            name=name,
            client_type=client_type,
            secret_digest=hash_client_secret(secret) if secret else None,
            redirect_uris=redirect_uris,
            **overrides,
        )
        return client, secret

    @property
    def is_public(self) -> bool:
        return self.client_type is ClientType.PUBLIC

    @property
    def primary_redirect_uri(self) -> str:
        return self.redirect_uris[0]

    def redirect_uri_registered(self, uri: str | None) -> bool:
        return uri is not None and uri in self.redirect_uris

    def url_for_redirect(
        self, params: Mapping[str, str | None], redirect_uri: str | None = None
    ) -> str:
        """Append ``params`` to a registered redirect URI, dropping None values.

        Query parameters already present on the registered URI are kept.

        Raises:
            InvalidRequestError: If ``redirect_uri`` is not registered for this client.
        """
        target = redirect_uri or self.primary_redirect_uri
        if not self.redirect_uri_registered(target):
            raise InvalidRequestError(
                reason="redirect_uri_not_registered", details={"client_id": self.public_id}
            )
        parts = urlsplit(target)
        query = parse_qsl(parts.query, keep_blank_values=True)
        query.extend((key, value) for key, value in params.items() if value is not None)
        return urlunsplit(parts._replace(query=urlencode(query)))

    def authenticate_with_secret(self, secret: str | None) -> bool:
        """Constant-time secret check. Always False for public clients."""
        if self.is_public or not self.secret_digest or not secret:
            return False
        return hmac.compare_digest(hash_client_secret(secret), self.secret_digest)


class PKCEChallenge(TokenAuthorityBaseModel):
    """PKCE parameters and redirect URI captured at authorize time."""

    code_challenge: str | None = None
    code_challenge_method: CodeChallengeMethod | None = None
    redirect_uri: URI | None = None

    @property
    def has_challenge(self) -> bool:
        return bool(self.code_challenge)


class AuthorizationGrant(TokenAuthorityBaseModel):
    """A single-use authorization code bound to a user, client and consent.

    ``redeemed`` only ever flips from False to True, through the store's
    compare-and-set redemption.
    """

    id: GrantID = Field(default_factory=generate_id)
    code: AuthorizationCode = Field(min_length=1)
    client_id: ClientID = Field(min_length=1)
    user_id: UserID = Field(min_length=1)
    expires_at: datetime
    redeemed: bool = False
    challenge: PKCEChallenge = Field(default_factory=PKCEChallenge)
    scopes: list[str] = Field(default_factory=list)
    resources: list[URI] = Field(default_factory=list)
    created_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_redeemable(self, now: datetime) -> bool:
        return not self.redeemed and not self.is_expired(now)

    @property
    def scope_set(self) -> ScopeSet:
        return ScopeSet.parse(self.scopes)

    @property
    def resource_set(self) -> ResourceSet:
        return ResourceSet.parse(self.resources)


class Session(TokenAuthorityBaseModel):
    """One issued access/refresh pair and its lifecycle status.

    Only the JWT ids are stored; the tokens themselves are never persisted.
    """

    id: SessionID = Field(default_factory=generate_id)
    grant_id: GrantID = Field(min_length=1)
    access_token_jti: JTI
    refresh_token_jti: JTI
    status: SessionStatus = SessionStatus.CREATED
    created_at: datetime
    updated_at: datetime

    @field_validator("access_token_jti", "refresh_token_jti")
    @classmethod
    def _check_jti(cls, value: str) -> str:
        if not is_valid_jti(value):
            raise ValueError(f"jti must be a UUID, got {value!r}")
        return value

    @model_validator(mode="after")
    def _check_distinct_jtis(self) -> Session:
        if self.access_token_jti.lower() == self.refresh_token_jti.lower():
            raise ValueError("access and refresh token jti must differ")
        return self


class TokenResult(TokenAuthorityBaseModel):
    """Token endpoint success payload (RFC 6749 section 5.1)."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(gt=0)
    scope: str | None = None
    session_id: SessionID = Field(exclude=True)

    def to_response(self) -> dict[str, Any]:
        """JSON body for the token endpoint; ``scope`` is omitted when empty."""
        return self.model_dump(exclude_none=True)


class AuthorizationResponse(TokenAuthorityBaseModel):
    """Where to send the user agent after an authorization decision.

    ``grant`` is set when consent was recorded; ``error`` is the OAuth error
    carried in ``redirect_url`` otherwise.
    """

    redirect_url: str
    grant: AuthorizationGrant | None = None
    error: str | None = None
    state: str | None = None

    @property
    def approved(self) -> bool:
        return self.grant is not None
