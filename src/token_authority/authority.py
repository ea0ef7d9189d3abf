"""The token authority facade.

``TokenAuthority`` wires configuration, the signing key, the store and a
client resolver into the operations an HTTP layer exposes: authorize (after
consent, or approve/deny to get the redirect back to the client), exchange an
authorization code, refresh, revoke, and validate an access token for a
resource server.

Example:
    >>> authority = TokenAuthority(config, InMemoryAuthorityStore(), StaticClientResolver([client]))
    >>> grant = await authority.authorize(
    ...     client.public_id, "user-1", code_challenge=challenge, code_challenge_method="S256",
    ...     redirect_uri="https://app.example.com/callback", scope="read write",
    ... )
    >>> tokens = await authority.exchange_code(
    ...     grant.code, code_verifier=verifier, redirect_uri="https://app.example.com/callback",
    ...     client_id=client.public_id, client_secret=secret,
    ... )
"""

from __future__ import annotations

from typing import Any

from token_authority.claims import ClaimValidator
from token_authority.clients import ClientResolver
from token_authority.clock import Clock, SystemClock
from token_authority.config import AuthorityConfig
from token_authority.errors import (
    ClientAuthenticationError,
    ClientMismatchError,
    ClientNotFoundError,
    InvalidGrantError,
    InvalidRequestError,
    InvalidScopeError,
    InvalidTargetError,
    InvalidTokenError,
    MalformedTokenError,
    UnauthorizedTokenError,
    UnsupportedGrantTypeError,
)
from token_authority.grants import GrantService
from token_authority.models.entities import (
    AuthorizationGrant,
    AuthorizationResponse,
    Client,
    TokenResult,
)
from token_authority.models.enums import GrantType, SessionStatus, TokenKind
from token_authority.models.types import ClientID, UserID
from token_authority.observability import get_logger, instrument
from token_authority.requests import (
    AccessTokenRequest,
    AuthorizationRequest,
    RefreshTokenRequest,
)
from token_authority.sessions import SessionCreator, SessionManager
from token_authority.stores.base import AuthorityStore
from token_authority.tokens import AccessToken, SigningKey, TokenCodec

logger = get_logger(__name__)


class TokenAuthority:
    """OAuth 2.1 authorization server core.

    Args:
        config: Immutable authority configuration
        store: Grant and session persistence
        clients: Resolver for registered clients
        clock: Time source (defaults to the system clock)
        signing_key: joserfc key for asymmetric algorithms; HMAC
            configurations sign with ``config.secret_key`` when omitted
    """

    def __init__(
        self,
        config: AuthorityConfig,
        store: AuthorityStore,
        clients: ClientResolver,
        *,
        clock: Clock | None = None,
        signing_key: SigningKey | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.clients = clients
        self.clock = clock or SystemClock()
        self.codec = TokenCodec.from_config(config, signing_key)
        self.validator = ClaimValidator(config, self.clock)
        self.creator = SessionCreator(config, self.codec, self.clock)
        self.grants = GrantService(config, store, self.creator, self.clock)
        self.sessions = SessionManager(store, self.creator, self.validator, self.clock)

    async def authenticate_client(
        self,
        client_id: ClientID | None,
        client_secret: str | None = None,
        *,
        requested_client_id: ClientID | None = None,
    ) -> Client:
        """Resolve a client and check its secret; public clients need none.

        ``requested_client_id`` is the ``client_id`` request parameter when the
        credentials arrived separately (HTTP Basic); the two must agree.

        Raises:
            ClientNotFoundError: If no client has this id.
            ClientMismatchError: If ``requested_client_id`` names another client.
            ClientAuthenticationError: If a confidential client's secret is wrong.
        """
        client = await self.clients.resolve(client_id) if client_id else None
        if client is None:
            raise ClientNotFoundError(client_id or "")
        if requested_client_id is not None and requested_client_id != client.public_id:
            logger.warning(
                "token_authority.client.mismatch",
                client_id=client.public_id,
                requested_client_id=requested_client_id,
            )
            raise ClientMismatchError(requested_client_id, client.public_id)
        if client.is_public:
            return client
        if not client.authenticate_with_secret(client_secret):
            logger.warning("token_authority.client.authentication_failed", client_id=client_id)
            raise ClientAuthenticationError(client.public_id)
        return client

    async def authorize(
        self,
        client_id: ClientID,
        user_id: UserID,
        *,
        code_challenge: str | None = None,
        code_challenge_method: str | None = None,
        redirect_uri: str | None = None,
        scope: Any = None,
        resources: Any = None,
        response_type: str = "code",
    ) -> AuthorizationGrant:
        """Record the user's approved consent as an authorization grant.

        Raises:
            ClientNotFoundError: If the client is unknown.
            InvalidRequestError, InvalidScopeError, InvalidTargetError: If the
                authorization request is invalid.
        """
        request = await self._authorization_request(
            client_id,
            response_type=response_type,
            redirect_uri=redirect_uri,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
            scope=scope,
            resources=resources,
        )
        request.ensure_valid()
        return await self._create_grant(request, user_id)

    async def approve(
        self,
        client_id: ClientID,
        user_id: UserID,
        *,
        code_challenge: str | None = None,
        code_challenge_method: str | None = None,
        redirect_uri: str | None = None,
        scope: Any = None,
        resources: Any = None,
        response_type: str = "code",
        state: str | None = None,
    ) -> AuthorizationResponse:
        """Record approved consent and build the redirect back to the client.

        The redirect carries ``code`` and ``state`` on success. An invalid
        request becomes an error redirect (``invalid_target``,
        ``invalid_scope`` or ``invalid_request``) unless the redirect URI
        itself is at fault; that error is raised so it can be shown to the
        user instead.

        Raises:
            ClientNotFoundError: If the client is unknown.
            InvalidRequestError: If the redirect URI is missing or not registered.
        """
        request = await self._authorization_request(
            client_id,
            response_type=response_type,
            redirect_uri=redirect_uri,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
            scope=scope,
            resources=resources,
            state=state,
        )
        try:
            request.ensure_valid()
        except (InvalidTargetError, InvalidScopeError, InvalidRequestError) as exc:
            error_url = request.error_redirect_url(exc.oauth_error)
            if error_url is None:
                raise
            logger.info(
                "token_authority.authorization.rejected",
                client_id=client_id,
                error=exc.oauth_error,
                reason=exc.reason,
            )
            return AuthorizationResponse(redirect_url=error_url, error=exc.oauth_error, state=state)
        grant = await self._create_grant(request, user_id)
        return AuthorizationResponse(
            redirect_url=request.redirect_url(code=grant.code), grant=grant, state=state
        )

    async def deny(
        self,
        client_id: ClientID,
        *,
        redirect_uri: str | None = None,
        state: str | None = None,
    ) -> AuthorizationResponse:
        """Build the ``access_denied`` redirect for a user who declined consent.

        Raises:
            ClientNotFoundError: If the client is unknown.
            InvalidRequestError: If ``redirect_uri`` is not registered.
        """
        client = await self.clients.resolve(client_id)
        if client is None:
            raise ClientNotFoundError(client_id)
        url = client.url_for_redirect({"error": "access_denied", "state": state}, redirect_uri)
        logger.info("token_authority.authorization.denied", client_id=client_id)
        return AuthorizationResponse(redirect_url=url, error="access_denied", state=state)

    async def _authorization_request(
        self, client_id: ClientID, **params: Any
    ) -> AuthorizationRequest:
        client = await self.clients.resolve(client_id)
        if client is None:
            raise ClientNotFoundError(client_id)
        return AuthorizationRequest(self.config, client, **params)

    async def _create_grant(
        self, request: AuthorizationRequest, user_id: UserID
    ) -> AuthorizationGrant:
        return await self.grants.create(
            request.client,
            user_id,
            challenge=request.to_challenge(),
            scopes=request.scopes,
            resources=request.resources,
        )

    async def token(self, grant_type: str | None, **params: Any) -> TokenResult:
        """Dispatch a token endpoint request on ``grant_type``.

        ``params`` are the keyword arguments of :meth:`exchange_code` plus
        ``code``, or of :meth:`refresh` plus ``refresh_token``.

        Raises:
            UnsupportedGrantTypeError: For any other grant type.
            InvalidRequestError: If the code or refresh token is missing.
        """
        if grant_type == GrantType.AUTHORIZATION_CODE.value:
            code = params.pop("code", None)
            if not code:
                raise InvalidRequestError(reason="code_missing")
            return await self.exchange_code(code, **params)
        if grant_type == GrantType.REFRESH_TOKEN.value:
            refresh_token = params.pop("refresh_token", None)
            if not refresh_token:
                raise InvalidRequestError(reason="refresh_token_missing")
            return await self.refresh(refresh_token, **params)
        raise UnsupportedGrantTypeError(grant_type or "")

    async def exchange_code(
        self,
        code: str,
        *,
        code_verifier: str | None = None,
        redirect_uri: str | None = None,
        resources: Any = None,
        scope: Any = None,
        client_id: ClientID | None = None,
        client_secret: str | None = None,
        requested_client_id: ClientID | None = None,
    ) -> TokenResult:
        """Exchange an authorization code for a token pair.

        Confidential clients must authenticate; public clients are identified
        by the grant alone, and a presented ``client_id`` must match it.
        ``requested_client_id`` is checked as in :meth:`authenticate_client`.

        Raises:
            InvalidGrantError: Unknown, expired, redeemed or foreign code, or
                failed PKCE (``UnsuccessfulChallengeError``) / redirect_uri check.
            InvalidTargetError, InvalidScopeError, InvalidRequestError
            ClientAuthenticationError: Missing or wrong confidential client secret.
            ClientMismatchError: ``requested_client_id`` differs from the credentials.
        """
        with instrument("token.exchange"):
            grant = await self.grants.find_by_code(code)
            if grant is None:
                raise InvalidGrantError(reason="grant_not_found")
            client = await self.clients.resolve(grant.client_id)
            if client is None:
                raise InvalidGrantError(
                    reason="client_not_found", details={"grant_id": grant.id}
                )
            presented = (client_id, client_secret, requested_client_id)
            if any(value is not None for value in presented) or not client.is_public:
                authenticated = await self.authenticate_client(
                    client_id or grant.client_id,
                    client_secret,
                    requested_client_id=requested_client_id,
                )
                if authenticated.public_id != grant.client_id:
                    raise InvalidGrantError(
                        reason="grant_client_mismatch",
                        details={"grant_id": grant.id, "client_id": authenticated.public_id},
                    )

            request = AccessTokenRequest(
                self.config,
                grant,
                client,
                code_verifier=code_verifier,
                redirect_uri=redirect_uri,
                resources=resources,
                scope=scope,
                clock=self.clock,
            )
            request.ensure_valid()
            return await self.grants.redeem(
                grant,
                client,
                scopes=request.effective_scopes,
                resources=request.effective_resources,
            )

    async def refresh(
        self,
        refresh_token: str,
        *,
        client_id: ClientID | None = None,
        resources: Any = None,
        scope: Any = None,
        client_secret: str | None = None,
    ) -> TokenResult:
        """Rotate a refresh token into a new token pair.

        Raises:
            MalformedTokenError: The refresh token cannot be decoded (invalid_request).
            InvalidGrantError: Unknown session or invalid refresh claims.
            InvalidTargetError, InvalidScopeError: Widening beyond the grant.
            ClientAuthenticationError: Wrong confidential client secret.
            RevokedSessionError: Replay or client mismatch; the lineage's
                active session has been revoked.
        """
        with instrument("token.refresh"):
            token = self.codec.decode_refresh(refresh_token)

            session = await self.store.get_session_by_refresh_jti(token.jti) if token.jti else None
            grant = await self.store.get_grant(session.grant_id) if session else None
            if session is None or grant is None:
                raise InvalidGrantError(reason="refresh_token_session_not_found")
            request = RefreshTokenRequest(
                self.config,
                token,
                session,
                grant,
                client_id=client_id,
                resources=resources,
                scope=scope,
            )
            request.ensure_valid()

            presented = await self.authenticate_client(request.resolved_client_id, client_secret)
            client = (
                presented
                if presented.public_id == grant.client_id
                else await self.clients.resolve(grant.client_id)
            )
            if client is None:
                raise InvalidGrantError(reason="client_not_found", details={"grant_id": grant.id})
            return await self.sessions.refresh(
                session,
                token,
                grant=grant,
                client=client,
                client_id=presented.public_id,
                scopes=request.effective_scopes,
                resources=request.effective_resources,
            )

    async def revoke(
        self,
        token: str,
        token_type_hint: str | None = None,
        *,
        request_id: str | None = None,
    ) -> None:
        """Revoke the session behind ``token`` and its grant's active session.

        Idempotent: undecodable tokens and unknown jtis are silently ignored
        (RFC 7009 section 2.2).
        """
        with instrument("token.revoke"):
            try:
                claims = self.codec.decode(token)
            except MalformedTokenError as exc:
                logger.debug("token_authority.token.revoke_ignored", reason=exc.reason)
                return
            jti = claims.get("jti")
            if not isinstance(jti, str) or not jti:
                return
            prefer = (
                TokenKind.REFRESH_TOKEN
                if token_type_hint == TokenKind.REFRESH_TOKEN.value
                else TokenKind.ACCESS_TOKEN
            )
            await self.sessions.revoke_for_token(jti, prefer=prefer, request_id=request_id)

    async def validate_access_token(self, token: str) -> AccessToken:
        """Validate a bearer access token for a resource server.

        Claim failures are applied to the token's session (revoked for a
        tampered ``aud``/``iss``/``sub``, expired when only ``exp`` failed).

        Raises:
            InvalidTokenError: The token is not a JWT signed by this authority.
            UnauthorizedTokenError: Unknown jti, inactive session or failed claims.
        """
        with instrument("token.validate"):
            try:
                access_token = self.codec.decode_access(token)
            except MalformedTokenError as exc:
                raise InvalidTokenError(exc.reason) from exc

            session = (
                await self.store.get_session_by_access_jti(access_token.jti)
                if access_token.jti
                else None
            )
            if session is None:
                raise UnauthorizedTokenError("unknown_token")
            if session.status is not SessionStatus.CREATED:
                raise UnauthorizedTokenError(
                    f"session_{session.status.value}", details={"session_id": session.id}
                )
            grant = await self.store.get_grant(session.grant_id)
            if grant is None:
                raise UnauthorizedTokenError("grant_not_found", details={"session_id": session.id})

            result = self.validator.validate(
                access_token, session=session, expected_subject=grant.user_id
            )
            if not result.valid:
                await self.sessions.apply_side_effect(session, result)
                raise UnauthorizedTokenError(
                    "invalid_claims",
                    details={"session_id": session.id, "claims": result.errors},
                )
            return access_token
