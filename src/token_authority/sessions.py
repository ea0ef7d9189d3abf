"""Token session minting, rotation, replay detection and revocation.

A session is one access/refresh pair. Refreshing rotates the pair: the old
session becomes ``refreshed`` and a new ``created`` session is inserted in
the same store transaction. Presenting a refresh token whose session is no
longer ``created``, or presenting it as a different client, is treated as
token theft: the grant's active session is revoked and the caller gets a
``RevokedSessionError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import NoReturn

from token_authority.claims import ClaimValidationResult, ClaimValidator
from token_authority.clock import Clock, SystemClock, to_timestamp
from token_authority.config import AuthorityConfig
from token_authority.errors import InvalidGrantError, RevokedSessionError, ServerError
from token_authority.models.entities import AuthorizationGrant, Client, Session, TokenResult
from token_authority.models.enums import SessionSideEffect, SessionStatus, TokenKind
from token_authority.models.ids import generate_jti
from token_authority.models.types import JTI, SessionID
from token_authority.observability import get_logger, get_metrics, instrument
from token_authority.observability.metrics import REPLAY_DETECTIONS_TOTAL
from token_authority.resources import ResourceSet
from token_authority.scopes import ScopeSet
from token_authority.stores.base import AuthorityStore
from token_authority.tokens import AccessToken, RefreshToken, TokenCodec

logger = get_logger(__name__)

DEFAULT_REVOCATION_REASON = "revocation_requested"


@dataclass(frozen=True)
class PendingSession:
    """A session record and its claims, minted but not yet persisted."""

    session: Session
    access_token: AccessToken
    refresh_token: RefreshToken
    expires_in: int


class SessionCreator:
    """Mint session records and their JWT pairs.

    Minting is split in two so the session row is persisted (by grant
    redemption or rotation) before either JWT is encoded: ``prepare`` builds
    the record and claims, ``issue`` signs them.
    """

    def __init__(
        self, config: AuthorityConfig, codec: TokenCodec, clock: Clock | None = None
    ) -> None:
        self._config = config
        self._codec = codec
        self._clock = clock or SystemClock()

    def prepare(
        self,
        grant: AuthorizationGrant,
        client: Client,
        scopes: ScopeSet,
        resources: ResourceSet,
    ) -> PendingSession:
        now = self._clock.now()
        issued_at = to_timestamp(now)
        access_duration = client.access_token_duration or self._config.access_token_duration
        refresh_duration = client.refresh_token_duration or self._config.refresh_token_duration
        shared_claims = {
            "iss": self._config.issuer_url,
            "aud": resources.to_audience(self._config.audience_url),
            "iat": issued_at,
            "sub": grant.user_id,
            "client_id": grant.client_id,
            "scope": scopes.to_claim(),
        }
        access_token = AccessToken(
            **shared_claims,
            exp=to_timestamp(now + timedelta(seconds=access_duration)),
            jti=generate_jti(),
        )
        refresh_token = RefreshToken(
            **shared_claims,
            exp=to_timestamp(now + timedelta(seconds=refresh_duration)),
            jti=generate_jti(),
        )
        session = Session(
            grant_id=grant.id,
            access_token_jti=access_token.jti,
            refresh_token_jti=refresh_token.jti,
            status=SessionStatus.CREATED,
            created_at=now,
            updated_at=now,
        )
        return PendingSession(
            session=session,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=access_duration,
        )

    def issue(self, pending: PendingSession) -> TokenResult:
        """Encode a persisted pending session's JWT pair."""
        return TokenResult(
            access_token=self._codec.encode(pending.access_token),
            refresh_token=self._codec.encode(pending.refresh_token),
            token_type="bearer",
            expires_in=pending.expires_in,
            scope=pending.access_token.scope,
            session_id=pending.session.id,
        )


class SessionManager:
    """Refresh, revoke and apply claim side effects to stored sessions."""

    def __init__(
        self,
        store: AuthorityStore,
        creator: SessionCreator,
        validator: ClaimValidator,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._creator = creator
        self._validator = validator
        self._clock = clock or SystemClock()

    async def refresh(
        self,
        session: Session,
        token: RefreshToken,
        *,
        grant: AuthorizationGrant,
        client: Client,
        client_id: str | None,
        scopes: ScopeSet,
        resources: ResourceSet,
    ) -> TokenResult:
        """Rotate ``session`` into a new token pair.

        Args:
            session: Session found by the refresh token's jti
            token: Decoded refresh token
            grant: The session's grant
            client: The grant's client, whose token lifetimes apply
            client_id: Client id presented with the request
            scopes: Effective scopes for the new pair
            resources: Effective resources for the new pair

        Raises:
            ServerError: If the token's jti is not the session's refresh jti.
            InvalidGrantError: If the refresh token's claims are invalid.
            RevokedSessionError: On replay or client mismatch; the grant's
                active session has been revoked.
        """
        with instrument("session.refresh", session_id=session.id, grant_id=grant.id) as payload:
            if token.jti != session.refresh_token_jti:
                raise ServerError(
                    "refresh token does not belong to session",
                    details={"session_id": session.id},
                )

            result = self._validator.validate(
                token, session=session, expected_subject=grant.user_id
            )
            if not result.valid:
                await self.apply_side_effect(session, result)
                raise InvalidGrantError(
                    reason="refresh_token_claims",
                    details={"session_id": session.id, "claims": result.errors},
                )

            if session.status is not SessionStatus.CREATED or client_id != grant.client_id:
                await self._revoke_for_replay(session, grant, client_id)

            pending = self._creator.prepare(grant, client, scopes, resources)
            rotated = await self._store.rotate_session(
                session.id, pending.session, self._clock.now()
            )
            if not rotated:
                await self._revoke_for_replay(session, grant, client_id)

            payload["new_session_id"] = pending.session.id
            logger.info(
                "token_authority.session.refreshed",
                session_id=session.id,
                new_session_id=pending.session.id,
                grant_id=grant.id,
            )
            return self._creator.issue(pending)

    async def _revoke_for_replay(
        self, session: Session, grant: AuthorizationGrant, client_id: str | None
    ) -> NoReturn:
        revoked = await self._store.revoke_lineage_active(grant.id, session.id, self._clock.now())
        if len(revoked) > 1:
            logger.error(
                "token_authority.session.multiple_active",
                grant_id=grant.id,
                active_session_ids=revoked,
            )
        get_metrics().increment_counter(REPLAY_DETECTIONS_TOTAL)
        revoked_session_id = revoked[0] if revoked else session.id
        logger.warning(
            "token_authority.session.replay_detected",
            client_id=client_id,
            grant_client_id=grant.client_id,
            refreshed_session_id=session.id,
            revoked_session_ids=revoked,
            session_status=session.status.value,
            user_id=grant.user_id,
        )
        raise RevokedSessionError(
            client_id=client_id or grant.client_id,
            refreshed_session_id=session.id,
            revoked_session_id=revoked_session_id,
            user_id=grant.user_id,
        )

    async def revoke_self_and_active_session(
        self,
        session: Session,
        reason: str = DEFAULT_REVOCATION_REASON,
        request_id: str | None = None,
    ) -> list[SessionID]:
        """Revoke ``session`` and its grant's active session in one transaction.

        Returns:
            Ids of the other sessions that were revoked.
        """
        with instrument("session.revoke", session_id=session.id, reason=reason):
            related = await self._store.revoke_with_active_sessions(session.id, self._clock.now())
            if len(related) > 1:
                logger.error(
                    "token_authority.session.multiple_active",
                    grant_id=session.grant_id,
                    active_session_ids=related,
                )
            logger.warning(
                "token_authority.session.revoked",
                session_id=session.id,
                grant_id=session.grant_id,
                related_session_ids=related,
                reason=reason,
                request_id=request_id,
            )
            return related

    async def revoke_for_access_token(self, jti: JTI, request_id: str | None = None) -> bool:
        return await self._revoke_by_jti(TokenKind.ACCESS_TOKEN, jti, request_id)

    async def revoke_for_refresh_token(self, jti: JTI, request_id: str | None = None) -> bool:
        return await self._revoke_by_jti(TokenKind.REFRESH_TOKEN, jti, request_id)

    async def revoke_for_token(
        self,
        jti: JTI,
        prefer: TokenKind = TokenKind.ACCESS_TOKEN,
        request_id: str | None = None,
    ) -> bool:
        """Revoke by either jti, trying ``prefer`` first. Unknown jtis are a no-op."""
        other = (
            TokenKind.REFRESH_TOKEN if prefer is TokenKind.ACCESS_TOKEN else TokenKind.ACCESS_TOKEN
        )
        for kind in (prefer, other):
            if await self._revoke_by_jti(kind, jti, request_id):
                return True
        return False

    async def _revoke_by_jti(self, kind: TokenKind, jti: JTI, request_id: str | None) -> bool:
        session = await self._store.get_session_by_jti(kind, jti)
        if session is None:
            return False
        await self.revoke_self_and_active_session(session, request_id=request_id)
        return True

    async def apply_side_effect(
        self, session: Session, result: ClaimValidationResult
    ) -> Session | None:
        """Persist the status change a claim validation asked for, if allowed."""
        if result.side_effect is SessionSideEffect.NONE:
            return None
        target = (
            SessionStatus.REVOKED
            if result.side_effect is SessionSideEffect.REVOKE
            else SessionStatus.EXPIRED
        )
        updated = await self._store.transition_session(session.id, target, self._clock.now())
        log = logger.warning if target is SessionStatus.REVOKED else logger.info
        log(
            f"token_authority.session.claims_{target.value}",
            session_id=session.id,
            failed_claims=sorted(result.errors),
            applied=updated is not None,
        )
        return updated
