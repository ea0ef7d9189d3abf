"""Authorization grant issuance and single-use redemption."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from token_authority.clock import Clock, SystemClock
from token_authority.config import AuthorityConfig
from token_authority.errors import InvalidGrantError
from token_authority.models.entities import AuthorizationGrant, Client, PKCEChallenge, TokenResult
from token_authority.models.ids import generate_authorization_code
from token_authority.models.types import AuthorizationCode, UserID
from token_authority.observability import get_logger, instrument
from token_authority.resources import ResourceSet
from token_authority.scopes import ScopeSet
from token_authority.sessions import SessionCreator
from token_authority.stores.base import AuthorityStore

logger = get_logger(__name__)


class GrantService:
    """Create authorization codes and redeem them exactly once.

    Redemption relies on the store's compare-and-set: of any number of
    concurrent redeemers, one gets a token pair and the rest see
    ``InvalidGrantError``.
    """

    def __init__(
        self,
        config: AuthorityConfig,
        store: AuthorityStore,
        creator: SessionCreator,
        clock: Clock | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._creator = creator
        self._clock = clock or SystemClock()

    async def create(
        self,
        client: Client,
        user_id: UserID,
        challenge: PKCEChallenge | None = None,
        scopes: Any = None,
        resources: Any = None,
    ) -> AuthorizationGrant:
        """Record an approved consent as a new grant with an unguessable code."""
        with instrument("grant.create", client_id=client.public_id) as payload:
            now = self._clock.now()
            grant = AuthorizationGrant(
                code=generate_authorization_code(),
                client_id=client.public_id,
                user_id=user_id,
                expires_at=now + timedelta(seconds=self._config.grant_ttl),
                challenge=challenge or PKCEChallenge(),
                scopes=ScopeSet.parse(scopes).to_list(),
                resources=ResourceSet.parse(resources).to_list(),
                created_at=now,
            )
            await self._store.save_grant(grant)
            payload["grant_id"] = grant.id
            logger.info(
                "token_authority.grant.created",
                grant_id=grant.id,
                client_id=client.public_id,
                expires_at=grant.expires_at.isoformat(),
            )
            return grant

    async def find_by_code(self, code: AuthorizationCode) -> AuthorizationGrant | None:
        if not code:
            return None
        return await self._store.get_grant_by_code(code)

    async def redeem(
        self,
        grant: AuthorizationGrant,
        client: Client,
        scopes: ScopeSet,
        resources: ResourceSet,
    ) -> TokenResult:
        """Redeem ``grant`` into its first session and token pair.

        Raises:
            InvalidGrantError: If the grant was already redeemed (including by a
                concurrent caller).
        """
        with instrument("grant.redeem", grant_id=grant.id, client_id=grant.client_id) as payload:
            pending = self._creator.prepare(grant, client, scopes, resources)
            if not await self._store.redeem_grant_with_session(grant.id, pending.session):
                logger.warning(
                    "token_authority.grant.redeem_conflict",
                    grant_id=grant.id,
                    client_id=grant.client_id,
                )
                raise InvalidGrantError(reason="grant_redeemed", details={"grant_id": grant.id})
            payload["session_id"] = pending.session.id
            logger.info(
                "token_authority.grant.redeemed",
                grant_id=grant.id,
                session_id=pending.session.id,
            )
            return self._creator.issue(pending)
