"""Grant and session persistence protocol.

The store is the synchronization point for the whole authority: grant
redemption and session rotation are compare-and-set operations that insert
the resulting session in the same transaction, and revocation cascades touch
every affected row atomically. Implementations must never change
``AuthorizationGrant.redeemed`` or ``Session.status`` outside these methods.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Protocol, runtime_checkable

from token_authority.models.entities import AuthorizationGrant, Session
from token_authority.models.enums import SessionStatus, TokenKind
from token_authority.models.types import AuthorizationCode, GrantID, JTI, SessionID


@runtime_checkable
class AuthorityStore(Protocol):
    async def save_grant(self, grant: AuthorizationGrant) -> None: ...
    async def get_grant(self, grant_id: GrantID) -> AuthorizationGrant | None: ...
    async def get_grant_by_code(self, code: AuthorizationCode) -> AuthorizationGrant | None: ...
    async def redeem_grant_with_session(self, grant_id: GrantID, session: Session) -> bool: ...
    async def get_session(self, session_id: SessionID) -> Session | None: ...
    async def get_session_by_access_jti(self, jti: JTI) -> Session | None: ...
    async def get_session_by_refresh_jti(self, jti: JTI) -> Session | None: ...
    async def get_session_by_jti(self, kind: TokenKind, jti: JTI) -> Session | None: ...
    async def list_sessions_for_grant(self, grant_id: GrantID) -> list[Session]: ...
    async def active_sessions_for_grant(self, grant_id: GrantID) -> list[Session]: ...
    async def rotate_session(
        self, session_id: SessionID, new_session: Session, now: datetime
    ) -> bool: ...
    async def transition_session(
        self, session_id: SessionID, status: SessionStatus, now: datetime
    ) -> Session | None: ...
    async def revoke_with_active_sessions(
        self, session_id: SessionID, now: datetime
    ) -> list[SessionID]: ...
    async def revoke_lineage_active(
        self, grant_id: GrantID, fallback_session_id: SessionID, now: datetime
    ) -> list[SessionID]: ...


class AuthorityStoreBase(ABC):
    """Shared behaviour for store implementations."""

    @abstractmethod
    async def save_grant(self, grant: AuthorizationGrant) -> None:
        """Persist a new grant. Raises ServerError if its id or code already exists."""

    @abstractmethod
    async def get_grant(self, grant_id: GrantID) -> AuthorizationGrant | None: ...

    @abstractmethod
    async def get_grant_by_code(self, code: AuthorizationCode) -> AuthorizationGrant | None: ...

    @abstractmethod
    async def redeem_grant_with_session(self, grant_id: GrantID, session: Session) -> bool:
        """Flip ``redeemed`` False -> True and insert ``session``, atomically.

        Returns:
            False (and inserts nothing) if the grant is unknown or already redeemed.
        """

    @abstractmethod
    async def get_session(self, session_id: SessionID) -> Session | None: ...

    @abstractmethod
    async def get_session_by_access_jti(self, jti: JTI) -> Session | None: ...

    @abstractmethod
    async def get_session_by_refresh_jti(self, jti: JTI) -> Session | None: ...

    @abstractmethod
    async def list_sessions_for_grant(self, grant_id: GrantID) -> list[Session]:
        """All sessions in the grant's lineage, oldest first."""

    @abstractmethod
    async def rotate_session(
        self, session_id: SessionID, new_session: Session, now: datetime
    ) -> bool:
        """Move ``session_id`` created -> refreshed and insert ``new_session``, atomically.

        Returns:
            False (and inserts nothing) if the session was not ``created``.
        """

    @abstractmethod
    async def transition_session(
        self, session_id: SessionID, status: SessionStatus, now: datetime
    ) -> Session | None:
        """Apply one guarded transition; None if the session is missing or the move is not allowed."""

    @abstractmethod
    async def revoke_with_active_sessions(
        self, session_id: SessionID, now: datetime
    ) -> list[SessionID]:
        """Revoke the session and every other ``created`` session of its grant.

        Returns:
            Ids of the other sessions that were revoked.
        """

    @abstractmethod
    async def revoke_lineage_active(
        self, grant_id: GrantID, fallback_session_id: SessionID, now: datetime
    ) -> list[SessionID]:
        """Revoke the grant's ``created`` sessions, or the fallback when there are none.

        Returns:
            Ids of the sessions that were revoked, newest first.
        """

    async def get_session_by_jti(self, kind: TokenKind, jti: JTI) -> Session | None:
        if kind is TokenKind.ACCESS_TOKEN:
            return await self.get_session_by_access_jti(jti)
        return await self.get_session_by_refresh_jti(jti)

    async def active_sessions_for_grant(self, grant_id: GrantID) -> list[Session]:
        sessions = await self.list_sessions_for_grant(grant_id)
        return [session for session in sessions if session.status.is_active()]
