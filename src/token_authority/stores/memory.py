"""In-memory authority store for tests and single-process deployments."""

from __future__ import annotations

import threading
from datetime import datetime

from token_authority.errors import ServerError
from token_authority.models.entities import AuthorizationGrant, Session
from token_authority.models.enums import SessionStatus
from token_authority.models.types import AuthorizationCode, GrantID, JTI, SessionID
from token_authority.state.machine import can_transition, transition
from token_authority.stores.base import AuthorityStoreBase


class InMemoryAuthorityStore(AuthorityStoreBase):
    """Dict-backed store guarded by a re-entrant lock.

    Every public method runs entirely under the lock without awaiting, so
    compare-and-set operations are atomic across tasks and threads.
    Not persistent across restarts.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._grants: dict[GrantID, AuthorizationGrant] = {}
        self._grant_ids_by_code: dict[AuthorizationCode, GrantID] = {}
        self._sessions: dict[SessionID, Session] = {}
        self._session_ids_by_access_jti: dict[JTI, SessionID] = {}
        self._session_ids_by_refresh_jti: dict[JTI, SessionID] = {}
        self._session_ids_by_grant: dict[GrantID, list[SessionID]] = {}

    async def save_grant(self, grant: AuthorizationGrant) -> None:
        with self._lock:
            if grant.id in self._grants or grant.code in self._grant_ids_by_code:
                raise ServerError("duplicate authorization grant", details={"grant_id": grant.id})
            self._grants[grant.id] = grant
            self._grant_ids_by_code[grant.code] = grant.id

    async def get_grant(self, grant_id: GrantID) -> AuthorizationGrant | None:
        with self._lock:
            return self._grants.get(grant_id)

    async def get_grant_by_code(self, code: AuthorizationCode) -> AuthorizationGrant | None:
        with self._lock:
            grant_id = self._grant_ids_by_code.get(code)
            return self._grants.get(grant_id) if grant_id is not None else None

    async def redeem_grant_with_session(self, grant_id: GrantID, session: Session) -> bool:
        with self._lock:
            grant = self._grants.get(grant_id)
            if grant is None or grant.redeemed:
                return False
            self._check_insertable(session)
            self._grants[grant_id] = grant.model_copy(update={"redeemed": True})
            self._insert_session(session)
            return True

    async def get_session(self, session_id: SessionID) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    async def get_session_by_access_jti(self, jti: JTI) -> Session | None:
        with self._lock:
            session_id = self._session_ids_by_access_jti.get(jti)
            return self._sessions.get(session_id) if session_id is not None else None

    async def get_session_by_refresh_jti(self, jti: JTI) -> Session | None:
        with self._lock:
            session_id = self._session_ids_by_refresh_jti.get(jti)
            return self._sessions.get(session_id) if session_id is not None else None

    async def list_sessions_for_grant(self, grant_id: GrantID) -> list[Session]:
        with self._lock:
            return [
                self._sessions[session_id]
                for session_id in self._session_ids_by_grant.get(grant_id, [])
            ]

    async def rotate_session(
        self, session_id: SessionID, new_session: Session, now: datetime
    ) -> bool:
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None or current.status is not SessionStatus.CREATED:
                return False
            self._check_insertable(new_session)
            self._sessions[session_id] = transition(current, SessionStatus.REFRESHED, now)
            self._insert_session(new_session)
            return True

    async def transition_session(
        self, session_id: SessionID, status: SessionStatus, now: datetime
    ) -> Session | None:
        with self._lock:
            return self._apply(session_id, status, now)

    async def revoke_with_active_sessions(
        self, session_id: SessionID, now: datetime
    ) -> list[SessionID]:
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                return []
            self._apply(session_id, SessionStatus.REVOKED, now)
            revoked: list[SessionID] = []
            for other_id in self._session_ids_by_grant.get(current.grant_id, []):
                if other_id == session_id:
                    continue
                if self._sessions[other_id].status.is_active():
                    self._apply(other_id, SessionStatus.REVOKED, now)
                    revoked.append(other_id)
            return revoked

    async def revoke_lineage_active(
        self, grant_id: GrantID, fallback_session_id: SessionID, now: datetime
    ) -> list[SessionID]:
        with self._lock:
            active = [
                session_id
                for session_id in reversed(self._session_ids_by_grant.get(grant_id, []))
                if self._sessions[session_id].status.is_active()
            ]
            if not active and fallback_session_id in self._sessions:
                active = [fallback_session_id]
            targets = active
            for session_id in targets:
                self._apply(session_id, SessionStatus.REVOKED, now)
            return targets

    def _apply(self, session_id: SessionID, status: SessionStatus, now: datetime) -> Session | None:
        current = self._sessions.get(session_id)
        if current is None or not can_transition(current.status, status):
            return None
        updated = transition(current, status, now)
        self._sessions[session_id] = updated
        return updated

    def _check_insertable(self, session: Session) -> None:
        jtis = (session.access_token_jti, session.refresh_token_jti)
        if (
            session.id in self._sessions
            or session.grant_id not in self._grants
            or any(jti in self._session_ids_by_access_jti for jti in jtis)
            or any(jti in self._session_ids_by_refresh_jti for jti in jtis)
        ):
            raise ServerError("session conflicts with stored data", details={"session_id": session.id})

    def _insert_session(self, session: Session) -> None:
        self._sessions[session.id] = session
        self._session_ids_by_access_jti[session.access_token_jti] = session.id
        self._session_ids_by_refresh_jti[session.refresh_token_jti] = session.id
        self._session_ids_by_grant.setdefault(session.grant_id, []).append(session.id)
