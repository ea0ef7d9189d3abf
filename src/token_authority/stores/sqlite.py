"""SQLite-backed authority store (persistent, file-based).

Writes run inside ``BEGIN IMMEDIATE`` transactions so the write lock is held
from the first read; compare-and-set updates additionally guard on the
expected prior state. Unique indexes on the authorization code and both jti
columns back the uniqueness invariants.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from token_authority.errors import ServerError
from token_authority.models.entities import AuthorizationGrant, PKCEChallenge, Session
from token_authority.models.enums import CodeChallengeMethod, SessionStatus
from token_authority.models.types import AuthorizationCode, GrantID, JTI, SessionID
from token_authority.state.machine import can_transition, transition
from token_authority.stores.base import AuthorityStoreBase

DEFAULT_DB_PATH = "token_authority.db"
GRANTS_TABLE = "authorization_grants"
SESSIONS_TABLE = "token_sessions"
DEFAULT_BUSY_TIMEOUT = 30.0

_GRANT_COLUMNS = (
    "id, code, client_id, user_id, expires_at, redeemed, code_challenge, "
    "code_challenge_method, redirect_uri, scopes, resources, created_at"
)
_SESSION_COLUMNS = (
    "id, grant_id, access_token_jti, refresh_token_jti, status, created_at, updated_at"
)


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _grant_to_row(grant: AuthorizationGrant) -> tuple[Any, ...]:
    challenge = grant.challenge
    return (
        grant.id,
        grant.code,
        grant.client_id,
        grant.user_id,
        grant.expires_at.isoformat(),
        1 if grant.redeemed else 0,
        challenge.code_challenge,
        challenge.code_challenge_method.value if challenge.code_challenge_method else None,
        challenge.redirect_uri,
        json.dumps(grant.scopes),
        json.dumps(grant.resources),
        grant.created_at.isoformat(),
    )


def _row_to_grant(row: tuple[Any, ...]) -> AuthorizationGrant:
    (
        grant_id,
        code,
        client_id,
        user_id,
        expires_at,
        redeemed,
        code_challenge,
        code_challenge_method,
        redirect_uri,
        scopes_json,
        resources_json,
        created_at,
    ) = row
    return AuthorizationGrant(
        id=grant_id,
        code=code,
        client_id=client_id,
        user_id=user_id,
        expires_at=_parse_datetime(expires_at),
        redeemed=bool(redeemed),
        challenge=PKCEChallenge(
            code_challenge=code_challenge,
            code_challenge_method=(
                CodeChallengeMethod(code_challenge_method) if code_challenge_method else None
            ),
            redirect_uri=redirect_uri,
        ),
        scopes=json.loads(scopes_json),
        resources=json.loads(resources_json),
        created_at=_parse_datetime(created_at),
    )


def _session_to_row(session: Session) -> tuple[Any, ...]:
    return (
        session.id,
        session.grant_id,
        session.access_token_jti,
        session.refresh_token_jti,
        session.status.value,
        session.created_at.isoformat(),
        session.updated_at.isoformat(),
    )


def _row_to_session(row: tuple[Any, ...]) -> Session:
    session_id, grant_id, access_jti, refresh_jti, status, created_at, updated_at = row
    return Session(
        id=session_id,
        grant_id=grant_id,
        access_token_jti=access_jti,
        refresh_token_jti=refresh_jti,
        status=SessionStatus(status),
        created_at=_parse_datetime(created_at),
        updated_at=_parse_datetime(updated_at),
    )


class SQLiteAuthorityStore(AuthorityStoreBase):
    """Authority store persisted in a SQLite file; survives restarts.

    Safe for many concurrent workers sharing the same file: each operation
    opens its own connection and waits up to ``busy_timeout`` seconds for
    the database write lock.
    """

    def __init__(
        self, db_path: str | Path = DEFAULT_DB_PATH, busy_timeout: float = DEFAULT_BUSY_TIMEOUT
    ) -> None:
        """Initialize with database file path.

        Args:
            db_path: Path to the SQLite database file.
            busy_timeout: Seconds to wait for a competing writer.
        """
        self._db_path = Path(db_path)
        self._busy_timeout = busy_timeout
        self._tables_ready = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def initialize(self) -> None:
        """Create tables and indexes if they do not exist."""
        async with self._connect():
            pass

    async def _ensure_tables(self, conn: aiosqlite.Connection) -> None:
        await conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {GRANTS_TABLE} (
                id TEXT PRIMARY KEY,
                code TEXT NOT NULL,
                client_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                redeemed INTEGER NOT NULL DEFAULT 0,
                code_challenge TEXT,
                code_challenge_method TEXT,
                redirect_uri TEXT,
                scopes TEXT NOT NULL,
                resources TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        await conn.execute(
            f"CREATE UNIQUE INDEX IF NOT EXISTS idx_grants_code ON {GRANTS_TABLE} (code)"
        )
        await conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {SESSIONS_TABLE} (
                id TEXT PRIMARY KEY,
                grant_id TEXT NOT NULL REFERENCES {GRANTS_TABLE} (id),
                access_token_jti TEXT NOT NULL,
                refresh_token_jti TEXT NOT NULL,
                status TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        await conn.execute(
            f"""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_sessions_access_jti
            ON {SESSIONS_TABLE} (access_token_jti)
            """
        )
        await conn.execute(
            f"""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_sessions_refresh_jti
            ON {SESSIONS_TABLE} (refresh_token_jti)
            """
        )
        await conn.execute(
            f"""
            CREATE INDEX IF NOT EXISTS idx_sessions_grant_status
            ON {SESSIONS_TABLE} (grant_id, status)
            """
        )

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        async with aiosqlite.connect(
            self._db_path, isolation_level=None, timeout=self._busy_timeout
        ) as conn:
            await conn.execute("PRAGMA foreign_keys = ON")
            if not self._tables_ready:
                await self._ensure_tables(conn)
                self._tables_ready = True
            yield conn

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self._connect() as conn:
            await conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                await conn.execute("ROLLBACK")
                raise
            else:
                await conn.execute("COMMIT")

    async def _fetch_grant(
        self, conn: aiosqlite.Connection, column: str, value: str
    ) -> AuthorizationGrant | None:
        cursor = await conn.execute(
            f"SELECT {_GRANT_COLUMNS} FROM {GRANTS_TABLE} WHERE {column} = ?", (value,)
        )
        row = await cursor.fetchone()
        return _row_to_grant(tuple(row)) if row is not None else None

    async def _fetch_session(
        self, conn: aiosqlite.Connection, column: str, value: str
    ) -> Session | None:
        cursor = await conn.execute(
            f"SELECT {_SESSION_COLUMNS} FROM {SESSIONS_TABLE} WHERE {column} = ?", (value,)
        )
        row = await cursor.fetchone()
        return _row_to_session(tuple(row)) if row is not None else None

    async def _insert_session(self, conn: aiosqlite.Connection, session: Session) -> None:
        try:
            await conn.execute(
                f"INSERT INTO {SESSIONS_TABLE} ({_SESSION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                _session_to_row(session),
            )
        except aiosqlite.IntegrityError as exc:
            raise ServerError(
                "session conflicts with stored data", details={"session_id": session.id}
            ) from exc

    async def _apply(
        self,
        conn: aiosqlite.Connection,
        session: Session,
        status: SessionStatus,
        now: datetime,
    ) -> Session | None:
        if not can_transition(session.status, status):
            return None
        updated = transition(session, status, now)
        cursor = await conn.execute(
            f"UPDATE {SESSIONS_TABLE} SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
            (status.value, now.isoformat(), session.id, session.status.value),
        )
        return updated if cursor.rowcount == 1 else None

    async def save_grant(self, grant: AuthorizationGrant) -> None:
        async with self._transaction() as conn:
            try:
                await conn.execute(
                    f"INSERT INTO {GRANTS_TABLE} ({_GRANT_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    _grant_to_row(grant),
                )
            except aiosqlite.IntegrityError as exc:
                raise ServerError(
                    "duplicate authorization grant", details={"grant_id": grant.id}
                ) from exc

    async def get_grant(self, grant_id: GrantID) -> AuthorizationGrant | None:
        async with self._connect() as conn:
            return await self._fetch_grant(conn, "id", grant_id)

    async def get_grant_by_code(self, code: AuthorizationCode) -> AuthorizationGrant | None:
        async with self._connect() as conn:
            return await self._fetch_grant(conn, "code", code)

    async def redeem_grant_with_session(self, grant_id: GrantID, session: Session) -> bool:
        async with self._transaction() as conn:
            cursor = await conn.execute(
                f"UPDATE {GRANTS_TABLE} SET redeemed = 1 WHERE id = ? AND redeemed = 0",
                (grant_id,),
            )
            if cursor.rowcount != 1:
                return False
            await self._insert_session(conn, session)
            return True

    async def get_session(self, session_id: SessionID) -> Session | None:
        async with self._connect() as conn:
            return await self._fetch_session(conn, "id", session_id)

    async def get_session_by_access_jti(self, jti: JTI) -> Session | None:
        async with self._connect() as conn:
            return await self._fetch_session(conn, "access_token_jti", jti)

    async def get_session_by_refresh_jti(self, jti: JTI) -> Session | None:
        async with self._connect() as conn:
            return await self._fetch_session(conn, "refresh_token_jti", jti)

    async def list_sessions_for_grant(self, grant_id: GrantID) -> list[Session]:
        async with self._connect() as conn:
            cursor = await conn.execute(
                f"""
                SELECT {_SESSION_COLUMNS} FROM {SESSIONS_TABLE}
                WHERE grant_id = ?
                ORDER BY rowid
                """,
                (grant_id,),
            )
            rows = await cursor.fetchall()
            return [_row_to_session(tuple(row)) for row in rows]

    async def rotate_session(
        self, session_id: SessionID, new_session: Session, now: datetime
    ) -> bool:
        async with self._transaction() as conn:
            current = await self._fetch_session(conn, "id", session_id)
            if current is None or current.status is not SessionStatus.CREATED:
                return False
            if await self._apply(conn, current, SessionStatus.REFRESHED, now) is None:
                return False
            await self._insert_session(conn, new_session)
            return True

    async def transition_session(
        self, session_id: SessionID, status: SessionStatus, now: datetime
    ) -> Session | None:
        async with self._transaction() as conn:
            current = await self._fetch_session(conn, "id", session_id)
            if current is None:
                return None
            return await self._apply(conn, current, status, now)

    async def revoke_with_active_sessions(
        self, session_id: SessionID, now: datetime
    ) -> list[SessionID]:
        async with self._transaction() as conn:
            current = await self._fetch_session(conn, "id", session_id)
            if current is None:
                return []
            await self._apply(conn, current, SessionStatus.REVOKED, now)
            revoked: list[SessionID] = []
            for other in await self._active_sessions(conn, current.grant_id):
                if other.id == session_id:
                    continue
                if await self._apply(conn, other, SessionStatus.REVOKED, now) is not None:
                    revoked.append(other.id)
            return revoked

    async def revoke_lineage_active(
        self, grant_id: GrantID, fallback_session_id: SessionID, now: datetime
    ) -> list[SessionID]:
        async with self._transaction() as conn:
            targets = await self._active_sessions(conn, grant_id)
            if not targets:
                fallback = await self._fetch_session(conn, "id", fallback_session_id)
                targets = [fallback] if fallback is not None else []
            for session in targets:
                await self._apply(conn, session, SessionStatus.REVOKED, now)
            return [session.id for session in targets]

    async def _active_sessions(self, conn: aiosqlite.Connection, grant_id: GrantID) -> list[Session]:
        cursor = await conn.execute(
            f"""
            SELECT {_SESSION_COLUMNS} FROM {SESSIONS_TABLE}
            WHERE grant_id = ? AND status = ?
            ORDER BY rowid DESC
            """,
            (grant_id, SessionStatus.CREATED.value),
        )
        rows = await cursor.fetchall()
        return [_row_to_session(tuple(row)) for row in rows]
