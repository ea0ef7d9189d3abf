"""Grant and session storage backends.

- InMemoryAuthorityStore (from stores.memory)
- SQLiteAuthorityStore (from stores.sqlite)

Factory:
- create_store() builds a store from TOKEN_AUTHORITY_STORAGE_BACKEND and
  TOKEN_AUTHORITY_STORAGE_PATH (default: memory, token_authority.db).
"""

import os
from pathlib import Path

from token_authority.stores.base import AuthorityStore, AuthorityStoreBase
from token_authority.stores.memory import InMemoryAuthorityStore
from token_authority.stores.sqlite import DEFAULT_DB_PATH, SQLiteAuthorityStore

STORAGE_BACKEND_ENV = "TOKEN_AUTHORITY_STORAGE_BACKEND"
STORAGE_PATH_ENV = "TOKEN_AUTHORITY_STORAGE_PATH"


def create_store() -> AuthorityStore:
    """Create an AuthorityStore from environment.

    Use "memory" for tests and single-process use, "sqlite" for state shared
    between workers or kept across restarts.

    Raises:
        ValueError: If TOKEN_AUTHORITY_STORAGE_BACKEND is not "memory" or "sqlite".
    """
    backend = os.environ.get(STORAGE_BACKEND_ENV, "memory").strip().lower()
    path = os.environ.get(STORAGE_PATH_ENV, DEFAULT_DB_PATH).strip()

    if backend == "memory":
        return InMemoryAuthorityStore()
    if backend == "sqlite":
        return SQLiteAuthorityStore(db_path=Path(path))
    raise ValueError(f"Unknown {STORAGE_BACKEND_ENV}={backend!r}. Use 'memory' or 'sqlite'.")


__all__ = [
    "AuthorityStore",
    "AuthorityStoreBase",
    "InMemoryAuthorityStore",
    "SQLiteAuthorityStore",
    "create_store",
]
