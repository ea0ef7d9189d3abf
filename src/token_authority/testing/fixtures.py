"""Pytest fixtures and helpers for testing code built on the token authority.

Fixtures (use with pytest):
    frozen_clock: FrozenClock pinned to a fixed instant.
    authority_config: AuthorityConfig with scopes and one API resource enabled.
    memory_store: Empty InMemoryAuthorityStore.
    confidential_client / public_client: Registered clients
        (confidential_client yields ``(client, secret)``).
    client_resolver: StaticClientResolver holding both clients.
    token_authority: TokenAuthority over the fixtures above.

Helpers:
    pkce_pair(): Fresh (code_verifier, code_challenge).
    issue_token_pair(): Authorize and exchange in one call.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from token_authority.authority import TokenAuthority
from token_authority.clients import StaticClientResolver
from token_authority.clock import FrozenClock
from token_authority.config import AuthorityConfig
from token_authority.models.entities import Client, TokenResult
from token_authority.models.enums import ClientType
from token_authority.pkce import compute_code_challenge, generate_code_verifier
from token_authority.stores.memory import InMemoryAuthorityStore

TEST_ISSUER = "https://auth.example.com"
TEST_AUDIENCE = "https://api.example.com"
TEST_RESOURCE = "https://api.example.com"
TEST_SECONDARY_RESOURCE = "https://files.example.com"
TEST_REDIRECT_URI = "https://app.example.com/callback"
TEST_SECRET_KEY = "test-signing-secret-0123456789abcdef"
TEST_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def pkce_pair() -> tuple[str, str]:
    """Return a fresh ``(code_verifier, code_challenge)`` pair."""
    verifier = generate_code_verifier()
    return verifier, compute_code_challenge(verifier)


def make_config(**overrides: Any) -> AuthorityConfig:
    """Build the default test configuration with field overrides."""
    values: dict[str, Any] = {
        "issuer_url": TEST_ISSUER,
        "audience_url": TEST_AUDIENCE,
        "secret_key": TEST_SECRET_KEY,
        "resources": {TEST_RESOURCE: "Example API", TEST_SECONDARY_RESOURCE: "Example Files"},
        "scopes": {"read": "Read your data", "write": "Change your data"},
    }
    values.update(overrides)
    return AuthorityConfig(**values)


async def issue_token_pair(
    authority: TokenAuthority,
    client: Client,
    client_secret: str | None = None,
    *,
    user_id: str = "user-1",
    scope: Any = "read write",
    resources: Any = TEST_RESOURCE,
    redirect_uri: str = TEST_REDIRECT_URI,
) -> TokenResult:
    """Authorize ``client`` for ``user_id`` and exchange the code with PKCE."""
    verifier, challenge = pkce_pair()
    grant = await authority.authorize(
        client.public_id,
        user_id,
        code_challenge=challenge,
        code_challenge_method="S256",
        redirect_uri=redirect_uri,
        scope=scope,
        resources=resources,
    )
    return await authority.exchange_code(
        grant.code,
        code_verifier=verifier,
        redirect_uri=redirect_uri,
        client_id=client.public_id,
        client_secret=client_secret,
    )


@pytest.fixture
def frozen_clock() -> FrozenClock:
    """Clock pinned to TEST_NOW; advance it explicitly to expire things."""
    return FrozenClock(TEST_NOW)


@pytest.fixture
def authority_config() -> AuthorityConfig:
    return make_config()


@pytest.fixture
def memory_store() -> InMemoryAuthorityStore:
    """Create an in-memory authority store (empty, isolated per test)."""
    return InMemoryAuthorityStore()


@pytest.fixture
def confidential_client() -> tuple[Client, str]:
    """A confidential client and its plaintext secret."""
    client, secret = Client.register(
        name="Reporting App",
        redirect_uris=[TEST_REDIRECT_URI],
        client_type=ClientType.CONFIDENTIAL,
        public_id="reporting-app",
    )
    assert secret is not None
    return client, secret


@pytest.fixture
def public_client() -> Client:
    client, _ = Client.register(
        name="Mobile App",
        redirect_uris=[TEST_REDIRECT_URI],
        client_type=ClientType.PUBLIC,
        public_id="mobile-app",
    )
    return client


@pytest.fixture
def client_resolver(
    confidential_client: tuple[Client, str], public_client: Client
) -> StaticClientResolver:
    return StaticClientResolver([confidential_client[0], public_client])


@pytest.fixture
def token_authority(
    authority_config: AuthorityConfig,
    memory_store: InMemoryAuthorityStore,
    client_resolver: StaticClientResolver,
    frozen_clock: FrozenClock,
) -> TokenAuthority:
    """A TokenAuthority over the in-memory store and frozen clock."""
    return TokenAuthority(authority_config, memory_store, client_resolver, clock=frozen_clock)


__all__ = [
    "TEST_AUDIENCE",
    "TEST_ISSUER",
    "TEST_NOW",
    "TEST_REDIRECT_URI",
    "TEST_RESOURCE",
    "TEST_SECONDARY_RESOURCE",
    "TEST_SECRET_KEY",
    "authority_config",
    "client_resolver",
    "confidential_client",
    "frozen_clock",
    "issue_token_pair",
    "make_config",
    "memory_store",
    "pkce_pair",
    "public_client",
    "token_authority",
]
