"""Discovery documents built from configuration alone.

``AuthorizationServerMetadata`` is the RFC 8414 document served at
``/.well-known/oauth-authorization-server``. ``ProtectedResourceMetadata`` is
the RFC 9728 document a resource server serves at
``/.well-known/oauth-protected-resource`` so clients can find the authority.
Neither document reads the store.

Example:
    >>> metadata = AuthorizationServerMetadata.from_config(config)
    >>> metadata.to_dict()["token_endpoint"]
    'https://auth.example.com/oauth/token'
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from token_authority.config import AuthorityConfig
from token_authority.errors import ResourceNotConfiguredError
from token_authority.models.base import TokenAuthorityBaseModel
from token_authority.models.enums import CodeChallengeMethod, GrantType

WELLKNOWN_AUTHORIZATION_SERVER_PATH = "/.well-known/oauth-authorization-server"
"""Standard path for authorization server metadata (RFC 8414)."""

WELLKNOWN_PROTECTED_RESOURCE_PATH = "/.well-known/oauth-protected-resource"
"""Standard path for protected resource metadata (RFC 9728)."""

DEFAULT_MOUNT_PATH = "/oauth"
TOKEN_ENDPOINT_AUTH_METHODS = ("client_secret_basic", "client_secret_post", "none")
BEARER_METHODS = ("header",)


def _issuer(config: AuthorityConfig) -> str:
    return config.issuer_url.rstrip("/")


def _mount(path: str) -> str:
    stripped = path.strip("/")
    return f"/{stripped}" if stripped else ""


class AuthorizationServerMetadata(TokenAuthorityBaseModel):
    """RFC 8414 authorization server metadata."""

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    revocation_endpoint: str
    response_types_supported: list[str] = Field(default_factory=lambda: ["code"])
    grant_types_supported: list[str] = Field(
        default_factory=lambda: [grant_type.value for grant_type in GrantType]
    )
    token_endpoint_auth_methods_supported: list[str] = Field(
        default_factory=lambda: list(TOKEN_ENDPOINT_AUTH_METHODS)
    )
    code_challenge_methods_supported: list[str] = Field(
        default_factory=lambda: [method.value for method in CodeChallengeMethod]
    )
    scopes_supported: list[str] | None = None
    service_documentation: str | None = None

    @classmethod
    def from_config(
        cls, config: AuthorityConfig, mount_path: str = DEFAULT_MOUNT_PATH
    ) -> AuthorizationServerMetadata:
        """Build the document; endpoints live under ``issuer + mount_path``.

        ``scopes_supported`` is omitted when no scopes are configured.
        """
        issuer = _issuer(config)
        base = f"{issuer}{_mount(mount_path)}"
        return cls(
            issuer=issuer,
            authorization_endpoint=f"{base}/authorize",
            token_endpoint=f"{base}/token",
            revocation_endpoint=f"{base}/revoke",
            scopes_supported=list(config.scopes) or None,
            service_documentation=config.service_documentation,
        )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ProtectedResourceMetadata(TokenAuthorityBaseModel):
    """RFC 9728 protected resource metadata; unset optional fields are omitted."""

    resource: str
    authorization_servers: list[str]
    scopes_supported: list[str] | None = None
    bearer_methods_supported: list[str] = Field(default_factory=lambda: list(BEARER_METHODS))
    resource_name: str | None = None
    resource_documentation: str | None = None
    resource_policy_uri: str | None = None
    resource_tos_uri: str | None = None
    jwks_uri: str | None = None

    @classmethod
    def for_resource(
        cls,
        config: AuthorityConfig,
        resource: str | None = None,
        **optional: str | None,
    ) -> ProtectedResourceMetadata:
        """Describe ``resource`` (default: the audience URL) as served by this authority.

        Args:
            config: Authority configuration
            resource: The audience URL or an allowlisted resource URI
            **optional: resource_documentation, resource_policy_uri,
                resource_tos_uri or jwks_uri

        Raises:
            ResourceNotConfiguredError: If ``resource`` is neither the audience
                URL nor on the resource allowlist.
        """
        uri = resource or config.audience_url
        if uri != config.audience_url and uri not in config.resources:
            raise ResourceNotConfiguredError(uri)
        return cls(
            resource=uri,
            authorization_servers=[_issuer(config)],
            scopes_supported=list(config.scopes) or None,
            resource_name=config.resources.get(uri),
            **optional,
        )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
