"""Authority configuration.

``AuthorityConfig`` is an immutable value handed to every component at
construction; nothing reads configuration from module globals. It can be
built directly or from ``TOKEN_AUTHORITY_*`` environment variables.

Environment Variables:
    TOKEN_AUTHORITY_ISSUER_URL: ``iss`` claim (required)
    TOKEN_AUTHORITY_AUDIENCE_URL: default ``aud`` when no resource is bound (required)
    TOKEN_AUTHORITY_SECRET_KEY: HMAC signing secret, at least 32 bytes
    TOKEN_AUTHORITY_SIGNING_ALGORITHM: JWS algorithm (default HS256)
    TOKEN_AUTHORITY_SIGNING_KEY_PATH: Ed25519 PEM file used when signing with EdDSA
    TOKEN_AUTHORITY_RESOURCES: JSON object of resource URI to display name
    TOKEN_AUTHORITY_SCOPES: JSON object of scope to display name
    TOKEN_AUTHORITY_ACCESS_TOKEN_DURATION: seconds (default 300)
    TOKEN_AUTHORITY_REFRESH_TOKEN_DURATION: seconds (default 1209600)
    TOKEN_AUTHORITY_GRANT_TTL: seconds (default 300)
    TOKEN_AUTHORITY_REQUIRE_RESOURCE: "true" to reject token requests without a resource
    TOKEN_AUTHORITY_REQUIRE_SCOPE: "true" to reject token requests without a scope
    TOKEN_AUTHORITY_SERVICE_DOCUMENTATION: URL advertised in authorization server metadata
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import Field, SecretStr, ValidationError, field_validator, model_validator

from token_authority.errors import ConfigurationError
from token_authority.models.base import TokenAuthorityBaseModel
from token_authority.resources import is_valid_resource_uri
from token_authority.scopes import is_valid_scope_token

ENV_ISSUER_URL = "TOKEN_AUTHORITY_ISSUER_URL"
ENV_AUDIENCE_URL = "TOKEN_AUTHORITY_AUDIENCE_URL"
ENV_SECRET_KEY = "TOKEN_AUTHORITY_SECRET_KEY"
ENV_SIGNING_ALGORITHM = "TOKEN_AUTHORITY_SIGNING_ALGORITHM"
ENV_SIGNING_KEY_PATH = "TOKEN_AUTHORITY_SIGNING_KEY_PATH"
ENV_RESOURCES = "TOKEN_AUTHORITY_RESOURCES"
ENV_SCOPES = "TOKEN_AUTHORITY_SCOPES"
ENV_ACCESS_TOKEN_DURATION = "TOKEN_AUTHORITY_ACCESS_TOKEN_DURATION"
ENV_REFRESH_TOKEN_DURATION = "TOKEN_AUTHORITY_REFRESH_TOKEN_DURATION"
ENV_GRANT_TTL = "TOKEN_AUTHORITY_GRANT_TTL"
ENV_REQUIRE_RESOURCE = "TOKEN_AUTHORITY_REQUIRE_RESOURCE"
ENV_REQUIRE_SCOPE = "TOKEN_AUTHORITY_REQUIRE_SCOPE"
ENV_SERVICE_DOCUMENTATION = "TOKEN_AUTHORITY_SERVICE_DOCUMENTATION"

DEFAULT_ACCESS_TOKEN_DURATION = 300
DEFAULT_REFRESH_TOKEN_DURATION = 1_209_600
DEFAULT_GRANT_TTL = 300
DEFAULT_SIGNING_ALGORITHM = "HS256"

HMAC_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})
KEY_FILE_ALGORITHM = "EdDSA"
SUPPORTED_ALGORITHMS = HMAC_ALGORITHMS | frozenset({"RS256", "ES256", "EdDSA"})
MIN_HMAC_SECRET_BYTES = 32

_TRUTHY = frozenset({"true", "1", "yes", "on"})


class AuthorityConfig(TokenAuthorityBaseModel):
    """Issuer, audience, allowlists and token lifetimes.

    Resource indicators are enabled when ``resources`` is non-empty; scopes
    likewise. The dict values are display names for consent screens.

    Example:
        >>> config = AuthorityConfig(
        ...     issuer_url="https://auth.example.com",
        ...     audience_url="https://api.example.com",
        ...     secret_key="x" * 32,
        ...     scopes={"read": "Read your data"},
        ... )
        >>> config.scopes_enabled, config.resources_enabled
        (True, False)
    """

    issuer_url: str = Field(min_length=1)
    audience_url: str = Field(min_length=1)
    secret_key: SecretStr | None = None
    signing_algorithm: str = DEFAULT_SIGNING_ALGORITHM
    signing_key_path: Path | None = None
    resources: dict[str, str] = Field(default_factory=dict)
    scopes: dict[str, str] = Field(default_factory=dict)
    access_token_duration: int = Field(default=DEFAULT_ACCESS_TOKEN_DURATION, gt=0)
    refresh_token_duration: int = Field(default=DEFAULT_REFRESH_TOKEN_DURATION, gt=0)
    grant_ttl: int = Field(default=DEFAULT_GRANT_TTL, gt=0)
    require_resource: bool = False
    require_scope: bool = False
    service_documentation: str | None = None

    @field_validator("signing_algorithm")
    @classmethod
    def _check_algorithm(cls, value: str) -> str:
        if value not in SUPPORTED_ALGORITHMS:
            raise ValueError(
                f"Unsupported signing algorithm {value!r}; use one of {sorted(SUPPORTED_ALGORITHMS)}"
            )
        return value

    @field_validator("resources")
    @classmethod
    def _check_resources(cls, value: dict[str, str]) -> dict[str, str]:
        invalid = [uri for uri in value if not is_valid_resource_uri(uri)]
        if invalid:
            raise ValueError(f"Invalid resource URIs: {invalid}")
        return value

    @field_validator("scopes")
    @classmethod
    def _check_scopes(cls, value: dict[str, str]) -> dict[str, str]:
        invalid = [scope for scope in value if not is_valid_scope_token(scope)]
        if invalid:
            raise ValueError(f"Invalid scope tokens: {invalid}")
        return value

    @model_validator(mode="after")
    def _check_consistency(self) -> AuthorityConfig:
        if self.signing_algorithm in HMAC_ALGORITHMS:
            secret = self.secret_key.get_secret_value() if self.secret_key else ""
            if len(secret.encode("utf-8")) < MIN_HMAC_SECRET_BYTES:
                raise ValueError(
                    f"secret_key must be at least {MIN_HMAC_SECRET_BYTES} bytes "
                    f"for {self.signing_algorithm}"
                )
        if self.signing_key_path is not None and self.signing_algorithm != KEY_FILE_ALGORITHM:
            raise ValueError(
                "signing_key_path holds an Ed25519 key; "
                f"signing_algorithm must be {KEY_FILE_ALGORITHM}"
            )
        if self.require_resource and not self.resources:
            raise ValueError("require_resource needs a non-empty resources allowlist")
        if self.require_scope and not self.scopes:
            raise ValueError("require_scope needs a non-empty scopes allowlist")
        return self

    @property
    def resources_enabled(self) -> bool:
        return bool(self.resources)

    @property
    def scopes_enabled(self) -> bool:
        return bool(self.scopes)

    @property
    def resource_allowlist(self) -> frozenset[str]:
        return frozenset(self.resources)

    @property
    def scope_allowlist(self) -> frozenset[str]:
        return frozenset(self.scopes)

    @property
    def uses_hmac(self) -> bool:
        return self.signing_algorithm in HMAC_ALGORITHMS

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AuthorityConfig:
        """Build a config from ``TOKEN_AUTHORITY_*`` variables.

        Raises:
            ConfigurationError: If a variable is missing, unparsable or invalid.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {
            "issuer_url": _required(env, ENV_ISSUER_URL),
            "audience_url": _required(env, ENV_AUDIENCE_URL),
        }
        if env.get(ENV_SECRET_KEY):
            values["secret_key"] = env[ENV_SECRET_KEY]
        if env.get(ENV_SIGNING_ALGORITHM):
            values["signing_algorithm"] = env[ENV_SIGNING_ALGORITHM].strip()
        if env.get(ENV_SIGNING_KEY_PATH):
            values["signing_key_path"] = env[ENV_SIGNING_KEY_PATH].strip()
        if env.get(ENV_SERVICE_DOCUMENTATION):
            values["service_documentation"] = env[ENV_SERVICE_DOCUMENTATION].strip()
        for field_name, var in (("resources", ENV_RESOURCES), ("scopes", ENV_SCOPES)):
            if env.get(var):
                values[field_name] = _json_mapping(env, var)
        for field_name, var in (
            ("access_token_duration", ENV_ACCESS_TOKEN_DURATION),
            ("refresh_token_duration", ENV_REFRESH_TOKEN_DURATION),
            ("grant_ttl", ENV_GRANT_TTL),
        ):
            if env.get(var):
                values[field_name] = _integer(env, var)
        values["require_resource"] = env.get(ENV_REQUIRE_RESOURCE, "").strip().lower() in _TRUTHY
        values["require_scope"] = env.get(ENV_REQUIRE_SCOPE, "").strip().lower() in _TRUTHY

        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigurationError(
                "environment configuration rejected",
                details={"errors": [error["msg"] for error in exc.errors()]},
            ) from exc


def _required(env: Mapping[str, str], name: str) -> str:
    value = env.get(name, "").strip()
    if not value:
        raise ConfigurationError(f"{name} is not set", details={"variable": name})
    return value


def _integer(env: Mapping[str, str], name: str) -> int:
    try:
        return int(env[name].strip())
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer", details={"variable": name}) from exc


def _json_mapping(env: Mapping[str, str], name: str) -> dict[str, str]:
    try:
        parsed = json.loads(env[name])
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{name} is not valid JSON", details={"variable": name}) from exc
    if not isinstance(parsed, dict):
        raise ConfigurationError(f"{name} must be a JSON object", details={"variable": name})
    return {str(key): str(label) for key, label in parsed.items()}
