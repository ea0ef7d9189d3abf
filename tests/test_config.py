"""Tests for AuthorityConfig validation and environment loading."""

import json

import pytest
from pydantic import ValidationError

from token_authority.config import (
    ENV_ACCESS_TOKEN_DURATION,
    ENV_AUDIENCE_URL,
    ENV_ISSUER_URL,
    ENV_REQUIRE_SCOPE,
    ENV_RESOURCES,
    ENV_SCOPES,
    ENV_SECRET_KEY,
    ENV_SERVICE_DOCUMENTATION,
    ENV_SIGNING_ALGORITHM,
    ENV_SIGNING_KEY_PATH,
    AuthorityConfig,
)
from token_authority.errors import ConfigurationError
from token_authority.testing.fixtures import TEST_AUDIENCE, TEST_ISSUER, TEST_SECRET_KEY, make_config


def _env(**extra: str) -> dict[str, str]:
    env = {
        ENV_ISSUER_URL: TEST_ISSUER,
        ENV_AUDIENCE_URL: TEST_AUDIENCE,
        ENV_SECRET_KEY: TEST_SECRET_KEY,
    }
    env.update(extra)
    return env


class TestAuthorityConfig:
    """Tests for direct construction."""

    def test_defaults(self) -> None:
        config = AuthorityConfig(
            issuer_url=TEST_ISSUER, audience_url=TEST_AUDIENCE, secret_key=TEST_SECRET_KEY
        )

        assert config.access_token_duration == 300
        assert config.refresh_token_duration == 1_209_600
        assert config.grant_ttl == 300
        assert config.signing_algorithm == "HS256"
        assert not config.resources_enabled
        assert not config.scopes_enabled

    def test_secret_not_exposed_in_repr(self) -> None:
        assert TEST_SECRET_KEY not in repr(make_config())

    def test_short_hmac_secret_rejected(self) -> None:
        with pytest.raises(ValidationError, match="at least 32 bytes"):
            make_config(secret_key="too-short")

    def test_unsupported_algorithm_rejected(self) -> None:
        with pytest.raises(ValidationError):
            make_config(signing_algorithm="none")

    def test_invalid_resource_rejected(self) -> None:
        with pytest.raises(ValidationError):
            make_config(resources={"https://api.example.com/#frag": "API"})

    def test_invalid_scope_rejected(self) -> None:
        with pytest.raises(ValidationError):
            make_config(scopes={'bad"scope': "Bad"})

    def test_require_scope_needs_allowlist(self) -> None:
        with pytest.raises(ValidationError):
            make_config(scopes={}, require_scope=True)

    def test_key_file_requires_eddsa(self) -> None:
        with pytest.raises(ValidationError, match="signing_algorithm must be EdDSA"):
            make_config(signing_key_path="signing.pem")

    def test_allowlists(self) -> None:
        config = make_config()

        assert config.scope_allowlist == {"read", "write"}
        assert "https://files.example.com" in config.resource_allowlist


class TestFromEnv:
    """Tests for AuthorityConfig.from_env."""

    def test_minimal_environment(self) -> None:
        config = AuthorityConfig.from_env(_env())

        assert config.issuer_url == TEST_ISSUER
        assert config.secret_key is not None
        assert config.secret_key.get_secret_value() == TEST_SECRET_KEY

    def test_full_environment(self) -> None:
        config = AuthorityConfig.from_env(
            _env(
                **{
                    ENV_RESOURCES: json.dumps({"https://api.example.com": "API"}),
                    ENV_SCOPES: json.dumps({"read": "Read"}),
                    ENV_ACCESS_TOKEN_DURATION: "60",
                    ENV_REQUIRE_SCOPE: "yes",
                }
            )
        )

        assert config.resources == {"https://api.example.com": "API"}
        assert config.scopes == {"read": "Read"}
        assert config.access_token_duration == 60
        assert config.require_scope is True
        assert config.require_resource is False

    def test_reads_os_environ_by_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name, value in _env().items():
            monkeypatch.setenv(name, value)

        assert AuthorityConfig.from_env().audience_url == TEST_AUDIENCE

    def test_missing_issuer(self) -> None:
        env = _env()
        del env[ENV_ISSUER_URL]

        with pytest.raises(ConfigurationError, match=ENV_ISSUER_URL):
            AuthorityConfig.from_env(env)

    def test_non_integer_duration(self) -> None:
        with pytest.raises(ConfigurationError):
            AuthorityConfig.from_env(_env(**{ENV_ACCESS_TOKEN_DURATION: "five"}))

    @pytest.mark.parametrize("value", ["{not json", '["read"]'])
    def test_bad_scope_json(self, value: str) -> None:
        with pytest.raises(ConfigurationError):
            AuthorityConfig.from_env(_env(**{ENV_SCOPES: value}))

    def test_invalid_values_wrapped(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            AuthorityConfig.from_env(_env(**{ENV_SECRET_KEY: "short"}))

        assert exc_info.value.details["errors"]

    def test_signing_key_path_and_documentation(self) -> None:
        config = AuthorityConfig.from_env(
            _env(
                **{
                    ENV_SIGNING_ALGORITHM: "EdDSA",
                    ENV_SIGNING_KEY_PATH: "/etc/token-authority/signing.pem",
                    ENV_SERVICE_DOCUMENTATION: "https://auth.example.com/docs",
                }
            )
        )

        assert str(config.signing_key_path) == "/etc/token-authority/signing.pem"
        assert config.service_documentation == "https://auth.example.com/docs"
