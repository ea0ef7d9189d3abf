"""Tests for JWT encoding and decoding."""

from pathlib import Path

import pytest
from joserfc import jwt as jose_jwt
from joserfc.jwk import OctKey

from token_authority.config import AuthorityConfig
from token_authority.errors import ConfigurationError, MalformedTokenError
from token_authority.keys import generate_signing_key, serialize_private_key, to_okp_key
from token_authority.models.ids import generate_jti
from token_authority.testing.fixtures import TEST_ISSUER, TEST_SECRET_KEY, make_config
from token_authority.tokens import AccessToken, RefreshToken, TokenCodec


def _access_token(**overrides: object) -> AccessToken:
    values: dict = {
        "iss": TEST_ISSUER,
        "aud": "https://api.example.com",
        "exp": 1_900_000_000,
        "iat": 1_800_000_000,
        "jti": generate_jti(),
        "sub": "user-1",
        "client_id": "reporting-app",
        "scope": "read write",
    }
    values.update(overrides)
    return AccessToken(**values)


class TestTokenCodec:
    """Tests for TokenCodec signing and verification."""

    def test_access_token_round_trip(self) -> None:
        codec = TokenCodec(TEST_SECRET_KEY)
        claims = _access_token()

        decoded = codec.decode_access(codec.encode(claims))

        assert decoded == claims
        assert decoded.scopes.to_list() == ["read", "write"]
        assert decoded.audiences == ["https://api.example.com"]

    def test_refresh_token_with_audience_list(self) -> None:
        codec = TokenCodec(TEST_SECRET_KEY)
        claims = RefreshToken(
            iss=TEST_ISSUER,
            aud=["https://api.example.com", "https://files.example.com"],
            jti=generate_jti(),
        )

        decoded = codec.decode_refresh(codec.encode(claims))

        assert decoded.audiences == ["https://api.example.com", "https://files.example.com"]

    def test_empty_scope_omitted_from_claims(self) -> None:
        codec = TokenCodec(TEST_SECRET_KEY)

        raw = codec.decode(codec.encode(_access_token(scope=None)))

        assert "scope" not in raw

    def test_decode_does_not_check_expiry(self) -> None:
        """Expired tokens still decode so their sessions can be expired."""
        codec = TokenCodec(TEST_SECRET_KEY)

        decoded = codec.decode_access(codec.encode(_access_token(exp=1)))

        assert decoded.exp == 1

    def test_wrong_key_rejected(self) -> None:
        token = TokenCodec(TEST_SECRET_KEY).encode(_access_token())
        other = TokenCodec("another-signing-secret-0123456789abcdef")

        with pytest.raises(MalformedTokenError):
            other.decode(token)

    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
    def test_garbage_rejected(self, token: str) -> None:
        with pytest.raises(MalformedTokenError):
            TokenCodec(TEST_SECRET_KEY).decode(token)

    def test_wrongly_typed_claims_rejected(self) -> None:
        key = OctKey.import_key(TEST_SECRET_KEY)
        token = jose_jwt.encode(
            {"alg": "HS256"}, {"jti": generate_jti(), "exp": "soon"}, key, algorithms=["HS256"]
        )

        with pytest.raises(MalformedTokenError) as exc_info:
            TokenCodec(TEST_SECRET_KEY).decode_access(token)

        assert exc_info.value.oauth_error == "invalid_request"

    def test_eddsa_round_trip(self) -> None:
        config = make_config(signing_algorithm="EdDSA", secret_key=None)
        codec = TokenCodec.from_config(config, to_okp_key(generate_signing_key()))
        claims = _access_token()

        assert codec.algorithm == "EdDSA"
        assert codec.decode_access(codec.encode(claims)).jti == claims.jti


class TestTokenCodecFromConfig:
    def test_hmac_uses_configured_secret(self) -> None:
        config = make_config()
        token = TokenCodec.from_config(config).encode(_access_token())

        assert TokenCodec(TEST_SECRET_KEY).decode(token)["sub"] == "user-1"

    def test_asymmetric_without_key_rejected(self) -> None:
        config = AuthorityConfig(
            issuer_url=TEST_ISSUER,
            audience_url="https://api.example.com",
            signing_algorithm="EdDSA",
        )

        with pytest.raises(ConfigurationError):
            TokenCodec.from_config(config)

    def test_loads_configured_key_file(self, tmp_path: Path) -> None:
        key_path = tmp_path / "signing.pem"
        key_path.write_bytes(serialize_private_key(generate_signing_key()))
        key_path.chmod(0o600)
        config = make_config(signing_algorithm="EdDSA", secret_key=None, signing_key_path=key_path)

        codec = TokenCodec.from_config(config)

        claims = _access_token()
        assert codec.algorithm == "EdDSA"
        assert codec.decode_access(codec.encode(claims)).jti == claims.jti

    def test_unreadable_key_file(self, tmp_path: Path) -> None:
        key_path = tmp_path / "signing.pem"
        key_path.write_bytes(b"not a pem")
        config = make_config(signing_algorithm="EdDSA", secret_key=None, signing_key_path=key_path)

        with pytest.raises(ConfigurationError, match="cannot load signing key"):
            TokenCodec.from_config(config)
