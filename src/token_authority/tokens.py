"""Signed JWT encoding and decoding for access and refresh tokens.

Both halves of a token pair carry the same claim set (``iss``, ``aud``,
``exp``, ``iat``, ``jti``, ``sub``, ``client_id`` and, when non-empty,
``scope``). Decoding verifies the signature only; claim checks such as
expiry belong to :class:`token_authority.claims.ClaimValidator`, which needs
to see expired tokens in order to expire their sessions.
"""

from __future__ import annotations

from typing import Any, ClassVar, TypeVar, Union

from joserfc import jwt as jose_jwt
from joserfc.errors import JoseError
from joserfc.jwk import ECKey, OctKey, OKPKey, RSAKey
from pydantic import ConfigDict, ValidationError

from token_authority.config import AuthorityConfig
from token_authority.errors import ConfigurationError, MalformedTokenError
from token_authority.keys import load_signing_key
from token_authority.models.base import TokenAuthorityBaseModel
from token_authority.models.enums import TokenKind
from token_authority.scopes import ScopeSet

SigningKey = Union[OctKey, RSAKey, ECKey, OKPKey]

TOKEN_TYP = "JWT"


class TokenClaims(TokenAuthorityBaseModel):
    """Claims of a decoded token pair half.

    Every claim is optional at parse time so that a missing ``aud`` or
    ``iss`` is reported by claim validation rather than rejected as
    malformed.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    kind: ClassVar[TokenKind]

    iss: str | None = None
    aud: str | list[str] | None = None
    exp: int | None = None
    iat: int | None = None
    jti: str | None = None
    sub: str | None = None
    client_id: str | None = None
    scope: str | None = None

    @property
    def audiences(self) -> list[str]:
        if self.aud is None:
            return []
        if isinstance(self.aud, str):
            return [self.aud]
        return list(self.aud)

    @property
    def scopes(self) -> ScopeSet:
        return ScopeSet.parse(self.scope)

    def to_claims(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class AccessToken(TokenClaims):
    kind = TokenKind.ACCESS_TOKEN


class RefreshToken(TokenClaims):
    kind = TokenKind.REFRESH_TOKEN


ClaimsT = TypeVar("ClaimsT", bound=TokenClaims)


class TokenCodec:
    """Encode and verify JWTs with one signing key.

    Example:
        >>> codec = TokenCodec("s" * 32)
        >>> token = codec.encode(AccessToken(iss="https://auth.example.com", jti="abc"))
        >>> codec.decode_access(token).iss
        'https://auth.example.com'
    """

    def __init__(self, key: str | bytes | SigningKey, algorithm: str = "HS256") -> None:
        if isinstance(key, (str, bytes)):
            key = OctKey.import_key(key)
        self._key: SigningKey = key
        self._algorithm = algorithm

    @classmethod
    def from_config(
        cls, config: AuthorityConfig, signing_key: SigningKey | None = None
    ) -> TokenCodec:
        """Build a codec from an explicit key, the configured key file, or the HMAC secret.

        Raises:
            ConfigurationError: If no key is available or the key file cannot be loaded.
        """
        if signing_key is None and config.signing_key_path is not None:
            try:
                signing_key = load_signing_key(config.signing_key_path)
            except (OSError, ValueError) as exc:
                raise ConfigurationError(
                    f"cannot load signing key from {config.signing_key_path}",
                    details={"path": str(config.signing_key_path), "error": str(exc)},
                ) from exc
        if signing_key is not None:
            return cls(signing_key, config.signing_algorithm)
        if not config.uses_hmac or config.secret_key is None:
            raise ConfigurationError(
                f"{config.signing_algorithm} needs signing_key_path or an explicit signing key",
                details={"algorithm": config.signing_algorithm},
            )
        return cls(config.secret_key.get_secret_value(), config.signing_algorithm)

    @property
    def algorithm(self) -> str:
        return self._algorithm

    def encode(self, claims: TokenClaims) -> str:
        header = {"alg": self._algorithm, "typ": TOKEN_TYP}
        return jose_jwt.encode(header, claims.to_claims(), self._key, algorithms=[self._algorithm])

    def decode(self, token: str) -> dict[str, Any]:
        """Verify the signature and return the raw claims.

        Raises:
            MalformedTokenError: If the token is not a JWT signed by this key.
        """
        if not isinstance(token, str) or not token:
            raise MalformedTokenError("empty token")
        try:
            decoded = jose_jwt.decode(token, self._key, algorithms=[self._algorithm])
        except (JoseError, ValueError, TypeError) as exc:
            raise MalformedTokenError(str(exc) or type(exc).__name__) from exc
        return dict(decoded.claims)

    def decode_access(self, token: str) -> AccessToken:
        return self._parse(AccessToken, self.decode(token))

    def decode_refresh(self, token: str) -> RefreshToken:
        return self._parse(RefreshToken, self.decode(token))

    @staticmethod
    def _parse(model: type[ClaimsT], claims: dict[str, Any]) -> ClaimsT:
        try:
            return model.model_validate(claims)
        except ValidationError as exc:
            raise MalformedTokenError(
                "claims have unexpected types",
                details={"fields": [".".join(map(str, error["loc"])) for error in exc.errors()]},
            ) from exc
