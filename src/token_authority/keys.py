"""Ed25519 signing keys for EdDSA-signed tokens.

HS256 with the configured secret is the default; deployments whose resource
servers should verify tokens without sharing a secret sign with an Ed25519
key instead and publish the public half.
"""

from __future__ import annotations

import base64
import stat
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import load_pem_private_key
from joserfc.jwk import OKPKey

from token_authority.observability import get_logger

logger = get_logger(__name__)

KEY_FILE_RECOMMENDED_MODE = 0o600


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def generate_signing_key() -> Ed25519PrivateKey:
    return Ed25519PrivateKey.generate()


def serialize_private_key(key: Ed25519PrivateKey) -> bytes:
    """PEM (PKCS#8, unencrypted)."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def load_private_key_from_pem(pem: bytes) -> Ed25519PrivateKey:
    """Raises ValueError if the PEM is invalid or not an Ed25519 key."""
    key = load_pem_private_key(pem, password=None)
    if not isinstance(key, Ed25519PrivateKey):
        raise ValueError("Key is not an Ed25519 private key")
    return key


def to_okp_key(private_key: Ed25519PrivateKey) -> OKPKey:
    """Convert a cryptography Ed25519 key to a joserfc private OKP JWK."""
    raw_private = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    raw_public = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return OKPKey.import_key(
        {"kty": "OKP", "crv": "Ed25519", "d": _b64url(raw_private), "x": _b64url(raw_public)}
    )


def load_signing_key(path: str | Path) -> OKPKey:
    """Load an Ed25519 PEM file as a joserfc key, warning on loose permissions."""
    path = Path(path)
    mode = stat.S_IMODE(path.stat().st_mode)
    if mode & 0o077:
        logger.warning(
            "token_authority.keys.permissive_mode",
            path=str(path),
            mode=oct(mode),
            recommended=oct(KEY_FILE_RECOMMENDED_MODE),
        )
    return to_okp_key(load_private_key_from_pem(path.read_bytes()))
