"""PKCE (RFC 7636) challenge computation and verification.

Only the ``S256`` method is supported. Verification compares in constant time.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets

from token_authority.models.enums import CodeChallengeMethod

SUPPORTED_CODE_CHALLENGE_METHODS = frozenset(method.value for method in CodeChallengeMethod)


def compute_code_challenge(code_verifier: str) -> str:
    """Return ``BASE64URL(SHA256(code_verifier))`` without padding.

    Example:
        >>> compute_code_challenge("dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk")
        'E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM'
    """
    digest = hashlib.sha256(code_verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def verify_code_verifier(
    code_verifier: str,
    code_challenge: str,
    method: CodeChallengeMethod | str = CodeChallengeMethod.S256,
) -> bool:
    """Return True if ``code_verifier`` hashes to ``code_challenge``."""
    if method not in SUPPORTED_CODE_CHALLENGE_METHODS:
        return False
    expected = compute_code_challenge(code_verifier)
    return hmac.compare_digest(expected.encode("ascii"), code_challenge.encode("utf-8"))


def generate_code_verifier(num_bytes: int = 32) -> str:
    """Return a random verifier within RFC 7636's 43..128 character range."""
    return secrets.token_urlsafe(num_bytes)
