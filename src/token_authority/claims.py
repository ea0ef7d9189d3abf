"""Claim validation for decoded access and refresh tokens.

Validation is pure: it reports which claims failed and which session side
effect the failure calls for. The caller applies the side effect through the
store, so every status change stays visible in the call graph.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from token_authority.clock import Clock, SystemClock
from token_authority.config import AuthorityConfig
from token_authority.models.entities import Session
from token_authority.models.enums import SessionSideEffect
from token_authority.observability import get_metrics
from token_authority.observability.metrics import CLAIM_FAILURES_TOTAL
from token_authority.tokens import TokenClaims

REVOCABLE_CLAIMS = frozenset({"aud", "iss", "sub"})
EXPIRABLE_CLAIMS = frozenset({"exp"})


@dataclass(frozen=True)
class ClaimValidationResult:
    """Outcome of validating one token.

    Attributes:
        errors: Failed claim name to reason
        side_effect: Status change to apply to the token's session
    """

    errors: dict[str, str] = field(default_factory=dict)
    side_effect: SessionSideEffect = SessionSideEffect.NONE

    @property
    def valid(self) -> bool:
        return not self.errors


def side_effect_for(errors: dict[str, str], session_found: bool) -> SessionSideEffect:
    """Map failed claims to a session side effect; revocation wins over expiry.

    Example:
        >>> side_effect_for({"aud": "mismatch", "exp": "expired"}, session_found=True)
        <SessionSideEffect.REVOKE: 'revoke'>
        >>> side_effect_for({"exp": "expired", "jti": "missing"}, session_found=True)
        <SessionSideEffect.NONE: 'none'>
    """
    if not errors or not session_found or "jti" in errors:
        return SessionSideEffect.NONE
    if REVOCABLE_CLAIMS & errors.keys():
        return SessionSideEffect.REVOKE
    if EXPIRABLE_CLAIMS & errors.keys():
        return SessionSideEffect.EXPIRE
    return SessionSideEffect.NONE


class ClaimValidator:
    """Check ``jti``, ``aud``, ``iss``, ``exp`` and ``sub`` against configuration."""

    def __init__(self, config: AuthorityConfig, clock: Clock | None = None) -> None:
        self._config = config
        self._clock = clock or SystemClock()

    def validate(
        self,
        token: TokenClaims,
        session: Session | None = None,
        expected_subject: str | None = None,
    ) -> ClaimValidationResult:
        """Validate ``token`` and compute the side effect for ``session``.

        Args:
            token: Decoded claims
            session: Session found by the token's jti, if any
            expected_subject: User id of the session's grant; ``sub`` must equal it
        """
        errors: dict[str, str] = {}
        now = self._clock.now()

        if not isinstance(token.jti, str) or not token.jti.strip():
            errors["jti"] = "missing"

        audience_error = self._check_audience(token.audiences)
        if audience_error:
            errors["aud"] = audience_error

        if not token.iss:
            errors["iss"] = "missing"
        elif token.iss != self._config.issuer_url:
            errors["iss"] = "mismatch"

        if token.exp is None:
            errors["exp"] = "missing"
        elif self._is_expired(token.exp, now):
            errors["exp"] = "expired"

        if not token.sub:
            errors["sub"] = "missing"
        elif expected_subject is not None and token.sub != expected_subject:
            errors["sub"] = "mismatch"

        metrics = get_metrics()
        for claim in errors:
            metrics.increment_counter(
                CLAIM_FAILURES_TOTAL, {"claim": claim, "token_kind": token.kind.value}
            )
        return ClaimValidationResult(
            errors=errors,
            side_effect=side_effect_for(errors, session_found=session is not None),
        )

    def _check_audience(self, audiences: list[str]) -> str | None:
        if not audiences:
            return "missing"
        allowlist = self._config.resource_allowlist
        for audience in audiences:
            if not isinstance(audience, str) or not audience:
                return "invalid"
            if not self._under_audience(audience) and audience not in allowlist:
                return "mismatch"
        return None

    def _under_audience(self, audience: str) -> bool:
        # The configured URL itself or a path below it, never a longer host.
        base = self._config.audience_url.rstrip("/")
        return audience == base or audience.startswith(f"{base}/")

    @staticmethod
    def _is_expired(exp: int, now: datetime) -> bool:
        return now.timestamp() > exp
