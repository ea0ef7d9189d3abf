"""Token authority error taxonomy.

Every error carries an internal ``code`` (``token_authority:<area>/<reason>``),
a human-readable message and a ``details`` dict for logs and audits, plus the
OAuth ``error`` string a token or resource endpoint would return. Only the
OAuth string leaves the process: ``to_oauth_response()`` never includes
details.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, ClassVar


class TokenAuthorityError(Exception):
    """Base exception for all token authority errors.

    Attributes:
        code: Internal error code following the token_authority:... pattern
        message: Human-readable error message
        details: Additional context (ids, validation issues)
        oauth_error: OAuth 2.x ``error`` value exposed to callers
    """

    oauth_error: ClassVar[str] = "server_error"

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize to ``{code, message, oauth_error, details}``."""
        return {
            "code": self.code,
            "message": self.message,
            "oauth_error": self.oauth_error,
            "details": self.details,
        }

    def to_oauth_response(self) -> dict[str, str]:
        return {"error": self.oauth_error}


def _issue_details(issues: Iterable[Any] | None, details: dict[str, Any] | None) -> dict[str, Any]:
    merged = dict(details or {})
    if issues:
        merged["issues"] = [{"field": issue.field, "reason": issue.reason} for issue in issues]
    return merged


class ConfigurationError(TokenAuthorityError):
    """Raised when the authority configuration is missing or invalid."""

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="token_authority:config/invalid",
            message=f"Invalid configuration: {reason}",
            details=details,
        )
        self.reason = reason


class ResourceNotConfiguredError(ConfigurationError):
    """Raised when metadata is requested for a resource this authority does not serve."""

    def __init__(self, resource: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            f"resource not configured: {resource}",
            details={"resource": resource, **(details or {})},
        )
        self.code = "token_authority:config/resource_not_configured"
        self.resource = resource


class ClientNotFoundError(TokenAuthorityError):
    """Raised when no registered client matches the presented client id."""

    oauth_error = "invalid_client"

    def __init__(self, client_id: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="token_authority:client/not_found",
            message=f"Client not found: {client_id}",
            details={"client_id": client_id, **(details or {})},
        )
        self.client_id = client_id


class ClientAuthenticationError(TokenAuthorityError):
    """Raised when a confidential client fails secret authentication."""

    oauth_error = "invalid_client"

    def __init__(self, client_id: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="token_authority:client/authentication_failed",
            message=f"Client authentication failed: {client_id}",
            details={"client_id": client_id, **(details or {})},
        )
        self.client_id = client_id


class ClientMismatchError(TokenAuthorityError):
    """Raised when the authenticated client differs from the one expected."""

    oauth_error = "invalid_client"

    def __init__(self, expected: str, actual: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="token_authority:client/mismatch",
            message=f"Client mismatch: expected {expected}, got {actual}",
            details={"expected_client_id": expected, "client_id": actual, **(details or {})},
        )
        self.expected = expected
        self.actual = actual


class UnsupportedGrantTypeError(TokenAuthorityError):
    oauth_error = "unsupported_grant_type"

    def __init__(self, grant_type: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="token_authority:grant/unsupported_type",
            message=f"Unsupported grant type: {grant_type}",
            details={"grant_type": grant_type, **(details or {})},
        )
        self.grant_type = grant_type


class InvalidGrantError(TokenAuthorityError):
    """Raised when an authorization code or refresh token cannot be used.

    Unknown, expired and already-redeemed codes all surface as this error so
    callers cannot tell which one applied.
    """

    oauth_error = "invalid_grant"

    def __init__(
        self,
        reason: str = "invalid_grant",
        issues: Iterable[Any] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="token_authority:grant/invalid",
            message=f"Invalid grant: {reason}",
            details=_issue_details(issues, {"reason": reason, **(details or {})}),
        )
        self.reason = reason


class UnsuccessfulChallengeError(InvalidGrantError):
    """Raised when the PKCE code_verifier does not match the stored challenge."""

    def __init__(
        self, issues: Iterable[Any] | None = None, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(reason="pkce_verification_failed", issues=issues, details=details)
        self.code = "token_authority:grant/unsuccessful_challenge"


class InvalidTargetError(TokenAuthorityError):
    """Raised when requested resource indicators are invalid or not permitted."""

    oauth_error = "invalid_target"

    def __init__(
        self,
        reason: str = "invalid_target",
        issues: Iterable[Any] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="token_authority:request/invalid_target",
            message=f"Invalid target: {reason}",
            details=_issue_details(issues, {"reason": reason, **(details or {})}),
        )
        self.reason = reason


class InvalidScopeError(TokenAuthorityError):
    oauth_error = "invalid_scope"

    def __init__(
        self,
        reason: str = "invalid_scope",
        issues: Iterable[Any] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="token_authority:request/invalid_scope",
            message=f"Invalid scope: {reason}",
            details=_issue_details(issues, {"reason": reason, **(details or {})}),
        )
        self.reason = reason


class InvalidRequestError(TokenAuthorityError):
    oauth_error = "invalid_request"

    def __init__(
        self,
        reason: str = "invalid_request",
        issues: Iterable[Any] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="token_authority:request/invalid",
            message=f"Invalid request: {reason}",
            details=_issue_details(issues, {"reason": reason, **(details or {})}),
        )
        self.reason = reason


class RevokedSessionError(TokenAuthorityError):
    """Raised when a refresh token is replayed or presented by another client.

    The grant's active session has already been revoked by the time this is
    raised. Externally it is an ``invalid_request``; the attributes are kept
    for the security audit trail.
    """

    oauth_error = "invalid_request"

    def __init__(
        self,
        client_id: str,
        refreshed_session_id: str,
        revoked_session_id: str,
        user_id: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="token_authority:session/revoked",
            message=(
                f"Session {refreshed_session_id} was reused; "
                f"revoked session {revoked_session_id}"
            ),
            details={
                "client_id": client_id,
                "refreshed_session_id": refreshed_session_id,
                "revoked_session_id": revoked_session_id,
                "user_id": user_id,
                **(details or {}),
            },
        )
        self.client_id = client_id
        self.refreshed_session_id = refreshed_session_id
        self.revoked_session_id = revoked_session_id
        self.user_id = user_id


class ServerError(TokenAuthorityError):
    """Raised on internal inconsistencies (jti mismatch, persistence conflicts)."""

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="token_authority:server/error",
            message=f"Server error: {reason}",
            details=details,
        )
        self.reason = reason


class InvalidTransitionError(ServerError):
    """Raised when a session status change is not allowed by the state machine.

    Attributes:
        from_state: The current session status
        to_state: The attempted target status
    """

    def __init__(
        self, from_state: str, to_state: str, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(
            reason=f"invalid transition from '{from_state}' to '{to_state}'",
            details={"from_state": from_state, "to_state": to_state, **(details or {})},
        )
        self.code = "token_authority:session/invalid_transition"
        self.from_state = from_state
        self.to_state = to_state


class MalformedTokenError(TokenAuthorityError):
    """Raised when a JWT cannot be decoded, verified or parsed into claims."""

    oauth_error = "invalid_request"

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="token_authority:token/malformed",
            message=f"Malformed token: {reason}",
            details=details,
        )
        self.reason = reason


class InvalidTokenError(TokenAuthorityError):
    """Raised by resource-side validation when a bearer token is unreadable."""

    oauth_error = "invalid_token"

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="token_authority:token/invalid",
            message=f"Invalid token: {reason}",
            details=details,
        )
        self.reason = reason


class UnauthorizedTokenError(TokenAuthorityError):
    """Raised when a well-formed access token is unknown, inactive or fails claims."""

    oauth_error = "unauthorized_token"

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="token_authority:token/unauthorized",
            message=f"Unauthorized token: {reason}",
            details=details,
        )
        self.reason = reason
