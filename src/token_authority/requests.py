"""Request validation for authorization, code exchange and refresh.

Each request object collects every problem as a ``ValidationIssue`` before
raising, so a rejected request reports all of its issues at once. The raised
error follows the precedence invalid_grant > invalid_target > invalid_scope >
invalid_request.

Resource and scope negotiation is shared by code exchange and refresh and is
always checked against the original grant's approved sets, so a client that
narrowed its request once can widen it again up to what the user approved,
but never beyond.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from token_authority.clock import Clock, SystemClock
from token_authority.config import AuthorityConfig
from token_authority.errors import (
    InvalidGrantError,
    InvalidRequestError,
    InvalidScopeError,
    InvalidTargetError,
    UnsuccessfulChallengeError,
)
from token_authority.models.entities import AuthorizationGrant, Client, PKCEChallenge, Session
from token_authority.models.enums import CodeChallengeMethod
from token_authority.pkce import SUPPORTED_CODE_CHALLENGE_METHODS, verify_code_verifier
from token_authority.resources import ResourceSet
from token_authority.scopes import ScopeSet
from token_authority.tokens import RefreshToken

INVALID_GRANT = "invalid_grant"
INVALID_TARGET = "invalid_target"
INVALID_SCOPE = "invalid_scope"
INVALID_REQUEST = "invalid_request"

ERROR_PRECEDENCE = (INVALID_GRANT, INVALID_TARGET, INVALID_SCOPE, INVALID_REQUEST)

# RFC 7636 section 4.2: 43..128 unreserved characters
CODE_CHALLENGE_RE = re.compile(r"[A-Za-z0-9\-._~]{43,128}")


@dataclass(frozen=True)
class ValidationIssue:
    """One problem with a request: the offending field, why, and its OAuth error."""

    field: str
    reason: str
    error: str = INVALID_REQUEST


def raise_for_issues(issues: list[ValidationIssue]) -> None:
    """Raise the highest-precedence error for ``issues``, carrying all of them.

    Raises:
        InvalidGrantError: UnsuccessfulChallengeError when PKCE failed first
        InvalidTargetError, InvalidScopeError, InvalidRequestError
    """
    if not issues:
        return
    for error in ERROR_PRECEDENCE:
        matching = [issue for issue in issues if issue.error == error]
        if not matching:
            continue
        first = matching[0]
        if error == INVALID_GRANT:
            if first.field == "code_verifier":
                raise UnsuccessfulChallengeError(issues=issues)
            raise InvalidGrantError(reason=f"{first.field}_{first.reason}", issues=issues)
        if error == INVALID_TARGET:
            raise InvalidTargetError(reason=first.reason, issues=issues)
        if error == INVALID_SCOPE:
            raise InvalidScopeError(reason=first.reason, issues=issues)
    raise InvalidRequestError(reason=f"{issues[0].field}_{issues[0].reason}", issues=issues)


def resource_issues(
    config: AuthorityConfig,
    requested: ResourceSet,
    granted: ResourceSet | None = None,
) -> list[ValidationIssue]:
    """Check requested resource indicators; ``granted`` None skips the subset check."""
    if not requested:
        return []
    if not config.resources_enabled:
        return [ValidationIssue("resources", "not_enabled", INVALID_TARGET)]
    if not requested.is_well_formed():
        return [ValidationIssue("resources", "invalid_uri", INVALID_TARGET)]
    if not requested.is_allowed(config.resource_allowlist):
        return [ValidationIssue("resources", "not_allowed", INVALID_TARGET)]
    if granted is not None and not requested.is_subset_of(granted):
        return [ValidationIssue("resources", "not_granted", INVALID_TARGET)]
    return []


def scope_issues(
    config: AuthorityConfig,
    requested: ScopeSet,
    granted: ScopeSet | None = None,
) -> list[ValidationIssue]:
    """Check requested scopes; ``granted`` None skips the subset check."""
    if not requested:
        return []
    if not config.scopes_enabled:
        return [ValidationIssue("scope", "not_enabled", INVALID_SCOPE)]
    if not requested.is_well_formed():
        return [ValidationIssue("scope", "invalid_token", INVALID_SCOPE)]
    if not requested.is_allowed(config.scope_allowlist):
        return [ValidationIssue("scope", "not_allowed", INVALID_SCOPE)]
    if granted is not None and not requested.is_subset_of(granted):
        return [ValidationIssue("scope", "not_granted", INVALID_SCOPE)]
    return []


def required_issues(
    config: AuthorityConfig, resources: ResourceSet, scopes: ScopeSet
) -> list[ValidationIssue]:
    issues = []
    if config.require_resource and not resources:
        issues.append(ValidationIssue("resources", "required", INVALID_TARGET))
    if config.require_scope and not scopes:
        issues.append(ValidationIssue("scope", "required", INVALID_SCOPE))
    return issues


class _NegotiatedRequest(ABC):
    """Effective resources and scopes against a grant's approved sets."""

    config: AuthorityConfig
    grant: AuthorizationGrant | None
    resources: ResourceSet
    scopes: ScopeSet

    @property
    def granted_resources(self) -> ResourceSet:
        return self.grant.resource_set if self.grant is not None else ResourceSet()

    @property
    def granted_scopes(self) -> ScopeSet:
        return self.grant.scope_set if self.grant is not None else ScopeSet()

    @property
    def effective_resources(self) -> ResourceSet:
        return self.resources or self.granted_resources

    @property
    def effective_scopes(self) -> ScopeSet:
        return self.scopes or self.granted_scopes

    def _negotiation_issues(self) -> list[ValidationIssue]:
        return [
            *resource_issues(self.config, self.resources, self.granted_resources),
            *scope_issues(self.config, self.scopes, self.granted_scopes),
            *required_issues(self.config, self.effective_resources, self.effective_scopes),
        ]

    @abstractmethod
    def validate(self) -> list[ValidationIssue]: ...

    def ensure_valid(self) -> None:
        raise_for_issues(self.validate())


class AuthorizationRequest:
    """Validates an authorization request before consent is recorded.

    Public clients must send an S256 challenge and a registered redirect URI.
    Confidential clients may omit PKCE entirely, but not half of it.
    """

    def __init__(
        self,
        config: AuthorityConfig,
        client: Client,
        *,
        response_type: str = "code",
        redirect_uri: str | None = None,
        code_challenge: str | None = None,
        code_challenge_method: str | None = None,
        scope: Any = None,
        resources: Any = None,
        state: str | None = None,
    ) -> None:
        self.config = config
        self.client = client
        self.response_type = response_type
        self.redirect_uri = redirect_uri or None
        self.code_challenge = code_challenge or None
        self.code_challenge_method = code_challenge_method or None
        self.scopes = ScopeSet.parse(scope)
        self.resources = ResourceSet.parse(resources)
        self.state = state

    @property
    def effective_redirect_uri(self) -> str:
        """Where to send the user back: the supplied URI or the client's primary one."""
        return self.redirect_uri or self.client.primary_redirect_uri

    def validate(self) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        if self.response_type != "code":
            issues.append(ValidationIssue("response_type", "unsupported"))

        if self.redirect_uri is None:
            if self.client.is_public:
                issues.append(ValidationIssue("redirect_uri", "missing"))
        elif not self.client.redirect_uri_registered(self.redirect_uri):
            issues.append(ValidationIssue("redirect_uri", "not_registered"))

        issues.extend(self._pkce_issues())
        issues.extend(resource_issues(self.config, self.resources))
        issues.extend(scope_issues(self.config, self.scopes))
        issues.extend(required_issues(self.config, self.resources, self.scopes))
        return issues

    def _pkce_issues(self) -> list[ValidationIssue]:
        challenge, method = self.code_challenge, self.code_challenge_method
        if challenge is None and method is None:
            if self.client.is_public:
                return [ValidationIssue("code_challenge", "missing")]
            return []
        issues = []
        if challenge is None:
            issues.append(ValidationIssue("code_challenge", "missing"))
        elif CODE_CHALLENGE_RE.fullmatch(challenge) is None:
            issues.append(ValidationIssue("code_challenge", "invalid"))
        if method is None:
            issues.append(ValidationIssue("code_challenge_method", "missing"))
        elif method not in SUPPORTED_CODE_CHALLENGE_METHODS:
            issues.append(ValidationIssue("code_challenge_method", "unsupported"))
        return issues

    def ensure_valid(self) -> None:
        raise_for_issues(self.validate())

    def redirect_url(self, **params: str | None) -> str:
        """Redirect back to the client with ``params`` and the request's ``state``."""
        return self.client.url_for_redirect(
            {**params, "state": self.state}, self.effective_redirect_uri
        )

    def error_redirect_url(self, error: str) -> str | None:
        """Error redirect for this request, or None when the redirect URI itself is bad.

        A missing or unregistered redirect URI is never redirected to; the
        caller shows the error to the user instead.
        """
        if any(issue.field == "redirect_uri" for issue in self.validate()):
            return None
        return self.redirect_url(error=error)

    def to_challenge(self) -> PKCEChallenge:
        """The PKCE parameters and redirect URI to bind into the grant."""
        return PKCEChallenge(
            code_challenge=self.code_challenge,
            code_challenge_method=(
                CodeChallengeMethod(self.code_challenge_method)
                if self.code_challenge_method
                else None
            ),
            redirect_uri=self.redirect_uri,
        )


class AccessTokenRequest(_NegotiatedRequest):
    """Validates an ``authorization_code`` token request against its grant.

    Example:
        >>> request = AccessTokenRequest(config, grant, client, code_verifier=verifier)
        >>> request.ensure_valid()
        >>> request.effective_scopes
        ScopeSet(tokens=('read', 'write'))
    """

    def __init__(
        self,
        config: AuthorityConfig,
        grant: AuthorizationGrant | None,
        client: Client,
        *,
        code_verifier: str | None = None,
        redirect_uri: str | None = None,
        resources: Any = None,
        scope: Any = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config
        self.grant = grant
        self.client = client
        self.code_verifier = code_verifier
        self.redirect_uri = redirect_uri
        self.resources = ResourceSet.parse(resources)
        self.scopes = ScopeSet.parse(scope)
        self._clock = clock or SystemClock()

    def validate(self) -> list[ValidationIssue]:
        grant = self.grant
        if grant is None:
            return [ValidationIssue("grant", "not_found", INVALID_GRANT)]
        issues: list[ValidationIssue] = []
        if grant.redeemed:
            issues.append(ValidationIssue("grant", "redeemed", INVALID_GRANT))
        if grant.is_expired(self._clock.now()):
            issues.append(ValidationIssue("grant", "expired", INVALID_GRANT))
        if grant.client_id != self.client.public_id:
            issues.append(ValidationIssue("grant", "client_mismatch", INVALID_GRANT))
        issues.extend(self._pkce_issues(grant.challenge))
        issues.extend(self._redirect_issues(grant.challenge))
        issues.extend(self._negotiation_issues())
        return issues

    def _pkce_issues(self, challenge: PKCEChallenge) -> list[ValidationIssue]:
        verifier = self.code_verifier
        checked = self.client.is_public or verifier is not None or challenge.has_challenge
        if not checked:
            return []
        if not verifier:
            return [ValidationIssue("code_verifier", "missing", INVALID_GRANT)]
        if not challenge.code_challenge or not verify_code_verifier(
            verifier,
            challenge.code_challenge,
            challenge.code_challenge_method or CodeChallengeMethod.S256,
        ):
            return [ValidationIssue("code_verifier", "mismatch", INVALID_GRANT)]
        return []

    def _redirect_issues(self, challenge: PKCEChallenge) -> list[ValidationIssue]:
        stored = challenge.redirect_uri
        supplied = self.redirect_uri
        if stored is None and supplied is None:
            if self.client.is_public:
                return [ValidationIssue("redirect_uri", "missing")]
            return []
        if not supplied:
            return [ValidationIssue("redirect_uri", "missing", INVALID_GRANT)]
        if supplied != stored:
            return [ValidationIssue("redirect_uri", "mismatch", INVALID_GRANT)]
        return []


class RefreshTokenRequest(_NegotiatedRequest):
    """Validates a ``refresh_token`` request.

    Only the request itself is checked here; rotation and replay detection
    happen in :meth:`token_authority.sessions.SessionManager.refresh`.
    """

    def __init__(
        self,
        config: AuthorityConfig,
        token: RefreshToken,
        session: Session | None,
        grant: AuthorizationGrant | None,
        *,
        client_id: str | None = None,
        resources: Any = None,
        scope: Any = None,
    ) -> None:
        self.config = config
        self.token = token
        self.session = session
        self.grant = grant
        self.client_id = client_id or None
        self.resources = ResourceSet.parse(resources)
        self.scopes = ScopeSet.parse(scope)

    @property
    def resolved_client_id(self) -> str | None:
        """The presented client id, defaulting to the grant's client."""
        if self.client_id is not None:
            return self.client_id
        return self.grant.client_id if self.grant is not None else None

    def validate(self) -> list[ValidationIssue]:
        if not self.token.jti:
            return [ValidationIssue("refresh_token", "missing_jti", INVALID_GRANT)]
        if self.session is None or self.grant is None:
            return [ValidationIssue("refresh_token", "session_not_found", INVALID_GRANT)]
        return self._negotiation_issues()
