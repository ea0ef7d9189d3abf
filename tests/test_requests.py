"""Tests for authorization, code exchange and refresh request validation."""

from datetime import timedelta

import pytest

from token_authority.clock import FrozenClock
from token_authority.config import AuthorityConfig
from token_authority.errors import (
    InvalidGrantError,
    InvalidRequestError,
    InvalidScopeError,
    InvalidTargetError,
    UnsuccessfulChallengeError,
)
from token_authority.models.entities import Client
from token_authority.requests import (
    AccessTokenRequest,
    AuthorizationRequest,
    RefreshTokenRequest,
    ValidationIssue,
    raise_for_issues,
)
from token_authority.testing.fixtures import (
    TEST_REDIRECT_URI,
    TEST_RESOURCE,
    TEST_SECONDARY_RESOURCE,
    make_config,
    pkce_pair,
)
from token_authority.tokens import RefreshToken

from tests.factories import TEST_VERIFIER, create_test_grant, create_test_session


def _authorization(config: AuthorityConfig, client: Client, **overrides: object) -> AuthorizationRequest:
    _, challenge = pkce_pair()
    values: dict = {
        "redirect_uri": TEST_REDIRECT_URI,
        "code_challenge": challenge,
        "code_challenge_method": "S256",
        "scope": "read",
        "resources": TEST_RESOURCE,
    }
    values.update(overrides)
    return AuthorizationRequest(config, client, **values)


class TestRaiseForIssues:
    """Error precedence across collected issues."""

    def test_no_issues(self) -> None:
        raise_for_issues([])

    def test_target_beats_scope_and_request(self) -> None:
        issues = [
            ValidationIssue("redirect_uri", "missing"),
            ValidationIssue("scope", "not_allowed", "invalid_scope"),
            ValidationIssue("resources", "not_allowed", "invalid_target"),
        ]

        with pytest.raises(InvalidTargetError) as exc_info:
            raise_for_issues(issues)

        assert len(exc_info.value.details["issues"]) == 3

    def test_grant_beats_everything(self) -> None:
        issues = [
            ValidationIssue("resources", "not_granted", "invalid_target"),
            ValidationIssue("code_verifier", "mismatch", "invalid_grant"),
        ]

        with pytest.raises(UnsuccessfulChallengeError):
            raise_for_issues(issues)

    def test_plain_request_error(self) -> None:
        with pytest.raises(InvalidRequestError) as exc_info:
            raise_for_issues([ValidationIssue("response_type", "unsupported")])

        assert exc_info.value.reason == "response_type_unsupported"


class TestAuthorizationRequest:
    """Validation before a grant is recorded."""

    def test_valid_public_request(self, authority_config: AuthorityConfig, public_client: Client) -> None:
        request = _authorization(authority_config, public_client)

        request.ensure_valid()
        challenge = request.to_challenge()
        assert challenge.has_challenge
        assert challenge.redirect_uri == TEST_REDIRECT_URI

    def test_public_client_requires_pkce(
        self, authority_config: AuthorityConfig, public_client: Client
    ) -> None:
        request = _authorization(
            authority_config, public_client, code_challenge=None, code_challenge_method=None
        )

        assert ValidationIssue("code_challenge", "missing") in request.validate()
        with pytest.raises(InvalidRequestError):
            request.ensure_valid()

    def test_public_client_requires_redirect_uri(
        self, authority_config: AuthorityConfig, public_client: Client
    ) -> None:
        request = _authorization(authority_config, public_client, redirect_uri=None)

        assert ValidationIssue("redirect_uri", "missing") in request.validate()

    def test_confidential_client_may_skip_pkce_and_redirect(
        self, authority_config: AuthorityConfig, confidential_client: tuple[Client, str]
    ) -> None:
        client, _ = confidential_client
        request = _authorization(
            authority_config,
            client,
            code_challenge=None,
            code_challenge_method=None,
            redirect_uri=None,
        )

        request.ensure_valid()
        assert request.effective_redirect_uri == TEST_REDIRECT_URI
        assert not request.to_challenge().has_challenge

    def test_plain_method_rejected(
        self, authority_config: AuthorityConfig, public_client: Client
    ) -> None:
        request = _authorization(authority_config, public_client, code_challenge_method="plain")

        assert request.validate() == [ValidationIssue("code_challenge_method", "unsupported")]

    def test_half_pkce_rejected(
        self, authority_config: AuthorityConfig, confidential_client: tuple[Client, str]
    ) -> None:
        request = _authorization(
            authority_config, confidential_client[0], code_challenge_method=None
        )

        assert request.validate() == [ValidationIssue("code_challenge_method", "missing")]

    def test_short_challenge_rejected(
        self, authority_config: AuthorityConfig, public_client: Client
    ) -> None:
        request = _authorization(authority_config, public_client, code_challenge="abc")

        assert request.validate() == [ValidationIssue("code_challenge", "invalid")]

    def test_unregistered_redirect_uri(
        self, authority_config: AuthorityConfig, public_client: Client
    ) -> None:
        request = _authorization(
            authority_config, public_client, redirect_uri="https://evil.example.com/cb"
        )

        assert request.validate() == [ValidationIssue("redirect_uri", "not_registered")]

    def test_unsupported_response_type(
        self, authority_config: AuthorityConfig, public_client: Client
    ) -> None:
        request = _authorization(authority_config, public_client, response_type="token")

        assert request.validate() == [ValidationIssue("response_type", "unsupported")]

    def test_scope_outside_allowlist(
        self, authority_config: AuthorityConfig, public_client: Client
    ) -> None:
        request = _authorization(authority_config, public_client, scope="read admin")

        with pytest.raises(InvalidScopeError) as exc_info:
            request.ensure_valid()

        assert exc_info.value.reason == "not_allowed"

    def test_resource_outside_allowlist_takes_precedence(
        self, authority_config: AuthorityConfig, public_client: Client
    ) -> None:
        request = _authorization(
            authority_config,
            public_client,
            scope="admin",
            resources="https://other.example.com",
        )

        with pytest.raises(InvalidTargetError):
            request.ensure_valid()

    def test_resources_disabled(self, public_client: Client) -> None:
        config = make_config(resources={})
        request = _authorization(config, public_client)

        assert request.validate() == [
            ValidationIssue("resources", "not_enabled", "invalid_target")
        ]

    def test_scopes_disabled(self, public_client: Client) -> None:
        config = make_config(scopes={})
        request = _authorization(config, public_client)

        assert request.validate() == [ValidationIssue("scope", "not_enabled", "invalid_scope")]

    def test_required_resource(self, public_client: Client) -> None:
        config = make_config(require_resource=True)
        request = _authorization(config, public_client, resources=None)

        with pytest.raises(InvalidTargetError) as exc_info:
            request.ensure_valid()

        assert exc_info.value.reason == "required"

    def test_redirect_url_carries_state(
        self, authority_config: AuthorityConfig, public_client: Client
    ) -> None:
        request = _authorization(authority_config, public_client, state="xyz")

        assert request.redirect_url(code="abc") == f"{TEST_REDIRECT_URI}?code=abc&state=xyz"

    def test_redirect_url_defaults_to_primary_uri(
        self, authority_config: AuthorityConfig, confidential_client: tuple[Client, str]
    ) -> None:
        request = AuthorizationRequest(authority_config, confidential_client[0])

        assert request.effective_redirect_uri == TEST_REDIRECT_URI
        assert request.redirect_url(code="abc") == f"{TEST_REDIRECT_URI}?code=abc"

    def test_error_redirect_url(
        self, authority_config: AuthorityConfig, public_client: Client
    ) -> None:
        request = _authorization(authority_config, public_client, scope="admin", state="xyz")

        assert (
            request.error_redirect_url("invalid_scope")
            == f"{TEST_REDIRECT_URI}?error=invalid_scope&state=xyz"
        )

    @pytest.mark.parametrize("redirect_uri", [None, "https://evil.example.com/cb"])
    def test_no_error_redirect_to_bad_uri(
        self, authority_config: AuthorityConfig, public_client: Client, redirect_uri: str | None
    ) -> None:
        request = _authorization(authority_config, public_client, redirect_uri=redirect_uri)

        assert request.error_redirect_url("invalid_request") is None


class TestAccessTokenRequest:
    """Validation of an authorization_code token request."""

    def _request(
        self,
        config: AuthorityConfig,
        client: Client,
        clock: FrozenClock,
        grant=None,
        **overrides: object,
    ) -> AccessTokenRequest:
        grant = grant or create_test_grant(client_id=client.public_id)
        values: dict = {"code_verifier": TEST_VERIFIER, "redirect_uri": TEST_REDIRECT_URI}
        values.update(overrides)
        return AccessTokenRequest(config, grant, client, clock=clock, **values)

    def test_defaults_to_granted_sets(
        self, authority_config: AuthorityConfig, public_client: Client, frozen_clock: FrozenClock
    ) -> None:
        request = self._request(authority_config, public_client, frozen_clock)

        request.ensure_valid()
        assert request.effective_scopes.to_list() == ["read", "write"]
        assert request.effective_resources.to_list() == [TEST_RESOURCE]

    def test_narrowing_allowed(
        self, authority_config: AuthorityConfig, public_client: Client, frozen_clock: FrozenClock
    ) -> None:
        request = self._request(authority_config, public_client, frozen_clock, scope="write")

        request.ensure_valid()
        assert str(request.effective_scopes) == "write"

    def test_widening_scope_rejected(
        self, authority_config: AuthorityConfig, public_client: Client, frozen_clock: FrozenClock
    ) -> None:
        grant = create_test_grant(client_id=public_client.public_id, scopes=["read"])
        request = self._request(
            authority_config, public_client, frozen_clock, grant=grant, scope="read write"
        )

        with pytest.raises(InvalidScopeError) as exc_info:
            request.ensure_valid()

        assert exc_info.value.reason == "not_granted"

    def test_scope_requested_against_empty_grant_rejected(
        self, authority_config: AuthorityConfig, public_client: Client, frozen_clock: FrozenClock
    ) -> None:
        grant = create_test_grant(client_id=public_client.public_id, scopes=[])
        request = self._request(
            authority_config, public_client, frozen_clock, grant=grant, scope="read"
        )

        with pytest.raises(InvalidScopeError):
            request.ensure_valid()

    def test_widening_resource_rejected(
        self, authority_config: AuthorityConfig, public_client: Client, frozen_clock: FrozenClock
    ) -> None:
        request = self._request(
            authority_config, public_client, frozen_clock, resources=TEST_SECONDARY_RESOURCE
        )

        with pytest.raises(InvalidTargetError):
            request.ensure_valid()

    def test_wrong_verifier_wins_over_scope_error(
        self, authority_config: AuthorityConfig, public_client: Client, frozen_clock: FrozenClock
    ) -> None:
        verifier, _ = pkce_pair()
        request = self._request(
            authority_config, public_client, frozen_clock, code_verifier=verifier, scope="admin"
        )

        with pytest.raises(UnsuccessfulChallengeError):
            request.ensure_valid()

    def test_missing_verifier(
        self, authority_config: AuthorityConfig, public_client: Client, frozen_clock: FrozenClock
    ) -> None:
        request = self._request(authority_config, public_client, frozen_clock, code_verifier=None)

        with pytest.raises(UnsuccessfulChallengeError):
            request.ensure_valid()

    def test_expired_grant(
        self, authority_config: AuthorityConfig, public_client: Client, frozen_clock: FrozenClock
    ) -> None:
        request = self._request(authority_config, public_client, frozen_clock)
        frozen_clock.advance(seconds=300)

        with pytest.raises(InvalidGrantError) as exc_info:
            request.ensure_valid()

        assert exc_info.value.reason == "grant_expired"

    def test_redirect_uri_mismatch(
        self, authority_config: AuthorityConfig, public_client: Client, frozen_clock: FrozenClock
    ) -> None:
        request = self._request(
            authority_config,
            public_client,
            frozen_clock,
            redirect_uri="https://app.example.com/other",
        )

        with pytest.raises(InvalidGrantError) as exc_info:
            request.ensure_valid()

        assert exc_info.value.reason == "redirect_uri_mismatch"

    def test_grant_for_other_client(
        self,
        authority_config: AuthorityConfig,
        public_client: Client,
        confidential_client: tuple[Client, str],
        frozen_clock: FrozenClock,
    ) -> None:
        grant = create_test_grant(client_id=public_client.public_id)
        request = self._request(
            authority_config, confidential_client[0], frozen_clock, grant=grant
        )

        assert ValidationIssue("grant", "client_mismatch", "invalid_grant") in request.validate()

    def test_missing_grant(
        self, authority_config: AuthorityConfig, public_client: Client, frozen_clock: FrozenClock
    ) -> None:
        request = AccessTokenRequest(authority_config, None, public_client, clock=frozen_clock)

        assert request.validate() == [ValidationIssue("grant", "not_found", "invalid_grant")]


class TestRefreshTokenRequest:
    """Validation of a refresh_token request."""

    def test_later_request_may_rewiden_to_original_grant(
        self, authority_config: AuthorityConfig, public_client: Client
    ) -> None:
        """Negotiation always compares with the grant, not the previous session."""
        grant = create_test_grant(client_id=public_client.public_id)
        session = create_test_session(grant.id)
        token = RefreshToken(jti=session.refresh_token_jti, scope="read")

        request = RefreshTokenRequest(
            authority_config, token, session, grant, scope="read write"
        )

        request.ensure_valid()
        assert request.resolved_client_id == public_client.public_id

    def test_missing_session(self, authority_config: AuthorityConfig) -> None:
        request = RefreshTokenRequest(
            authority_config, RefreshToken(jti="x"), None, None, client_id="web"
        )

        with pytest.raises(InvalidGrantError):
            request.ensure_valid()

    def test_missing_jti(self, authority_config: AuthorityConfig) -> None:
        request = RefreshTokenRequest(authority_config, RefreshToken(), None, None)

        assert request.validate() == [
            ValidationIssue("refresh_token", "missing_jti", "invalid_grant")
        ]

    def test_widening_rejected(self, authority_config: AuthorityConfig) -> None:
        grant = create_test_grant(scopes=["read"])
        session = create_test_session(grant.id)
        token = RefreshToken(jti=session.refresh_token_jti)
        request = RefreshTokenRequest(authority_config, token, session, grant, scope="write")

        with pytest.raises(InvalidScopeError):
            request.ensure_valid()

    def test_expired_grant_still_refreshable(
        self, authority_config: AuthorityConfig, frozen_clock: FrozenClock
    ) -> None:
        """Refresh does not depend on the authorization code's lifetime."""
        grant = create_test_grant(now=frozen_clock.now() - timedelta(days=1), redeemed=True)
        session = create_test_session(grant.id)
        request = RefreshTokenRequest(
            authority_config, RefreshToken(jti=session.refresh_token_jti), session, grant
        )

        assert request.validate() == []
