"""Tests for the login/logout flow state machine."""

from typing import Any
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from auth_okta.config import AuthPluginConfig
from auth_okta.exceptions import IdentityResolutionError, TokenExchangeError
from auth_okta.services.auth_flow_service import (
    AUTH_FLOW_TRANSITIONS_TOTAL,
    STRATEGY_NAME,
    AuthFlowService,
    AuthFlowState,
)
from auth_okta.services.authorization_api_client import (
    AuthorizationApiClient,
    UserProfile,
    UserToken,
)
from auth_okta.services.oidc_client_service import TokenSet
from auth_okta.services.session_service import ProviderMarker, SessionRecord
from auth_okta.utils.state_token import decode_state, encode_state
from tests.testing_utils import mock_json_response

SECRET = "test-secret-key"
TOKEN_SET = TokenSet(
    access_token="access",
    id_token="the-id-token",
    refresh_token=None,
    token_type="Bearer",
    expires_in=3600,
)
CLAIMS = {
    "sub": "00u1abcd",
    "email": "a@b.com",
    "name": "Ada Lovelace",
    "given_name": "Ada",
    "family_name": "Lovelace",
}


def _build_flow(
    explicit_logout: bool = True,
    claims: dict[str, Any] | None = None,
    authorization_api: Any = None,
) -> tuple[AuthFlowService, MagicMock, MagicMock, MagicMock]:
    oidc_client = MagicMock()
    oidc_client.authorization_url.side_effect = (
        lambda scope, state: f"https://okta.example.com/authorize?state={state}"
    )
    oidc_client.exchange_code.return_value = (TOKEN_SET, dict(claims or CLAIMS))
    oidc_client.end_session_url.side_effect = (
        lambda token_set, post_logout: f"https://okta.example.com/logout?cb={post_logout}"
    )

    if authorization_api is None:
        authorization_api = MagicMock()
        authorization_api.resolve_or_create_user.return_value = UserToken(id="user-1")

    session_service = MagicMock()
    session_service.current.return_value = None

    flow = AuthFlowService(
        oidc_client=oidc_client,
        authorization_api=authorization_api,
        session_service=session_service,
        auth_plugin=AuthPluginConfig(key="okta", explicit_logout=explicit_logout),
        scope="openid profile email",
        external_url="https://example.org",
        default_redirect_url="/sign-in-redirect",
        secret_key=SECRET,
    )
    return flow, oidc_client, authorization_api, session_service


def _transitions(state: AuthFlowState, status: str = "success") -> float:
    return AUTH_FLOW_TRANSITIONS_TOTAL.labels(transition=state.value, status=status)._value.get()


def _state_from(url: str) -> str:
    return parse_qs(urlparse(url).query)["state"][0]


def _callback(destination: str = "https://example.org/dashboard", **params: str) -> dict[str, str]:
    return {"code": "auth-code", "state": encode_state(destination, SECRET), **params}


class TestInitiate:
    """Tests for the login initiation leg."""

    def test_strategy_name(self) -> None:
        flow, *_ = _build_flow()
        assert flow.name == STRATEGY_NAME == "okta-oidc"

    def test_relative_redirect_is_resolved_into_state(self) -> None:
        """Test that a relative redirect is resolved against the external URL."""
        flow, oidc_client, _, _ = _build_flow()

        url = flow.initiate("/dashboard")

        assert decode_state(_state_from(url), SECRET) == "https://example.org/dashboard"
        assert oidc_client.authorization_url.call_args.args[0] == "openid profile email"

    @pytest.mark.parametrize("redirect", [None, ""])
    def test_missing_redirect_uses_default(self, redirect: str | None) -> None:
        """Test that an absent or empty redirect falls back to the configured default."""
        flow, _, _, _ = _build_flow()

        url = flow.initiate(redirect)

        assert decode_state(_state_from(url), SECRET) == "https://example.org/sign-in-redirect"

    def test_absolute_redirect_is_kept(self) -> None:
        flow, _, _, _ = _build_flow()

        url = flow.initiate("https://portal.example.org/home?tab=1")

        assert decode_state(_state_from(url), SECRET) == "https://portal.example.org/home?tab=1"


class TestComplete:
    """Tests for the provider return leg."""

    def test_success_establishes_session_and_redirects(self) -> None:
        """Test that a valid callback creates the session and returns the state destination."""
        flow, oidc_client, authorization_api, session_service = _build_flow()

        result = flow.complete(_callback())

        assert result == "https://example.org/dashboard"
        oidc_client.exchange_code.assert_called_once_with("auth-code")

        profile, plugin_key = authorization_api.resolve_or_create_user.call_args.args
        assert plugin_key == "okta"
        assert profile == UserProfile(
            id="00u1abcd",
            provider="okta",
            email="a@b.com",
            display_name="Ada Lovelace",
            given_name="Ada",
            family_name="Lovelace",
        )

        record: SessionRecord = session_service.establish.call_args.args[0]
        assert record.user_id == "user-1"
        assert record.auth_plugin == ProviderMarker(
            key="okta", token_set=TOKEN_SET, logout_url="/auth/plugin/okta/logout"
        )

    def test_callback_transitions_are_counted(self) -> None:
        flow, _, _, _ = _build_flow()
        received_before = _transitions(AuthFlowState.AWAITING_RETURN, "received")
        authenticated_before = _transitions(AuthFlowState.AUTHENTICATED)

        flow.complete(_callback())

        assert _transitions(AuthFlowState.AWAITING_RETURN, "received") - received_before == 1.0
        assert _transitions(AuthFlowState.AUTHENTICATED) - authenticated_before == 1.0

    def test_round_trip_from_initiate(self) -> None:
        """Test that the destination chosen at initiation is the one used on return."""
        flow, _, _, _ = _build_flow()

        state = _state_from(flow.initiate("/datasets?q=water%20quality"))
        result = flow.complete({"code": "auth-code", "state": state})

        assert result == "https://example.org/datasets?q=water%20quality"

    def test_explicit_logout_disabled_omits_logout_url(self) -> None:
        """Test that the provider marker carries no logout URL without explicit logout."""
        flow, _, _, session_service = _build_flow(explicit_logout=False)

        flow.complete(_callback())

        record: SessionRecord = session_service.establish.call_args.args[0]
        assert record.auth_plugin is not None
        assert record.auth_plugin.logout_url is None
        assert "logoutUrl" not in record.to_dict()["authPlugin"]

    @pytest.mark.parametrize("email", [None, ""])
    def test_missing_email_never_reaches_session(self, email: str | None) -> None:
        """Test that claims without an email redirect to the error destination."""
        claims = {**CLAIMS, "email": email}
        flow, _, authorization_api, session_service = _build_flow(claims=claims)

        result = flow.complete(_callback())

        parsed = urlparse(result)
        params = parse_qs(parsed.query)
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://example.org/dashboard"
        assert params["result"] == ["failure"]
        assert params["errorMessage"] == ["Cannot locate email address from the user profile."]
        authorization_api.resolve_or_create_user.assert_not_called()
        session_service.establish.assert_not_called()

    def test_token_exchange_error_redirects_to_error_destination(self) -> None:
        flow, oidc_client, _, session_service = _build_flow()
        oidc_client.exchange_code.side_effect = TokenExchangeError("Failed to exchange code: invalid_grant")

        result = flow.complete(_callback())

        params = parse_qs(urlparse(result).query)
        assert params["result"] == ["failure"]
        assert params["errorMessage"] == ["Failed to exchange code: invalid_grant"]
        session_service.establish.assert_not_called()

    def test_identity_resolution_error_redirects_to_error_destination(self) -> None:
        flow, _, authorization_api, session_service = _build_flow()
        authorization_api.resolve_or_create_user.side_effect = IdentityResolutionError(
            "Failed to create user"
        )

        result = flow.complete(_callback())

        params = parse_qs(urlparse(result).query)
        assert params["result"] == ["failure"]
        assert params["errorMessage"] == ["Failed to create user"]
        session_service.establish.assert_not_called()

    def test_authorization_api_failure_hides_internal_address(self) -> None:
        """Test that the failure redirect carries a fixed message, not the API error text."""
        internal_url = "http://authorization-api.internal:6104/v0"
        api_client = AuthorizationApiClient(internal_url, "squirrel", "service-user")
        flow, _, _, session_service = _build_flow(authorization_api=api_client)

        response = mock_json_response({}, status_code=500)
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            f"Server error '500 Internal Server Error' for url '{internal_url}/private/users/lookup?source=okta&sourceId=00u1abcd'",
            request=MagicMock(),
            response=response,
        )
        with patch("httpx.get", return_value=response):
            result = flow.complete(_callback())

        params = parse_qs(urlparse(result).query)
        assert params["result"] == ["failure"]
        assert params["errorMessage"] == ["Failed to look up user"]
        assert "authorization-api" not in result
        assert "00u1abcd" not in result
        session_service.establish.assert_not_called()

    def test_provider_error_parameter(self) -> None:
        """Test that an error reported by the provider skips the code exchange."""
        flow, oidc_client, _, _ = _build_flow()

        result = flow.complete(
            {
                "state": encode_state("https://example.org/dashboard", SECRET),
                "error": "access_denied",
                "error_description": "User is not assigned to the client application.",
            }
        )

        params = parse_qs(urlparse(result).query)
        assert params["errorMessage"] == ["User is not assigned to the client application."]
        oidc_client.exchange_code.assert_not_called()

    def test_missing_code(self) -> None:
        flow, oidc_client, _, _ = _build_flow()

        result = flow.complete({"state": encode_state("https://example.org/dashboard", SECRET)})

        assert parse_qs(urlparse(result).query)["result"] == ["failure"]
        oidc_client.exchange_code.assert_not_called()

    @pytest.mark.parametrize(
        "state",
        [
            None,
            "https://example.org/dashboard",
            encode_state("https://evil.example.com", "another-secret"),
        ],
    )
    def test_untrusted_state_falls_back_to_default_destination(self, state: str | None) -> None:
        """Test that a missing or tampered state never becomes a redirect target."""
        flow, oidc_client, _, session_service = _build_flow()
        params = {"code": "auth-code"}
        if state is not None:
            params["state"] = state

        result = flow.complete(params)

        parsed = urlparse(result)
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://example.org/sign-in-redirect"
        assert parse_qs(parsed.query)["result"] == ["failure"]
        oidc_client.exchange_code.assert_not_called()
        session_service.establish.assert_not_called()


class TestLogout:
    """Tests for the logout legs."""

    def test_logout_without_session_redirects_directly(self) -> None:
        flow, oidc_client, _, session_service = _build_flow()

        result = flow.logout("/home")

        assert result == "https://example.org/home"
        session_service.destroy.assert_called_once()
        oidc_client.end_session_url.assert_not_called()

    def test_logout_without_session_stays_idle(self) -> None:
        flow, _, _, _ = _build_flow()
        idle_before = _transitions(AuthFlowState.IDLE)
        logged_out_before = _transitions(AuthFlowState.LOGGED_OUT)

        flow.logout(None)

        assert _transitions(AuthFlowState.IDLE) - idle_before == 1.0
        assert _transitions(AuthFlowState.LOGGED_OUT) == logged_out_before

    def test_logout_is_idempotent(self) -> None:
        """Test that repeated logouts with no session behave identically."""
        flow, _, _, session_service = _build_flow()

        first = flow.logout(None)
        second = flow.logout(None)

        assert first == second == "https://example.org/sign-in-redirect"
        assert session_service.destroy.call_count == 2

    def test_logout_session_without_token_set(self) -> None:
        """Test that a session without tokens is treated as already logged out upstream."""
        flow, oidc_client, _, session_service = _build_flow()
        session_service.current.return_value = SessionRecord(
            user_id="user-1",
            profile=None,
            auth_plugin=ProviderMarker(key="okta", token_set=None),
        )

        result = flow.logout("/home")

        assert result == "https://example.org/home"
        oidc_client.end_session_url.assert_not_called()

    def test_logout_with_token_set_goes_through_provider(self) -> None:
        """Test that the provider logout carries a callback with the nested destination."""
        flow, oidc_client, _, session_service = _build_flow()
        session_service.current.return_value = SessionRecord(
            user_id="user-1",
            profile=None,
            auth_plugin=ProviderMarker(key="okta", token_set=TOKEN_SET),
        )

        result = flow.logout("/home")

        assert result.startswith("https://okta.example.com/logout")
        session_service.destroy.assert_called_once()

        token_set, post_logout = oidc_client.end_session_url.call_args.args
        assert token_set == TOKEN_SET

        parsed = urlparse(post_logout)
        assert (
            f"{parsed.scheme}://{parsed.netloc}{parsed.path}"
            == "https://example.org/auth/plugin/okta/logout/return"
        )
        assert parse_qs(parsed.query)["redirect"] == ["https://example.org/home"]

    def test_session_destroyed_before_provider_url_is_built(self) -> None:
        flow, oidc_client, _, session_service = _build_flow()
        session_service.current.return_value = SessionRecord(
            user_id="user-1",
            profile=None,
            auth_plugin=ProviderMarker(key="okta", token_set=TOKEN_SET),
        )
        calls: list[str] = []
        session_service.destroy.side_effect = lambda: calls.append("destroy")
        oidc_client.end_session_url.side_effect = (
            lambda *args: calls.append("end_session") or "https://okta.example.com/logout"
        )

        flow.logout(None)

        assert calls == ["destroy", "end_session"]

    def test_provider_without_end_session_endpoint(self) -> None:
        flow, oidc_client, _, session_service = _build_flow()
        oidc_client.end_session_url.side_effect = None
        oidc_client.end_session_url.return_value = None
        session_service.current.return_value = SessionRecord(
            user_id="user-1",
            profile=None,
            auth_plugin=ProviderMarker(key="okta", token_set=TOKEN_SET),
        )

        assert flow.logout("/home") == "https://example.org/home"

    def test_logout_return_destroys_lingering_session(self) -> None:
        flow, _, _, session_service = _build_flow()
        session_service.current.return_value = SessionRecord(
            user_id="user-1", profile=None, auth_plugin=None
        )

        result = flow.logout_return("https://example.org/home")

        assert result == "https://example.org/home"
        session_service.destroy.assert_called_once()

    def test_logout_return_without_session(self) -> None:
        flow, _, _, session_service = _build_flow()

        result = flow.logout_return(None)

        assert result == "https://example.org/sign-in-redirect"
        session_service.destroy.assert_not_called()
