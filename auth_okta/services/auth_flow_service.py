"""Okta OIDC login and logout flow.

Login is a three-leg redirect flow:
1. initiate() sends the browser to the provider with the destination signed
   into the ``state`` parameter
2. the user consents at the provider
3. complete() exchanges the code, resolves the local user, establishes the
   session and returns the destination carried in ``state``

Logout optionally round-trips through the provider's end-session endpoint so
the upstream session ends together with the local one.
"""

import logging
from collections.abc import Mapping
from enum import Enum

from prometheus_client import Counter

from auth_okta.config import AuthPluginConfig
from auth_okta.exceptions import BusinessLogicException, MissingEmailError, TokenExchangeError
from auth_okta.services.authorization_api_client import AuthorizationApiClient, UserProfile
from auth_okta.services.oidc_client_service import OidcClientService
from auth_okta.services.session_service import ProviderMarker, SessionRecord, SessionService
from auth_okta.utils.state_token import decode_state, encode_state
from auth_okta.utils.urls import determine_redirect_url, failure_redirect_url, get_absolute_url

STRATEGY_NAME = "okta-oidc"

AUTH_FLOW_TRANSITIONS_TOTAL = Counter(
    "auth_flow_transitions_total",
    "Total auth flow transitions by target state and outcome",
    ["transition", "status"],
)

logger = logging.getLogger(__name__)


class AuthFlowState(str, Enum):
    """States of the login and logout flows."""

    IDLE = "idle"
    AWAITING_PROVIDER_CONSENT = "awaiting_provider_consent"
    AWAITING_RETURN = "awaiting_return"
    AUTHENTICATED = "authenticated"
    AWAITING_LOGOUT_RETURN = "awaiting_logout_return"
    LOGGED_OUT = "logged_out"


class AuthFlowService:
    """Drives the login and logout flows for one auth plugin.

    A single instance is created per process by the service container. Every
    method returns the URL the browser should be redirected to.
    """

    def __init__(
        self,
        oidc_client: OidcClientService,
        authorization_api: AuthorizationApiClient,
        session_service: SessionService,
        auth_plugin: AuthPluginConfig,
        scope: str,
        external_url: str,
        default_redirect_url: str,
        secret_key: str,
    ) -> None:
        self.name = STRATEGY_NAME
        self._oidc_client = oidc_client
        self._authorization_api = authorization_api
        self._session_service = session_service
        self._auth_plugin = auth_plugin
        self._scope = scope
        self._external_url = external_url
        self._default_redirect_url = default_redirect_url
        self._secret_key = secret_key

        logger.info("Auth flow %s ready with scope settings: %s", self.name, scope)

    def resolve_redirect_url(self, redirect: str | None) -> str:
        return determine_redirect_url(
            redirect, self._default_redirect_url, self._external_url
        )

    @property
    def logout_url(self) -> str:
        return f"/auth/plugin/{self._auth_plugin.key}/logout"

    def initiate(self, redirect: str | None) -> str:
        """Start a login: provider authorization URL with the destination as state."""
        destination = self.resolve_redirect_url(redirect)
        state = encode_state(destination, self._secret_key)
        url = self._oidc_client.authorization_url(self._scope, state)

        self._record(AuthFlowState.AWAITING_PROVIDER_CONSENT, "success")
        logger.info("Login initiated, redirect after login to %s", destination)
        return url

    def complete(self, params: Mapping[str, str]) -> str:
        """Finish a login from the provider callback parameters.

        Per-request failures never escape: they produce a redirect to the
        destination with ``result=failure`` and the error message, and no
        session is established.
        """
        self._record(AuthFlowState.AWAITING_RETURN, "received")
        destination = self.resolve_redirect_url(None)
        try:
            destination = decode_state(params.get("state"), self._secret_key)
            self._establish_session(params)
        except BusinessLogicException as e:
            self._record(AuthFlowState.AUTHENTICATED, e.error_code.lower())
            logger.warning("Login failed (%s): %s", e.error_code, e.message)
            return failure_redirect_url(destination, e.message)

        self._record(AuthFlowState.AUTHENTICATED, "success")
        return destination

    def _establish_session(self, params: Mapping[str, str]) -> None:
        error = params.get("error")
        if error:
            raise TokenExchangeError(params.get("error_description") or error)

        code = params.get("code")
        if not code:
            raise TokenExchangeError("Missing authorization code")

        token_set, claims = self._oidc_client.exchange_code(code)

        if not claims.get("email"):
            raise MissingEmailError()

        profile = UserProfile.from_claims(claims, self._auth_plugin.key)
        user_token = self._authorization_api.resolve_or_create_user(
            profile, self._auth_plugin.key
        )

        marker = ProviderMarker(
            key=self._auth_plugin.key,
            token_set=token_set,
            # Only advertised when the gateway should forward logout here
            logout_url=self.logout_url if self._auth_plugin.explicit_logout else None,
        )

        self._session_service.establish(
            SessionRecord(user_id=user_token.id, profile=profile, auth_plugin=marker)
        )

    def logout(self, redirect: str | None) -> str:
        """Destroy the local session and, if it held tokens, log out at the provider."""
        record = self._session_service.current()
        self._session_service.destroy()

        destination = self.resolve_redirect_url(redirect)
        if record is None:
            self._record(AuthFlowState.IDLE, "success")
            return destination

        token_set = record.token_set
        if token_set is None:
            # Nothing to tell the provider; treat as already signed off
            self._record(AuthFlowState.LOGGED_OUT, "success")
            return destination

        post_logout_redirect = get_absolute_url(
            f"/auth/plugin/{self._auth_plugin.key}/logout/return",
            self._external_url,
            {"redirect": destination},
        )
        end_session_url = self._oidc_client.end_session_url(token_set, post_logout_redirect)
        if end_session_url is None:
            logger.warning("Provider has no end_session_endpoint, skipping upstream logout")
            self._record(AuthFlowState.LOGGED_OUT, "success")
            return destination

        self._record(AuthFlowState.AWAITING_LOGOUT_RETURN, "success")
        return end_session_url

    def logout_return(self, redirect: str | None) -> str:
        """Provider logout callback: drop any lingering session and go to the destination."""
        if self._session_service.current() is not None:
            self._session_service.destroy()

        self._record(AuthFlowState.LOGGED_OUT, "success")
        return self.resolve_redirect_url(redirect)

    @staticmethod
    def _record(state: AuthFlowState, status: str) -> None:
        AUTH_FLOW_TRANSITIONS_TOTAL.labels(transition=state.value, status=status).inc()
