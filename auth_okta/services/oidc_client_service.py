"""OIDC client service for the authorization code flow against Okta."""

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any
from urllib.parse import urlencode

import httpx
import jwt
from jwt import PyJWKClient, PyJWKClientError
from prometheus_client import Counter, Histogram

from auth_okta.config import ProviderConfig
from auth_okta.exceptions import ConfigurationError, DiscoveryError, TokenExchangeError
from auth_okta.utils.urls import get_absolute_url
from auth_okta.utils.user_agent import default_headers

OIDC_TOKEN_EXCHANGE_TOTAL = Counter(
    "oidc_token_exchange_total",
    "Total OIDC authorization code exchanges by status",
    ["status"],
)
OIDC_TOKEN_EXCHANGE_DURATION_SECONDS = Histogram(
    "oidc_token_exchange_duration_seconds",
    "OIDC authorization code exchange duration in seconds",
)

logger = logging.getLogger(__name__)


@dataclass
class ProviderMetadata:
    """Provider metadata discovered from the well-known configuration."""

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str
    userinfo_endpoint: str | None
    end_session_endpoint: str | None
    id_token_signing_alg_values_supported: list[str]


@dataclass
class TokenSet:
    """Tokens returned by a successful code exchange."""

    access_token: str
    id_token: str | None
    refresh_token: str | None
    token_type: str
    expires_in: int | None
    scope: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenSet":
        return cls(
            access_token=data["access_token"],
            id_token=data.get("id_token"),
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type", "Bearer"),
            expires_in=data.get("expires_in"),
            scope=data.get("scope"),
        )


class OidcClientService:
    """OIDC client bound to a single redirect URI.

    Discovery runs once in the constructor; a provider that can't be
    discovered prevents the service (and so the application) from starting.
    Every outbound call carries the plugin's User-Agent and the configured
    timeout, and every id token is verified with the configured clock skew.
    """

    def __init__(self, config: ProviderConfig) -> None:
        """Initialize the client and discover the provider.

        Args:
            config: Provider configuration

        Raises:
            ConfigurationError: If issuer, client id or client secret is missing
            DiscoveryError: If the provider metadata can't be fetched or parsed
        """
        if not config.client_id:
            raise ConfigurationError("Required client id can't be empty!")
        if not config.client_secret:
            raise ConfigurationError("Required client secret can't be empty!")
        if not config.issuer:
            raise ConfigurationError("Required issuer url can't be empty!")

        self._config = config
        self._redirect_uri = get_absolute_url(
            f"/auth/login/plugin/{config.plugin_key}/return", config.external_url
        )
        self._metadata: ProviderMetadata | None = None
        self._jwks_client: PyJWKClient | None = None

        self._metadata = self.discover()
        self._jwks_client = PyJWKClient(
            self._metadata.jwks_uri,
            cache_keys=True,
            headers=default_headers(),
            timeout=config.timeout_seconds,
        )

        logger.info("Okta clientId: %s", config.client_id)
        logger.info("Timeout Setting: %s ms", config.timeout)
        logger.info("Clock tolerance Setting: %s s", config.max_clock_skew)
        logger.info("OIDC client created with redirect URI %s", self._redirect_uri)

    @property
    def metadata(self) -> ProviderMetadata:
        """Discovered provider metadata.

        Raises:
            DiscoveryError: If discovery has not completed
        """
        if self._metadata is None:
            raise DiscoveryError("OIDC provider metadata is not available")
        return self._metadata

    @property
    def redirect_uri(self) -> str:
        return self._redirect_uri

    def discover(self) -> ProviderMetadata:
        """Fetch the provider's OpenID configuration.

        Raises:
            DiscoveryError: On network failure, timeout, invalid JSON or
                missing required endpoints
        """
        discovery_url = self._config.discovery_url
        logger.info("Fetching OpenID configuration from %s", discovery_url)

        try:
            response = httpx.get(
                discovery_url,
                headers=default_headers(),
                timeout=self._config.timeout_seconds,
            )
            response.raise_for_status()
            document = response.json()
        except httpx.HTTPError as e:
            logger.error("OIDC discovery failed: %s", str(e))
            raise DiscoveryError(f"Failed to discover OIDC provider: {e}") from e
        except ValueError as e:
            logger.error("OIDC discovery document is not valid JSON: %s", str(e))
            raise DiscoveryError(f"Invalid OIDC discovery document: {e}") from e

        if not isinstance(document, dict):
            raise DiscoveryError("Invalid OIDC discovery document: not an object")

        missing = [
            key
            for key in ("issuer", "authorization_endpoint", "token_endpoint", "jwks_uri")
            if not document.get(key)
        ]
        if missing:
            raise DiscoveryError(
                f"OIDC discovery document missing required fields: {', '.join(missing)}"
            )

        metadata = ProviderMetadata(
            issuer=str(document["issuer"]),
            authorization_endpoint=str(document["authorization_endpoint"]),
            token_endpoint=str(document["token_endpoint"]),
            jwks_uri=str(document["jwks_uri"]),
            userinfo_endpoint=document.get("userinfo_endpoint"),
            end_session_endpoint=document.get("end_session_endpoint"),
            id_token_signing_alg_values_supported=list(
                document.get("id_token_signing_alg_values_supported") or ["RS256"]
            ),
        )

        logger.info(
            "Discovered OIDC provider issuer=%s auth=%s token=%s",
            metadata.issuer,
            metadata.authorization_endpoint,
            metadata.token_endpoint,
        )
        return metadata

    def authorization_url(self, scope: str, state: str) -> str:
        """Build the provider authorization URL for a browser redirect."""
        params: dict[str, str] = {
            "client_id": self._config.client_id,
            "response_type": "code",
            "redirect_uri": self._redirect_uri,
            "scope": scope,
            "state": state,
        }
        return f"{self.metadata.authorization_endpoint}?{urlencode(params)}"

    def exchange_code(self, code: str) -> tuple[TokenSet, dict[str, Any]]:
        """Exchange an authorization code for tokens and verified claims.

        Args:
            code: Authorization code from the provider callback

        Returns:
            Tuple of (token_set, claims). Claims come from the verified id
            token, merged with the userinfo response when available.

        Raises:
            TokenExchangeError: If the provider rejects the code, the id token
                fails verification, or a call times out
        """
        start_time = time.perf_counter()
        try:
            token_set = self._request_tokens(code)
            claims = self._validate_id_token(token_set.id_token)
            claims.update(self._fetch_userinfo(token_set, claims["sub"]))
        except TokenExchangeError:
            OIDC_TOKEN_EXCHANGE_TOTAL.labels(status="failed").inc()
            raise
        finally:
            OIDC_TOKEN_EXCHANGE_DURATION_SECONDS.observe(
                max(time.perf_counter() - start_time, 0.0)
            )

        OIDC_TOKEN_EXCHANGE_TOTAL.labels(status="success").inc()
        logger.info("Exchanged authorization code for subject=%s", claims.get("sub"))
        return token_set, claims

    def _request_tokens(self, code: str) -> TokenSet:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._redirect_uri,
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
        }

        try:
            response = httpx.post(
                self.metadata.token_endpoint,
                data=data,
                headers={
                    **default_headers(),
                    "Content-Type": "application/x-www-form-urlencoded",
                },
                timeout=self._config.timeout_seconds,
            )
            response.raise_for_status()
            token_data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Token exchange failed: %s", str(e))
            error_detail = (
                _provider_error_detail(e.response)
                or f"identity provider returned HTTP {e.response.status_code}"
            )
            raise TokenExchangeError(f"Failed to exchange code: {error_detail}") from e
        except httpx.HTTPError as e:
            logger.error("Token exchange failed: %s", str(e))
            raise TokenExchangeError("Failed to exchange code: identity provider unavailable") from e
        except ValueError as e:
            raise TokenExchangeError("Token response is not valid JSON") from e

        access_token = token_data.get("access_token")
        if not access_token:
            raise TokenExchangeError("Token response missing access_token")
        if not token_data.get("id_token"):
            raise TokenExchangeError("Token response missing id_token")

        expires_in = token_data.get("expires_in")
        return TokenSet(
            access_token=str(access_token),
            id_token=str(token_data["id_token"]),
            refresh_token=token_data.get("refresh_token"),
            token_type=token_data.get("token_type", "Bearer"),
            expires_in=int(expires_in) if expires_in is not None else None,
            scope=token_data.get("scope"),
        )

    def _validate_id_token(self, id_token: str | None) -> dict[str, Any]:
        """Verify signature, issuer, audience and expiry of the id token."""
        if not id_token or self._jwks_client is None:
            raise TokenExchangeError("No id token to validate")

        try:
            signing_key = self._jwks_client.get_signing_key_from_jwt(id_token)
        except PyJWKClientError as e:
            logger.error("Signing key lookup failed: %s", str(e))
            raise TokenExchangeError("Failed to get signing key") from e
        except jwt.DecodeError as e:
            raise TokenExchangeError(f"Invalid id token: {e}") from e

        try:
            return jwt.decode(
                id_token,
                signing_key.key,
                algorithms=self.metadata.id_token_signing_alg_values_supported,
                issuer=self.metadata.issuer,
                audience=self._config.client_id,
                leeway=self._config.max_clock_skew,
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExchangeError("Id token has expired") from e
        except jwt.InvalidAudienceError as e:
            raise TokenExchangeError("Invalid id token audience") from e
        except jwt.InvalidIssuerError as e:
            raise TokenExchangeError("Invalid id token issuer") from e
        except jwt.ImmatureSignatureError as e:
            raise TokenExchangeError("Id token is not yet valid") from e
        except jwt.InvalidTokenError as e:
            raise TokenExchangeError(f"Invalid id token: {e}") from e

    def _fetch_userinfo(self, token_set: TokenSet, subject: str) -> dict[str, Any]:
        """Load userinfo claims when the provider exposes the endpoint."""
        endpoint = self.metadata.userinfo_endpoint
        if not endpoint:
            return {}

        try:
            response = httpx.get(
                endpoint,
                headers={
                    **default_headers(),
                    "Authorization": f"Bearer {token_set.access_token}",
                },
                timeout=self._config.timeout_seconds,
            )
            response.raise_for_status()
            userinfo = response.json()
        except httpx.HTTPError as e:
            logger.error("Userinfo request failed: %s", str(e))
            raise TokenExchangeError("Failed to load user info") from e
        except ValueError as e:
            raise TokenExchangeError("Userinfo response is not valid JSON") from e

        if not isinstance(userinfo, dict):
            raise TokenExchangeError("Userinfo response is not an object")
        if userinfo.get("sub") != subject:
            raise TokenExchangeError("Userinfo subject does not match id token")
        return userinfo

    def end_session_url(self, token_set: TokenSet, post_logout_redirect: str) -> str | None:
        """Build the provider logout URL.

        Args:
            token_set: Tokens from the destroyed session; the id token is sent
                as a hint
            post_logout_redirect: Absolute URL the provider returns to

        Returns:
            Logout URL, or None if the provider has no end_session_endpoint
        """
        endpoint = self.metadata.end_session_endpoint
        if not endpoint:
            return None

        params: dict[str, str] = {
            "client_id": self._config.client_id,
            "post_logout_redirect_uri": post_logout_redirect,
        }
        if token_set.id_token:
            params["id_token_hint"] = token_set.id_token

        return f"{endpoint}?{urlencode(params)}"


def _provider_error_detail(response: httpx.Response) -> str | None:
    try:
        error_data = response.json()
    except ValueError:
        return None
    if not isinstance(error_data, dict):
        return None
    return error_data.get("error_description") or error_data.get("error")
