"""Client for the gateway's authorization API (user lookup and creation)."""

import logging
from dataclasses import asdict, dataclass
from typing import Any

import httpx
import jwt

from auth_okta.exceptions import IdentityResolutionError
from auth_okta.utils.user_agent import default_headers

logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Magda-Session"


@dataclass
class UserProfile:
    """Identity projected from the provider's claims."""

    id: str  # provider subject
    provider: str
    email: str
    display_name: str | None = None
    given_name: str | None = None
    family_name: str | None = None

    @classmethod
    def from_claims(cls, claims: dict[str, Any], provider: str) -> "UserProfile":
        return cls(
            id=str(claims["sub"]),
            provider=provider,
            email=str(claims["email"]),
            display_name=claims.get("name"),
            given_name=claims.get("given_name"),
            family_name=claims.get("family_name"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @property
    def resolved_display_name(self) -> str:
        if self.display_name:
            return self.display_name
        full_name = " ".join(n for n in (self.given_name, self.family_name) if n)
        return full_name or self.email


@dataclass
class UserToken:
    """Local user reference returned by the authorization API."""

    id: str


class AuthorizationApiClient:
    """Resolves a provider identity to a local user, creating it when missing.

    Lookup happens before creation so repeated logins for the same
    (source, subject) pair always map to the same user.
    """

    def __init__(
        self,
        base_url: str,
        jwt_secret: str,
        user_id: str,
        timeout: float = 10.0,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Authorization API base URL (e.g. http://authorization-api/v0)
            jwt_secret: Secret used to sign the internal session header
            user_id: Id of the service account the requests act as
            timeout: Request timeout in seconds
        """
        self._base_url = base_url.rstrip("/")
        self._jwt_secret = jwt_secret
        self._user_id = user_id
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        token = jwt.encode({"userId": self._user_id}, self._jwt_secret, algorithm="HS256")
        return {**default_headers(), SESSION_HEADER: token}

    def lookup_user(self, source: str, source_id: str) -> UserToken | None:
        """Find the local user for a provider identity.

        Returns:
            UserToken, or None when no user is linked to the identity

        Raises:
            IdentityResolutionError: If the API call fails
        """
        try:
            response = httpx.get(
                f"{self._base_url}/private/users/lookup",
                params={"source": source, "sourceId": source_id},
                headers=self._headers(),
                timeout=self._timeout,
            )
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return self._to_user_token(response.json())
        except httpx.HTTPError as e:
            logger.error("User lookup failed for source=%s: %s", source, str(e))
            raise IdentityResolutionError("Failed to look up user") from e
        except ValueError as e:
            raise IdentityResolutionError("User lookup returned invalid JSON") from e

    def create_user(self, profile: UserProfile) -> UserToken:
        """Create a local user for a provider identity.

        Raises:
            IdentityResolutionError: If the API call fails
        """
        payload = {
            "displayName": profile.resolved_display_name,
            "email": profile.email,
            "source": profile.provider,
            "sourceId": profile.id,
            "isAdmin": False,
        }

        try:
            response = httpx.post(
                f"{self._base_url}/private/users",
                json=payload,
                headers=self._headers(),
                timeout=self._timeout,
            )
            response.raise_for_status()
            user_token = self._to_user_token(response.json())
        except httpx.HTTPError as e:
            logger.error("User creation failed for source=%s: %s", profile.provider, str(e))
            raise IdentityResolutionError("Failed to create user") from e
        except ValueError as e:
            raise IdentityResolutionError("User creation returned invalid JSON") from e

        logger.info("Created user %s for source=%s", user_token.id, profile.provider)
        return user_token

    def resolve_or_create_user(self, profile: UserProfile, plugin_key: str) -> UserToken:
        """Return the local user for ``profile``, creating it on first login.

        Args:
            profile: Identity projected from the provider's claims
            plugin_key: Auth plugin key, used as the identity source

        Raises:
            IdentityResolutionError: If lookup or creation fails
        """
        user_token = self.lookup_user(plugin_key, profile.id)
        if user_token is not None:
            return user_token
        return self.create_user(profile)

    @staticmethod
    def _to_user_token(data: Any) -> UserToken:
        if not isinstance(data, dict) or not data.get("id"):
            raise IdentityResolutionError("Authorization API response is missing the user id")
        return UserToken(id=str(data["id"]))
