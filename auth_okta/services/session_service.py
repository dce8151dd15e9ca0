"""Session store backed by Flask's signed cookie session."""

import logging
from dataclasses import dataclass
from typing import Any

from flask import Response, after_this_request, session

from auth_okta.config import CookieOptions
from auth_okta.services.authorization_api_client import UserProfile
from auth_okta.services.oidc_client_service import TokenSet

logger = logging.getLogger(__name__)

SESSION_USER_KEY = "user"


@dataclass
class ProviderMarker:
    """Which plugin authenticated the session and how to log out upstream."""

    key: str
    token_set: TokenSet | None
    logout_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "key": self.key,
            "tokenSet": self.token_set.to_dict() if self.token_set else None,
        }
        if self.logout_url:
            data["logoutUrl"] = self.logout_url
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProviderMarker":
        token_set = data.get("tokenSet")
        return cls(
            key=data.get("key", ""),
            token_set=TokenSet.from_dict(token_set) if token_set else None,
            logout_url=data.get("logoutUrl"),
        )


@dataclass
class SessionRecord:
    """Authenticated session payload."""

    user_id: str
    profile: UserProfile | None
    auth_plugin: ProviderMarker | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.user_id,
            "profile": self.profile.to_dict() if self.profile else None,
            "authPlugin": self.auth_plugin.to_dict() if self.auth_plugin else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionRecord":
        profile = data.get("profile")
        auth_plugin = data.get("authPlugin")
        return cls(
            user_id=str(data.get("id", "")),
            profile=UserProfile(**profile) if profile else None,
            auth_plugin=ProviderMarker.from_dict(auth_plugin) if auth_plugin else None,
        )

    @property
    def token_set(self) -> TokenSet | None:
        return self.auth_plugin.token_set if self.auth_plugin else None


class SessionService:
    """Creates, reads and destroys the user's session.

    Must be used inside a Flask request context. Cookie attributes come from
    the app config, which is built from the same CookieOptions.
    """

    def __init__(self, cookie_options: CookieOptions) -> None:
        self._cookie_options = cookie_options

    def establish(
        self, payload: SessionRecord, cookie_options: CookieOptions | None = None
    ) -> None:
        """Start a fresh session holding ``payload``."""
        options = cookie_options or self._cookie_options
        session.clear()
        session[SESSION_USER_KEY] = payload.to_dict()
        session.permanent = options.max_age > 0
        logger.info("Established session for user %s", payload.user_id)

    def current(self) -> SessionRecord | None:
        """Return the active session record, or None."""
        data = session.get(SESSION_USER_KEY)
        if not isinstance(data, dict):
            return None
        return SessionRecord.from_dict(data)

    def destroy(self, cookie_options: CookieOptions | None = None) -> None:
        """End the session. Safe to call when there is none.

        The cookie described by the options is expired on the response, even
        when the browser sent one Flask could not load.
        """
        options = cookie_options or self._cookie_options
        had_session = SESSION_USER_KEY in session
        session.clear()

        @after_this_request
        def _expire_cookie(response: Response) -> Response:
            response.delete_cookie(
                options.name,
                path=options.path,
                domain=options.domain,
                secure=options.secure,
                httponly=options.http_only,
                samesite=options.same_site,
            )
            return response

        if had_session:
            logger.info("Destroyed session cookie %s", options.name)
