"""Configuration management using Pydantic settings.

Two-layer configuration system:
1. Environment: Loads raw values from environment variables (UPPER_CASE)
2. Settings: Clean application settings with lowercase fields, composed from
   the provider, plugin and session cookie sections
"""

from datetime import timedelta
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DEFAULT_SECRET_KEY = "dev-secret-key-change-in-production"

OKTA_DEFAULT_TIMEOUT = 10000
OKTA_DEFAULT_MAX_CLOCK_SKEW = 120
DEFAULT_SCOPE = "openid profile email"


class Environment(BaseSettings):
    """Raw environment variable loading."""

    model_config = SettingsConfigDict(
        env_file=_PROJECT_ROOT / ".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Core ───────────────────────────────────────────────────────────

    SECRET_KEY: str = Field(default=_DEFAULT_SECRET_KEY)
    FLASK_ENV: str = Field(default="development")
    DEBUG: bool = Field(default=True)
    LOG_LEVEL: str = Field(default="INFO")

    # ── Gateway ────────────────────────────────────────────────────────

    EXTERNAL_URL: str | None = Field(default=None)
    AUTH_PLUGIN_REDIRECT_URL: str = Field(default="/sign-in-redirect")
    AUTHORIZATION_API_URL: str | None = Field(default="http://localhost:6104/v0")
    JWT_SECRET: str | None = Field(default=None)
    USER_ID: str = Field(default="00000000-0000-4000-8000-000000000000")

    # ── Auth plugin ────────────────────────────────────────────────────

    AUTH_PLUGIN_KEY: str = Field(default="okta")
    AUTH_PLUGIN_NAME: str = Field(default="Okta")
    AUTH_PLUGIN_ICON_URL: str = Field(default="/icon.svg")
    EXPLICIT_LOGOUT: bool = Field(default=True)

    # ── Okta ───────────────────────────────────────────────────────────

    OKTA_ISSUER: str | None = Field(default=None)
    OKTA_CLIENT_ID: str | None = Field(default=None)
    OKTA_CLIENT_SECRET: str | None = Field(default=None)
    OKTA_SCOPE: str = Field(default=DEFAULT_SCOPE)
    OKTA_TIMEOUT: int = Field(default=OKTA_DEFAULT_TIMEOUT)
    OKTA_MAX_CLOCK_SKEW: int = Field(default=OKTA_DEFAULT_MAX_CLOCK_SKEW)

    # ── Session cookie ─────────────────────────────────────────────────

    SESSION_COOKIE_NAME: str = Field(default="connect.sid")
    SESSION_COOKIE_DOMAIN: str | None = Field(default=None)
    SESSION_COOKIE_SECURE: bool | None = Field(default=None)
    SESSION_COOKIE_SAMESITE: str = Field(default="Lax")
    SESSION_COOKIE_MAX_AGE: int = Field(default=7 * 24 * 60 * 60)


class ProviderConfig(BaseModel):
    """Immutable OIDC provider configuration."""

    model_config = ConfigDict(frozen=True)

    issuer: str = ""
    client_id: str = ""
    client_secret: str = ""
    external_url: str = ""
    plugin_key: str = "okta"
    scope: str = DEFAULT_SCOPE
    timeout: int = OKTA_DEFAULT_TIMEOUT  # milliseconds
    max_clock_skew: int = OKTA_DEFAULT_MAX_CLOCK_SKEW  # seconds

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000.0

    @property
    def discovery_url(self) -> str:
        """Well-known configuration URL, tolerating a trailing slash on the issuer."""
        issuer = self.issuer if self.issuer.endswith("/") else self.issuer + "/"
        return f"{issuer}.well-known/openid-configuration"


class AuthPluginConfig(BaseModel):
    """Descriptor the gateway uses to list and drive this plugin."""

    model_config = ConfigDict(frozen=True)

    key: str = "okta"
    name: str = "Okta"
    icon_url: str = "/icon.svg"
    authentication_method: str = "IDP-URI-REDIRECTION"
    explicit_logout: bool = True


class CookieOptions(BaseModel):
    """Session cookie options handed to the session store."""

    model_config = ConfigDict(frozen=True)

    name: str = "connect.sid"
    domain: str | None = None
    path: str = "/"
    secure: bool = False
    http_only: bool = True
    same_site: str = "Lax"
    max_age: int = 7 * 24 * 60 * 60  # seconds


class Settings(BaseModel):
    """Application settings with lowercase fields and derived values."""

    model_config = ConfigDict(from_attributes=True)

    secret_key: str = _DEFAULT_SECRET_KEY
    flask_env: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    external_url: str = ""
    auth_plugin_redirect_url: str = "/sign-in-redirect"
    authorization_api_url: str | None = "http://localhost:6104/v0"
    jwt_secret: str | None = None
    user_id: str = "00000000-0000-4000-8000-000000000000"

    okta: ProviderConfig = Field(default_factory=ProviderConfig)
    auth_plugin: AuthPluginConfig = Field(default_factory=AuthPluginConfig)
    session_cookie: CookieOptions = Field(default_factory=CookieOptions)

    @property
    def is_testing(self) -> bool:
        return self.flask_env == "testing"

    @property
    def is_production(self) -> bool:
        return self.flask_env == "production"

    def to_flask_config(self) -> "FlaskConfig":
        cookie = self.session_cookie
        return FlaskConfig(
            SECRET_KEY=self.secret_key,
            SESSION_COOKIE_NAME=cookie.name,
            SESSION_COOKIE_DOMAIN=cookie.domain,
            SESSION_COOKIE_PATH=cookie.path,
            SESSION_COOKIE_SECURE=cookie.secure,
            SESSION_COOKIE_HTTPONLY=cookie.http_only,
            SESSION_COOKIE_SAMESITE=cookie.same_site,
            PERMANENT_SESSION_LIFETIME=timedelta(seconds=cookie.max_age),
        )

    def validate_config(self) -> None:
        from auth_okta.exceptions import ConfigurationError

        errors: list[str] = []

        if self.is_production and self.secret_key == _DEFAULT_SECRET_KEY:
            errors.append("SECRET_KEY must be set to a secure value in production")

        if not self.okta.issuer:
            errors.append("OKTA_ISSUER is required")
        if not self.okta.client_id:
            errors.append("OKTA_CLIENT_ID is required")
        if not self.okta.client_secret:
            errors.append("OKTA_CLIENT_SECRET is required")
        if not self.external_url:
            errors.append("EXTERNAL_URL is required")
        if self.okta.timeout <= 0:
            errors.append("OKTA_TIMEOUT must be a positive number of milliseconds")
        if self.okta.max_clock_skew < 0:
            errors.append("OKTA_MAX_CLOCK_SKEW can't be negative")

        if not self.authorization_api_url:
            errors.append("AUTHORIZATION_API_URL is required")
        if not self.jwt_secret:
            errors.append("JWT_SECRET is required")

        if errors:
            raise ConfigurationError(
                "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            )

    @classmethod
    def load(cls, env: "Environment | None" = None) -> "Settings":
        if env is None:
            env = Environment()

        if env.SESSION_COOKIE_SECURE is not None:
            cookie_secure = env.SESSION_COOKIE_SECURE
        else:
            cookie_secure = (env.EXTERNAL_URL or "").startswith("https://")

        provider = ProviderConfig(
            issuer=env.OKTA_ISSUER or "",
            client_id=env.OKTA_CLIENT_ID or "",
            client_secret=env.OKTA_CLIENT_SECRET or "",
            external_url=env.EXTERNAL_URL or "",
            plugin_key=env.AUTH_PLUGIN_KEY,
            scope=env.OKTA_SCOPE or DEFAULT_SCOPE,
            timeout=env.OKTA_TIMEOUT,
            max_clock_skew=env.OKTA_MAX_CLOCK_SKEW,
        )

        auth_plugin = AuthPluginConfig(
            key=env.AUTH_PLUGIN_KEY,
            name=env.AUTH_PLUGIN_NAME,
            icon_url=env.AUTH_PLUGIN_ICON_URL,
            explicit_logout=env.EXPLICIT_LOGOUT,
        )

        session_cookie = CookieOptions(
            name=env.SESSION_COOKIE_NAME,
            domain=env.SESSION_COOKIE_DOMAIN,
            secure=cookie_secure,
            same_site=env.SESSION_COOKIE_SAMESITE,
            max_age=env.SESSION_COOKIE_MAX_AGE,
        )

        return cls(
            secret_key=env.SECRET_KEY,
            flask_env=env.FLASK_ENV,
            debug=env.DEBUG,
            log_level=env.LOG_LEVEL,
            external_url=env.EXTERNAL_URL or "",
            auth_plugin_redirect_url=env.AUTH_PLUGIN_REDIRECT_URL,
            authorization_api_url=env.AUTHORIZATION_API_URL,
            jwt_secret=env.JWT_SECRET,
            user_id=env.USER_ID,
            okta=provider,
            auth_plugin=auth_plugin,
            session_cookie=session_cookie,
        )


class FlaskConfig:
    """Flask-specific configuration for app.config.from_object()."""

    def __init__(
        self,
        SECRET_KEY: str,
        SESSION_COOKIE_NAME: str,
        SESSION_COOKIE_DOMAIN: str | None,
        SESSION_COOKIE_PATH: str,
        SESSION_COOKIE_SECURE: bool,
        SESSION_COOKIE_HTTPONLY: bool,
        SESSION_COOKIE_SAMESITE: str,
        PERMANENT_SESSION_LIFETIME: timedelta,
    ) -> None:
        self.SECRET_KEY = SECRET_KEY
        self.SESSION_COOKIE_NAME = SESSION_COOKIE_NAME
        self.SESSION_COOKIE_DOMAIN = SESSION_COOKIE_DOMAIN
        self.SESSION_COOKIE_PATH = SESSION_COOKIE_PATH
        self.SESSION_COOKIE_SECURE = SESSION_COOKIE_SECURE
        self.SESSION_COOKIE_HTTPONLY = SESSION_COOKIE_HTTPONLY
        self.SESSION_COOKIE_SAMESITE = SESSION_COOKIE_SAMESITE
        self.PERMANENT_SESSION_LIFETIME = PERMANENT_SESSION_LIFETIME
