"""Pydantic schemas for the auth plugin descriptor."""

from pydantic import BaseModel, ConfigDict, Field

from auth_okta.config import AuthPluginConfig


class AuthPluginConfigResponse(BaseModel):
    """Plugin descriptor served to the gateway."""

    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(description="Unique plugin key, part of the mount path")
    name: str = Field(description="Display name on the sign-in page")
    icon_url: str = Field(alias="iconUrl", description="Sign-in button icon")
    authentication_method: str = Field(
        alias="authenticationMethod",
        description="How the gateway drives the plugin",
    )
    explicit_logout: bool = Field(
        alias="explicitLogout",
        description="Whether logout is forwarded to the plugin",
    )

    @classmethod
    def from_config(cls, config: AuthPluginConfig) -> "AuthPluginConfigResponse":
        return cls(
            key=config.key,
            name=config.name,
            icon_url=config.icon_url,
            authentication_method=config.authentication_method,
            explicit_logout=config.explicit_logout,
        )


class RedirectQuerySchema(BaseModel):
    """Query string accepted by the login and logout entry points."""

    redirect: str | None = Field(
        default=None,
        description="Where to send the browser afterwards; the configured default when empty",
    )


class CallbackQuerySchema(BaseModel):
    """Query string the provider sends back to the return endpoint."""

    code: str | None = Field(default=None, description="Authorization code")
    state: str | None = Field(default=None, description="Signed state issued at login")
    error: str | None = Field(default=None, description="Provider error code")
    error_description: str | None = Field(
        default=None, description="Provider error message"
    )
