"""Dependency injection container for the Okta auth plugin."""

from dependency_injector import containers, providers

from auth_okta.config import Settings
from auth_okta.services.auth_flow_service import AuthFlowService
from auth_okta.services.authorization_api_client import AuthorizationApiClient
from auth_okta.services.oidc_client_service import OidcClientService
from auth_okta.services.session_service import SessionService


class ServiceContainer(containers.DeclarativeContainer):
    """Container for service dependency injection."""

    # Configuration providers
    config = providers.Dependency(instance_of=Settings)

    # OIDC client - discovers the provider once per process
    oidc_client_service = providers.Singleton(
        OidcClientService,
        config=config.provided.okta,
    )

    # Authorization API client - resolves provider identities to local users
    authorization_api_client = providers.Singleton(
        AuthorizationApiClient,
        base_url=config.provided.authorization_api_url,
        jwt_secret=config.provided.jwt_secret,
        user_id=config.provided.user_id,
        timeout=config.provided.okta.timeout_seconds,
    )

    # Session store
    session_service = providers.Singleton(
        SessionService,
        cookie_options=config.provided.session_cookie,
    )

    # Auth flow - the single login/logout strategy of this process
    auth_flow_service = providers.Singleton(
        AuthFlowService,
        oidc_client=oidc_client_service,
        authorization_api=authorization_api_client,
        session_service=session_service,
        auth_plugin=config.provided.auth_plugin,
        scope=config.provided.okta.scope,
        external_url=config.provided.external_url,
        default_redirect_url=config.provided.auth_plugin_redirect_url,
        secret_key=config.provided.secret_key,
    )
