"""Okta OpenID Connect authentication plugin for the identity gateway."""

import logging

from auth_okta.app import App
from auth_okta.config import Settings

__distribution__ = "auth-okta"
__version__ = "1.1.1"

logger = logging.getLogger(__name__)


def create_app(settings: "Settings | None" = None) -> App:
    """Create and configure the Flask application.

    The OIDC provider is discovered here, before the app is returned, so a
    process whose provider is unreachable or misconfigured never serves
    traffic.

    Raises:
        ConfigurationError: If required settings are missing
        DiscoveryError: If the provider metadata can't be loaded
    """
    app = App(__name__)

    if settings is None:
        settings = Settings.load()

    # Validate configuration before proceeding
    settings.validate_config()

    app.config.from_object(settings.to_flask_config())

    from auth_okta.utils.spectree_config import configure_spectree

    configure_spectree(app)

    from auth_okta.services.container import ServiceContainer

    container = ServiceContainer()
    container.config.override(settings)
    container.wire(packages=["auth_okta.api"])
    app.container = container

    from auth_okta.api.auth_plugin import auth_plugin_bp
    from auth_okta.api.health import health_bp
    from auth_okta.api.metrics import metrics_bp

    app.register_blueprint(auth_plugin_bp)
    app.register_blueprint(health_bp)
    app.register_blueprint(metrics_bp)

    # Single auth flow per process; instantiating it discovers the provider
    auth_flow_service = container.auth_flow_service()
    logger.info("Registered auth flow %s", auth_flow_service.name)

    return app
