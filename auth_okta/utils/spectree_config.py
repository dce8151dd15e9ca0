"""
Spectree configuration with Pydantic v2 compatibility.
"""
import logging

from flask import Flask
from spectree import SpecTree

from auth_okta import __version__

logger = logging.getLogger(__name__)

# Global Spectree instance that can be imported by API modules.
# Initialized by configure_spectree() before the API modules are imported.
api: SpecTree = None  # type: ignore


def configure_spectree(app: Flask) -> SpecTree:
    """
    Configure Spectree for the plugin endpoints.

    The OpenAPI document is served at /docs/openapi.json.

    Returns:
        SpecTree: Configured Spectree instance
    """
    global api

    # Blueprints bind to the first instance at import time
    if api is None:
        api = SpecTree(
            backend_name="flask",
            title="Okta auth plugin",
            version=__version__,
            description="OpenID Connect login and logout endpoints for the gateway",
            path="docs",
            validation_error_status=400,
        )

    api.register(app)
    logger.debug("Registered OpenAPI docs at /docs")

    return api
