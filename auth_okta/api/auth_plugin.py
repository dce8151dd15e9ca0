"""Auth plugin endpoints.

Mounted by the gateway under ``/auth/login/plugin/<key>`` for login and
``/auth/plugin/<key>`` for logout. Each endpoint only extracts query
parameters and delegates to the auth flow service.
"""

from typing import Any

from dependency_injector.wiring import Provide, inject
from flask import Blueprint, redirect, request
from spectree import Response as SpectreeResponse
from werkzeug.wrappers import Response

from auth_okta.config import Settings
from auth_okta.schemas.auth_plugin_schema import (
    AuthPluginConfigResponse,
    CallbackQuerySchema,
    RedirectQuerySchema,
)
from auth_okta.services.auth_flow_service import AuthFlowService
from auth_okta.utils.spectree_config import api

auth_plugin_bp = Blueprint("auth_plugin", __name__)


@auth_plugin_bp.route("/", methods=["GET"])
@api.validate(query=RedirectQuerySchema)
@inject
def login(
    auth_flow_service: AuthFlowService = Provide["auth_flow_service"],
) -> Response:
    """Redirect to the provider's authorization endpoint."""
    return redirect(auth_flow_service.initiate(request.args.get("redirect")))


@auth_plugin_bp.route("/return", methods=["GET"])
@api.validate(query=CallbackQuerySchema)
@inject
def login_return(
    auth_flow_service: AuthFlowService = Provide["auth_flow_service"],
) -> Response:
    """Handle the provider callback."""
    return redirect(auth_flow_service.complete(request.args))


@auth_plugin_bp.route("/logout", methods=["GET"])
@api.validate(query=RedirectQuerySchema)
@inject
def logout(
    auth_flow_service: AuthFlowService = Provide["auth_flow_service"],
) -> Response:
    """Destroy the session and log out at the provider when needed."""
    return redirect(auth_flow_service.logout(request.args.get("redirect")))


@auth_plugin_bp.route("/logout/return", methods=["GET"])
@api.validate(query=RedirectQuerySchema)
@inject
def logout_return(
    auth_flow_service: AuthFlowService = Provide["auth_flow_service"],
) -> Response:
    """Handle the provider's post-logout redirect."""
    return redirect(auth_flow_service.logout_return(request.args.get("redirect")))


@auth_plugin_bp.route("/config", methods=["GET"])
@api.validate(resp=SpectreeResponse(HTTP_200=AuthPluginConfigResponse))
@inject
def get_config(settings: Settings = Provide["config"]) -> tuple[dict[str, Any], int]:
    """Return the plugin descriptor."""
    response = AuthPluginConfigResponse.from_config(settings.auth_plugin)
    return response.model_dump(by_alias=True), 200
