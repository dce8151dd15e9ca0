"""Health check endpoints for Kubernetes probes."""

from typing import Any

from dependency_injector.wiring import Provide, inject
from flask import Blueprint

from auth_okta.exceptions import DiscoveryError
from auth_okta.services.oidc_client_service import OidcClientService

health_bp = Blueprint("health", __name__)


@health_bp.route("/healthz", methods=["GET"])
def healthz() -> tuple[dict[str, Any], int]:
    """Liveness probe."""
    return {"status": "alive"}, 200


@health_bp.route("/readyz", methods=["GET"])
@inject
def readyz(
    oidc_client_service: OidcClientService = Provide["oidc_client_service"],
) -> tuple[dict[str, Any], int]:
    """Readiness probe: ready once the provider has been discovered."""
    try:
        issuer = oidc_client_service.metadata.issuer
    except DiscoveryError as e:
        return {"status": "not ready", "reason": str(e)}, 503
    return {"status": "ready", "issuer": issuer}, 200
