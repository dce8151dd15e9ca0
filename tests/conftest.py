"""Pytest configuration and fixtures."""

import time
from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import patch

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from flask import Flask
from flask.testing import FlaskClient

from auth_okta import create_app
from auth_okta.config import AuthPluginConfig, CookieOptions, ProviderConfig, Settings
from auth_okta.services.oidc_client_service import OidcClientService
from tests.testing_utils import (
    CLIENT_ID,
    ISSUER,
    build_oidc_client,
    mock_json_response,
    mock_jwk_client,
)


def _build_test_settings() -> Settings:
    """Construct base Settings object for tests."""
    return Settings(
        secret_key="test-secret-key",
        flask_env="testing",
        debug=True,
        external_url="https://example.org",
        auth_plugin_redirect_url="/sign-in-redirect",
        authorization_api_url="http://authorization-api/v0",
        jwt_secret="squirrel",
        user_id="00000000-0000-4000-8000-000000000000",
        okta=ProviderConfig(
            issuer=ISSUER,
            client_id=CLIENT_ID,
            client_secret="test-client-secret",
            external_url="https://example.org",
            plugin_key="okta",
        ),
        auth_plugin=AuthPluginConfig(key="okta", explicit_logout=True),
        session_cookie=CookieOptions(secure=False),
    )


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return _build_test_settings()


@pytest.fixture
def mock_oidc_discovery() -> dict[str, Any]:
    """Okta-style discovery document without a userinfo endpoint."""
    return {
        "issuer": ISSUER,
        "authorization_endpoint": f"{ISSUER}/v1/authorize",
        "token_endpoint": f"{ISSUER}/v1/token",
        "jwks_uri": f"{ISSUER}/v1/keys",
        "end_session_endpoint": f"{ISSUER}/v1/logout",
        "id_token_signing_alg_values_supported": ["RS256"],
    }


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def generate_id_token(rsa_private_key: rsa.RSAPrivateKey) -> Callable[..., str]:
    """Factory fixture to mint id tokens signed with the test key."""

    def _generate(
        subject: str = "00u1abcd",
        email: str | None = "a@b.com",
        name: str | None = "Test User",
        issuer: str = ISSUER,
        audience: str = CLIENT_ID,
        expires_in: int = 3600,
        signing_key: rsa.RSAPrivateKey | None = None,
        **extra_claims: Any,
    ) -> str:
        now = int(time.time())
        payload: dict[str, Any] = {
            "sub": subject,
            "iss": issuer,
            "aud": audience,
            "iat": now,
            "exp": now + expires_in,
            **extra_claims,
        }
        if email:
            payload["email"] = email
        if name:
            payload["name"] = name

        return jwt.encode(
            payload,
            signing_key or rsa_private_key,
            algorithm="RS256",
            headers={"kid": "test-key-id"},
        )

    return _generate


@pytest.fixture
def oidc_client(
    test_settings: Settings,
    mock_oidc_discovery: dict[str, Any],
    rsa_private_key: rsa.RSAPrivateKey,
) -> OidcClientService:
    return build_oidc_client(
        test_settings.okta, mock_oidc_discovery, rsa_private_key.public_key()
    )


@pytest.fixture
def app(
    test_settings: Settings,
    mock_oidc_discovery: dict[str, Any],
    rsa_private_key: rsa.RSAPrivateKey,
) -> Generator[Flask, None, None]:
    """Create Flask app with provider discovery mocked out."""
    with patch("httpx.get") as mock_get, patch(
        "auth_okta.services.oidc_client_service.PyJWKClient"
    ) as mock_jwk_client_class:
        mock_get.return_value = mock_json_response(mock_oidc_discovery)

        mock_jwk_client_class.return_value = mock_jwk_client(rsa_private_key.public_key())

        application = create_app(test_settings)

    application.config["TESTING"] = True
    yield application


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    """Create test client."""
    return app.test_client()
