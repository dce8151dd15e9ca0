"""Signed OIDC ``state`` values carrying the post-login destination.

The destination travels through the identity provider and back; no
per-attempt data is kept server-side. The HMAC lets the return leg detect a
state value that was not produced by this service.
"""

import base64
import binascii
import hmac
import json

from auth_okta.exceptions import InvalidStateError


def _sign(data: str, secret_key: str) -> str:
    return hmac.new(secret_key.encode(), data.encode(), "sha256").hexdigest()


def encode_state(redirect_url: str, secret_key: str) -> str:
    """Serialize the destination URL to a signed, URL-safe state value."""
    data = json.dumps({"redirect": redirect_url})
    signature = _sign(data, secret_key)
    return base64.urlsafe_b64encode(f"{data}|{signature}".encode()).decode()


def decode_state(value: str | None, secret_key: str) -> str:
    """Verify a state value echoed by the provider and return its destination.

    Raises:
        InvalidStateError: If the value is missing, malformed or its signature
            doesn't match
    """
    if not value:
        raise InvalidStateError("Missing authentication state.")

    try:
        decoded = base64.urlsafe_b64decode(value.encode()).decode()
        data, signature = decoded.rsplit("|", 1)
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise InvalidStateError() from e

    if not hmac.compare_digest(signature, _sign(data, secret_key)):
        raise InvalidStateError("Authentication state signature mismatch.")

    try:
        redirect_url = json.loads(data)["redirect"]
    except (ValueError, KeyError, TypeError) as e:
        raise InvalidStateError() from e

    if not isinstance(redirect_url, str) or not redirect_url:
        raise InvalidStateError()
    return redirect_url
