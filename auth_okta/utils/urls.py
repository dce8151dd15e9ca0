"""Redirect URL helpers shared by every auth plugin entry point."""

from collections.abc import Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


def add_query_params(url: str, params: Mapping[str, str]) -> str:
    """Set query parameters on a URL, replacing any existing values for the same keys."""
    if not params:
        return url

    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in params]
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


def get_absolute_url(
    url: str,
    base_url: str | None = None,
    queries: Mapping[str, str] | None = None,
) -> str:
    """Resolve a path against the external base URL.

    Absolute URLs are kept as they are. Relative paths are appended to the
    base URL's path so a gateway mounted under a sub-path keeps its prefix.
    Without a base URL the input is returned unresolved.

    Args:
        url: Absolute URL or path
        base_url: External base URL of the gateway
        queries: Optional query parameters to set on the result

    Returns:
        The resolved URL
    """
    parts = urlsplit(url)

    if parts.scheme and parts.netloc:
        result = url
    elif base_url:
        base = urlsplit(base_url)
        path = base.path.rstrip("/") + "/" + parts.path.lstrip("/")
        result = urlunsplit((base.scheme, base.netloc, path, parts.query, parts.fragment))
    else:
        result = url

    return add_query_params(result, queries or {})


def determine_redirect_url(
    redirect: str | None,
    default_redirect_url: str,
    external_url: str | None = None,
) -> str:
    """Pick the post-login/post-logout destination.

    A non-empty ``redirect`` query parameter wins over the configured default;
    either way the result is resolved against ``external_url``.
    """
    if isinstance(redirect, str) and redirect:
        return get_absolute_url(redirect, external_url)
    return get_absolute_url(default_redirect_url, external_url)


def failure_redirect_url(to_url: str, error_message: str) -> str:
    """Destination carrying the failure outcome for the gateway's sign-in page."""
    return add_query_params(
        to_url, {"result": "failure", "errorMessage": error_message}
    )
