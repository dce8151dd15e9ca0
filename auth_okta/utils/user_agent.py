"""User-Agent header for outbound calls to the identity provider."""

import platform
from functools import cache

import httpx

from auth_okta import __distribution__, __version__


@cache
def build_user_agent() -> str:
    """Identify this plugin, the HTTP client and the runtime.

    Looks like ``auth-okta/1.1.1 httpx/0.27.0 python/3.12.1 linux/6.5.0``.
    """
    return (
        f"{__distribution__}/{__version__} httpx/{httpx.__version__} "
        f"python/{platform.python_version()} "
        f"{platform.system().lower()}/{platform.release()}"
    )


def default_headers() -> dict[str, str]:
    return {"User-Agent": build_user_agent()}
