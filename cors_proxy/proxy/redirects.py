import logging
from typing import Optional, Union
from urllib.parse import quote

import httpx

from cors_proxy import vars as config

logger = logging.getLogger("uvicorn.error")


def proxy_origin(request_url: Union[httpx.URL, str]) -> str:
    """Origin the proxy is reachable on, used as the root of rewritten URLs."""
    if config.PUBLIC_URL:
        return config.PUBLIC_URL
    url = httpx.URL(str(request_url))
    return f"{url.scheme}://{url.netloc.decode('ascii')}"


def proxied_url(request_url: Union[httpx.URL, str], target: str) -> str:
    """Build ``<origin>/proxy?url=<target>`` for the given absolute target."""
    # ":" and "/" stay readable; "?", "&", "=" and "#" of the target are escaped
    encoded = quote(target, safe=":/")
    return f"{proxy_origin(request_url)}{config.PROXY_PATH}?url={encoded}"


def rewrite_redirect_location(
    request_url: Union[httpx.URL, str],
    location: str,
    base_url: Optional[Union[httpx.URL, str]] = None,
) -> str:
    """
    Rewrite a redirect Location so the next hop goes through the proxy again.

    The location is resolved against ``base_url`` (the URL that produced the
    redirect) or, without one, against ``request_url``. The result lives on
    the proxy's own origin. A location that cannot be resolved is returned
    unchanged.
    """
    base = base_url if base_url is not None else request_url
    try:
        resolved = httpx.URL(str(base)).join(location)
    except httpx.InvalidURL as e:
        logger.warning(f"Leaving unresolvable Location unchanged: {location!r} ({e})")
        return location

    return proxied_url(request_url, str(resolved))
