from typing import Iterable, Tuple

import httpx

ALLOW_METHODS = "GET,HEAD,POST,PUT,PATCH,DELETE,OPTIONS"
NO_CACHE = "no-store, no-cache, must-revalidate, proxy-revalidate, max-age=0"

# Hop-by-hop headers that should NOT be relayed (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# Identify the caller's own host; never sent to the target as-is
STRIPPED_REQUEST_HEADERS = ("host", "referer")

# Framing headers that describe a body we do not forward
BODY_HEADERS = ("content-length", "transfer-encoding")


def set_no_cache(headers: httpx.Headers) -> None:
    """Force clients and intermediaries to never cache the response."""
    headers["Cache-Control"] = NO_CACHE
    headers["Pragma"] = "no-cache"
    headers["Expires"] = "0"


def set_cors(headers: httpx.Headers) -> None:
    headers["Access-Control-Allow-Origin"] = "*"
    headers["Access-Control-Allow-Methods"] = ALLOW_METHODS


def target_origin(target: httpx.URL) -> str:
    return f"{target.scheme}://{target.netloc.decode('ascii')}"


def prepare_downstream_headers(
    incoming: Iterable[Tuple[str, str]], target: httpx.URL, with_body: bool
) -> httpx.Headers:
    """
    Copy the incoming headers for the downstream request.

    Host and Referer are removed, Origin is set to the target's own origin and
    compression is disabled so the body can be relayed untouched.
    """
    headers = httpx.Headers(list(incoming))
    for name in STRIPPED_REQUEST_HEADERS:
        headers.pop(name, None)
    if not with_body:
        for name in BODY_HEADERS:
            headers.pop(name, None)
    headers["origin"] = target_origin(target)
    headers["accept-encoding"] = "identity"
    return headers


def prepare_response_headers(
    downstream: httpx.Headers, with_body: bool = True
) -> httpx.Headers:
    """Copy downstream response headers and add the CORS and no-cache set."""
    headers = httpx.Headers(
        [
            (name, value)
            for name, value in downstream.multi_items()
            if name.lower() not in HOP_BY_HOP_HEADERS
        ]
    )
    if not with_body:
        headers.pop("content-length", None)
    set_cors(headers)
    set_no_cache(headers)
    return headers
