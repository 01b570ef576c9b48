import os
from typing import Optional

SERVICE_NAME = os.getenv("SERVICE_NAME", "cors-proxy")

# Route of the single proxy endpoint; rewritten redirects point back at it
PROXY_PATH = "/" + os.environ.get("PROXY_PATH", "/proxy").strip("/")
# Public-facing origin used instead of the request's own origin for rewrites
PUBLIC_URL = os.environ.get("PUBLIC_URL", "").rstrip("/")


def _parse_timeout(raw: str) -> Optional[float]:
    raw = raw.strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


# Unset means the downstream client enforces no timeout of its own
PROXY_TIMEOUT = _parse_timeout(os.environ.get("PROXY_TIMEOUT", ""))

STRICT_TARGET_CHECK = os.getenv("STRICT_TARGET_CHECK", "false").lower() == "true"

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
