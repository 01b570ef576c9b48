from urllib.parse import urlsplit, urlunsplit


def redact_userinfo(url: str) -> str:
    """Mask credentials embedded in a URL so it can be logged or traced."""
    if not url or "@" not in url:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.username and not parts.password:
        return url
    host = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit(parts._replace(netloc=f"****@{host}"))
