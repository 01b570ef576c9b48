"""
Target parsing and SSRF validation for the proxy endpoint.

Validation is a textual check on the hostname. It does not resolve DNS, so a
hostname that resolves to a private address but does not look like one passes.
"""

import ipaddress
import logging
from dataclasses import dataclass
from typing import Optional, Union

import httpx

from cors_proxy import vars as config

logger = logging.getLogger("uvicorn.error")

ALLOWED_SCHEMES = {"http", "https"}

BLOCKED_HOSTS = {
    "localhost",
    "0",
    "0.0.0.0",
    "127.0.0.1",
    "169.254.169.254",  # cloud metadata endpoint
}

BLOCKED_SUFFIXES = (".local",)

# "172.2" is a coarse match for 172.20.-172.29.; 172.30./172.31. are not covered
BLOCKED_PREFIXES = (
    "10.",
    "172.16.",
    "172.17.",
    "172.18.",
    "172.19.",
    "172.2",
    "192.168.",
)


@dataclass(frozen=True)
class TargetRejection:
    """Why a ``url`` parameter was not accepted, as the response to send back."""

    status_code: int
    message: str


MISSING_URL = TargetRejection(400, "Missing url parameter")
INVALID_URL = TargetRejection(400, "Invalid url parameter")
FORBIDDEN_TARGET = TargetRejection(403, "Forbidden target")


DIGITS = set("0123456789")
HEX_DIGITS = set("0123456789abcdefABCDEF")


def _parse_ipv4_number(part: str) -> Optional[int]:
    """Parse one dotted part as decimal, ``0``-prefixed octal or ``0x`` hex."""
    if not part:
        return None
    radix = 10
    if part[:2] in ("0x", "0X"):
        part, radix, allowed = part[2:], 16, HEX_DIGITS
        if not part:
            return 0
    elif len(part) > 1 and part[0] == "0":
        part, radix, allowed = part[1:], 8, set("01234567")
    else:
        allowed = DIGITS
    if not set(part) <= allowed:
        return None
    return int(part, radix)


def normalize_ipv4_host(host: str) -> Optional[str]:
    """
    Canonical dotted quad for hosts that URL parsers treat as IPv4.

    ``127.1``, ``2130706433`` and ``0x7f.0.0.1`` all mean ``127.0.0.1``.
    Returns None for ordinary domain names and raises ValueError for hosts
    that end in a number but are not a valid address.
    """
    if ":" in host:
        return None
    parts = host.split(".")
    if len(parts) > 1 and parts[-1] == "":
        parts = parts[:-1]
    last = parts[-1]
    if not (last and set(last) <= DIGITS) and _parse_ipv4_number(last) is None:
        return None

    if len(parts) > 4:
        raise ValueError(f"Too many parts in IPv4 host: {host!r}")
    numbers = [_parse_ipv4_number(part) for part in parts]
    if any(n is None for n in numbers):
        raise ValueError(f"Invalid IPv4 host: {host!r}")
    if any(n > 255 for n in numbers[:-1]) or numbers[-1] >= 256 ** (5 - len(numbers)):
        raise ValueError(f"IPv4 host out of range: {host!r}")

    address = numbers[-1]
    for i, n in enumerate(numbers[:-1]):
        address += n * 256 ** (3 - i)
    return str(ipaddress.IPv4Address(address))


def _is_internal_ip_literal(host: str) -> bool:
    try:
        ip = ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


def is_valid_target(url: httpx.URL, strict: Optional[bool] = None) -> bool:
    """Return True when the proxy may fetch ``url``.

    Only the scheme and hostname are inspected. Numeric IPv4 spellings are
    matched in their dotted-quad form. With ``strict`` (defaults to
    ``STRICT_TARGET_CHECK``) IP literals are also checked numerically.
    """
    if url.scheme not in ALLOWED_SCHEMES:
        return False

    host = url.host.lower()
    try:
        host = normalize_ipv4_host(host) or host
    except ValueError:
        return False
    if (
        host in BLOCKED_HOSTS
        or host.endswith(BLOCKED_SUFFIXES)
        or host.startswith(BLOCKED_PREFIXES)
    ):
        return False

    if strict is None:
        strict = config.STRICT_TARGET_CHECK
    if strict and _is_internal_ip_literal(host):
        return False

    return True


def parse_target(raw: str) -> Optional[httpx.URL]:
    """Parse an absolute target URL, or return None when it is not one."""
    try:
        url = httpx.URL(raw)
    except httpx.InvalidURL:
        return None
    if not url.scheme:
        return None
    if url.scheme in ALLOWED_SCHEMES and not url.host:
        return None
    try:
        numeric_host = normalize_ipv4_host(url.host)
    except ValueError:
        return None
    if numeric_host and numeric_host != url.host:
        url = url.copy_with(host=numeric_host)
    return url


def resolve_target(raw: Optional[str]) -> Union[httpx.URL, TargetRejection]:
    """Turn the ``url`` query parameter into a validated target.

    Fails fast: missing, then unparsable, then forbidden. Nothing downstream
    re-checks a URL returned from here.
    """
    if not raw:
        return MISSING_URL

    url = parse_target(raw)
    if url is None:
        return INVALID_URL

    if not is_valid_target(url):
        return FORBIDDEN_TARGET

    return url
