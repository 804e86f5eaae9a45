"""IPv4 address model and client address normalization.

Addresses are handled as unsigned 32-bit integers. Only IPv4 is matched:
IPv6 loopback and IPv4-mapped literals are rewritten to their IPv4 form,
any other literal containing a colon passes through untouched and never
matches a rule.

Example:
    >>> parse_ipv4("192.168.1.10")
    3232235786
    >>> to_ipv4_if_possible("::ffff:10.0.0.5")
    '10.0.0.5'
    >>> to_ipv4_if_possible("2001:db8::1") is None
    True
"""

from __future__ import annotations

import re
from collections.abc import Mapping

IPV4_LOOPBACK = "127.0.0.1"

FORWARDED_FOR_HEADER = "X-Forwarded-For"
REAL_IP_HEADER = "X-Real-IP"

OCTET_PATTERN = r"(?:25[0-5]|2[0-4]\d|[01]?\d?\d)"
IPV4_PATTERN = rf"{OCTET_PATTERN}(?:\.{OCTET_PATTERN}){{3}}"

_IPV4_RE = re.compile(IPV4_PATTERN, re.ASCII)
_IPV6_LOOPBACK_RE = re.compile(r"::1|(?:0{1,4}:){7}0{0,3}1", re.ASCII)
_IPV6_MAPPED_V4_RE = re.compile(r"::ffff:(\d+\.\d+\.\d+\.\d+)", re.ASCII | re.IGNORECASE)


def is_ipv4(address: str) -> bool:
    """Return True if address is a dotted quad with every octet in 0-255."""
    return _IPV4_RE.fullmatch(address) is not None


def parse_ipv4(address: str) -> int:
    """Convert a dotted-quad IPv4 address to an unsigned 32-bit integer.

    Raises:
        ValueError: If the text is not exactly four octets in 0-255.
    """
    if not is_ipv4(address):
        raise ValueError(f"Not a dotted-quad IPv4 address: {address!r}")
    a, b, c, d = (int(octet) for octet in address.split("."))
    return (a << 24) | (b << 16) | (c << 8) | d


def format_ipv4(value: int) -> str:
    """Convert an unsigned 32-bit integer back to dotted-quad text."""
    if not 0 <= value <= 0xFFFFFFFF:
        raise ValueError(f"IPv4 value out of range: {value}")
    return ".".join(str((value >> shift) & 0xFF) for shift in (24, 16, 8, 0))


def to_ipv4_if_possible(address: str | None) -> str | None:
    """Rewrite an address to IPv4 text where that is possible.

    - IPv4 text is returned trimmed.
    - ``::1`` and its expanded zero forms become ``127.0.0.1``.
    - ``::ffff:a.b.c.d`` becomes ``a.b.c.d``.
    - Any other IPv6 literal, blank or missing input gives None.
    """
    if address is None:
        return None
    text = address.strip()
    if not text:
        return None
    if ":" not in text:
        return text
    if _IPV6_LOOPBACK_RE.fullmatch(text):
        return IPV4_LOOPBACK
    mapped = _IPV6_MAPPED_V4_RE.fullmatch(text)
    if mapped:
        return mapped.group(1)
    return None


def normalize_address(address: str | None) -> str:
    """Normalize a candidate for matching, keeping unsupported literals as-is."""
    if address is None:
        return ""
    v4 = to_ipv4_if_possible(address)
    return v4 if v4 is not None else address.strip()


def client_ipv4(
    remote: str | None,
    headers: Mapping[str, str] | None = None,
    trust_proxy_headers: bool = False,
) -> str:
    """Extract the client address of a request.

    Args:
        remote: Peer address of the connection.
        headers: Request headers, consulted only when trust_proxy_headers is set.
        trust_proxy_headers: Prefer the first X-Forwarded-For entry, then X-Real-IP.

    Returns:
        The address normalized to IPv4 where possible, otherwise unchanged.
    """
    address = remote or ""
    if trust_proxy_headers and headers is not None:
        forwarded = headers.get(FORWARDED_FOR_HEADER) or ""
        real_ip = headers.get(REAL_IP_HEADER) or ""
        if forwarded.strip():
            # "client, proxy1, proxy2"
            address = forwarded.split(",")[0].strip()
        elif real_ip.strip():
            address = real_ip.strip()
    return normalize_address(address)
