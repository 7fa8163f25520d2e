"""URL normalization utilities for the badge crawler.

This module provides the URL identities used across the crawler:

- Resolved URLs: hrefs and srcs made absolute against their page
- Normalized URLs: origin + path, used as the visited-set key
- Host keys: the hostname a Host record is filed under

Normalization Rules:
- Lowercase scheme and hostname
- Strip default port (80 for http, 443 for https); keep others
- Strip query string and fragment
- Empty path becomes "/"
- Convert IDN hostnames to punycode
"""

import logging
from urllib.parse import urljoin, urlsplit, urlunsplit

import idna

logger = logging.getLogger(__name__)

FOLLOWABLE_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}


def _encode_hostname(hostname: str) -> str:
    """Lowercase a hostname, strip its trailing dot, and punycode it."""
    hostname = hostname.lower().rstrip(".")
    if not hostname:
        return hostname
    try:
        return idna.encode(hostname, uts46=True).decode("ascii")
    except (idna.IDNAError, UnicodeError) as e:
        logger.debug(f"IDN encoding failed for {hostname!r}: {e}")
        return hostname


def resolve_url(base: str, href: str | None) -> str | None:
    """Resolve an href against a base URL.

    Args:
        base: URL of the page the reference appeared on.
        href: Raw attribute value (may be relative, empty, or malformed).

    Returns:
        Absolute http(s) URL, or None if the reference is missing,
        malformed, or uses another scheme (mailto:, javascript:, data:).
    """
    if href is None:
        return None
    href = href.strip()
    if not href:
        return None

    try:
        absolute = urljoin(base, href)
        parts = urlsplit(absolute)
        # Accessing .port validates it and raises ValueError when out of range
        parts.port
    except ValueError:
        logger.debug(f"Dropping malformed reference {href!r} on {base}")
        return None

    if parts.scheme.lower() not in FOLLOWABLE_SCHEMES or not parts.hostname:
        return None
    return absolute


def normalize_url(url: str) -> str:
    """Reduce a URL to origin + path.

    Normalization is idempotent: normalize_url(normalize_url(u)) == normalize_url(u).

    Args:
        url: Absolute URL.

    Returns:
        Normalized URL string.

    Raises:
        ValueError: If the URL has no scheme or host.

    Examples:
        >>> normalize_url("https://Example.COM:443/a/b?q=1#top")
        'https://example.com/a/b'
        >>> normalize_url("http://example.com")
        'http://example.com/'
    """
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    if not scheme or not parts.hostname:
        raise ValueError(f"Invalid URL: {url!r}")

    host = _encode_hostname(parts.hostname)
    if ":" in host:
        host = f"[{host}]"

    port = parts.port
    if port is not None and port != DEFAULT_PORTS.get(scheme):
        host = f"{host}:{port}"

    return urlunsplit((scheme, host, parts.path or "/", "", ""))


def host_key(url: str | None) -> str | None:
    """Extract the hostname a Host record is keyed by.

    Args:
        url: Absolute URL.

    Returns:
        Lowercase, punycoded hostname without port, or None if the URL
        has no host.

    Examples:
        >>> host_key("https://B.Example/x?y=1")
        'b.example'
    """
    if not url:
        return None
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return None
    if not hostname:
        return None
    return _encode_hostname(hostname) or None
