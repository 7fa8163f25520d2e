"""Redis key helpers with optional namespace support.

Centralizes key naming so the crawler, caches, and CLI stay aligned
across environments and deploys.
"""

from env_config import get_queue_namespace


def _with_namespace(key: str) -> str:
    """Prefix a key with QUEUE_NAMESPACE when configured."""
    namespace = get_queue_namespace()
    if not namespace:
        return key
    return f"{namespace}:{key}"


def visited_urls_key(prefix: str = "badges") -> str:
    """Return key of the set of normalized URLs already crawled."""
    return _with_namespace(f"{prefix}:visited_urls")


def image_cache_key(prefix: str = "badges") -> str:
    """Return key of the hash mapping image URL -> classification."""
    return _with_namespace(f"{prefix}:image_cache")


def http_cache_key(prefix: str = "badges") -> str:
    """Return key of the hash mapping request URL -> cached response."""
    return _with_namespace(f"{prefix}:http_cache")
