"""Process-durable dedup caches for the badge crawler.

Provides three caches shared by every page task of a crawl:

- VisitedUrlSet: normalized URLs already crawled
- ImageCache: image URL -> last known classification (+ content hash)
- HttpCache: request URL -> last ETag, headers, and body

Each cache keeps a lock-protected in-process mirror and, when a Redis
client is supplied, writes every mutation through to Redis before the
call returns. ``load()`` repopulates the mirror on process start.
"""

import base64
import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from typing import Any

import redis

from crawler.redis_keys import http_cache_key, image_cache_key, visited_urls_key
from env_config import get_redis_url
from storage.button_store import StoreError

logger = logging.getLogger(__name__)

STATUS_BADGE = "badge"
STATUS_NOT_BADGE = "not_badge"
STATUS_UNKNOWN = "unknown"


def _decode(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


def check_redis_available(url: str | None = None) -> bool:
    """Check if Redis is available at the given URL.

    Args:
        url: Redis URL (defaults to REDIS_URL env var).

    Returns:
        True if Redis is reachable, False otherwise.
    """
    url = url or get_redis_url()
    try:
        client = redis.from_url(url, socket_connect_timeout=2)
        client.ping()
        return True
    except redis.ConnectionError:
        logger.warning(f"Redis not available at {url}")
        return False
    except Exception as e:
        logger.warning(f"Redis check failed: {e}")
        return False


class _WriteThroughCache:
    """Shared plumbing: optional Redis client, key, and mirror lock."""

    def __init__(self, redis_client: Any | None, key: str) -> None:
        self.redis = redis_client
        self.key = key
        self._lock = threading.Lock()

    def _write(self, command: str, *args: Any) -> None:
        if self.redis is None:
            return
        try:
            getattr(self.redis, command)(self.key, *args)
        except redis.RedisError as e:
            logger.error(f"Cache write to {self.key} failed: {e}")
            raise StoreError(f"Cache write to {self.key} failed: {e}") from e


class VisitedUrlSet(_WriteThroughCache):
    """Set of normalized URLs crawled so far."""

    def __init__(self, redis_client: Any | None = None, key: str | None = None) -> None:
        super().__init__(redis_client, key or visited_urls_key())
        self._urls: set[str] = set()

    def load(self) -> int:
        """Reload the set from Redis.

        Returns:
            Number of URLs loaded.
        """
        if self.redis is None:
            return len(self._urls)
        members = {_decode(m) for m in self.redis.smembers(self.key)}
        with self._lock:
            self._urls = members
        logger.info(f"Loaded {len(members)} visited URLs from {self.key}")
        return len(members)

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._urls

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)

    def add(self, url: str) -> bool:
        """Mark a URL visited.

        Returns:
            True if the URL was not visited before, False otherwise.
        """
        with self._lock:
            if url in self._urls:
                return False
            self._write("sadd", url)
            self._urls.add(url)
            return True


@dataclass
class ImageClassification:
    """What the crawler concluded about one image URL.

    Attributes:
        status: STATUS_BADGE, STATUS_NOT_BADGE, or STATUS_UNKNOWN.
        sha256_hash: Content hash (badges only).
        width: Measured width, if measurable.
        height: Measured height, if measurable.
        format: Container format, if measurable.
        reason: Rejection reason for negative classifications.
    """

    status: str = STATUS_UNKNOWN
    sha256_hash: str | None = None
    width: int | None = None
    height: int | None = None
    format: str | None = None
    reason: str | None = None

    @property
    def is_badge(self) -> bool:
        return self.status == STATUS_BADGE and bool(self.sha256_hash)

    @property
    def is_rejected(self) -> bool:
        return self.status == STATUS_NOT_BADGE

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str | bytes) -> "ImageClassification":
        data = json.loads(raw)
        return cls(
            status=data.get("status", STATUS_UNKNOWN),
            sha256_hash=data.get("sha256_hash"),
            width=data.get("width"),
            height=data.get("height"),
            format=data.get("format"),
            reason=data.get("reason"),
        )


class ImageCache(_WriteThroughCache):
    """Map from resolved image URL to its classification."""

    def __init__(self, redis_client: Any | None = None, key: str | None = None) -> None:
        super().__init__(redis_client, key or image_cache_key())
        self._entries: dict[str, ImageClassification] = {}

    def load(self) -> int:
        """Reload classifications from Redis, skipping unreadable entries.

        Returns:
            Number of classifications loaded.
        """
        if self.redis is None:
            return len(self._entries)
        entries: dict[str, ImageClassification] = {}
        for src, raw in self.redis.hgetall(self.key).items():
            try:
                entries[_decode(src)] = ImageClassification.from_json(raw)
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping unreadable image cache entry {src!r}: {e}")
        with self._lock:
            self._entries = entries
        logger.info(f"Loaded {len(entries)} image classifications from {self.key}")
        return len(entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, src: str) -> ImageClassification | None:
        with self._lock:
            return self._entries.get(src)

    def set(self, src: str, classification: ImageClassification) -> None:
        with self._lock:
            self._write("hset", src, classification.to_json())
            self._entries[src] = classification

    def setdefault(self, src: str, classification: ImageClassification) -> ImageClassification:
        """Store a classification unless a definitive one already exists.

        Entries with STATUS_UNKNOWN are treated as absent and replaced.

        Returns:
            The classification now on record for the URL.
        """
        with self._lock:
            existing = self._entries.get(src)
            if existing is not None and existing.status != STATUS_UNKNOWN:
                return existing
            self._write("hset", src, classification.to_json())
            self._entries[src] = classification
            return classification


@dataclass
class CachedResponse:
    """A stored HTTP response used to answer 304 Not Modified replies.

    Attributes:
        url: Final URL after redirects.
        etag: ETag header of the stored response.
        headers: Response headers.
        content: Response body.
    """

    url: str
    etag: str
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""

    def to_json(self) -> str:
        return json.dumps(
            {
                "url": self.url,
                "etag": self.etag,
                "headers": self.headers,
                "body": base64.b64encode(self.content).decode("ascii"),
            }
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> "CachedResponse":
        data = json.loads(raw)
        return cls(
            url=data["url"],
            etag=data["etag"],
            headers=dict(data.get("headers", {})),
            content=base64.b64decode(data.get("body", "")),
        )


class HttpCache(_WriteThroughCache):
    """Map from exact request URL to the last cacheable response."""

    def __init__(self, redis_client: Any | None = None, key: str | None = None) -> None:
        super().__init__(redis_client, key or http_cache_key())
        self._entries: dict[str, CachedResponse] = {}

    def load(self) -> int:
        """Reload cached responses from Redis, skipping unreadable entries.

        Returns:
            Number of responses loaded.
        """
        if self.redis is None:
            return len(self._entries)
        entries: dict[str, CachedResponse] = {}
        for url, raw in self.redis.hgetall(self.key).items():
            try:
                entries[_decode(url)] = CachedResponse.from_json(raw)
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping unreadable HTTP cache entry {url!r}: {e}")
        with self._lock:
            self._entries = entries
        logger.info(f"Loaded {len(entries)} cached responses from {self.key}")
        return len(entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, url: str) -> CachedResponse | None:
        with self._lock:
            return self._entries.get(url)

    def set(self, url: str, entry: CachedResponse) -> None:
        with self._lock:
            self._write("hset", url, entry.to_json())
            self._entries[url] = entry

    def discard(self, url: str) -> None:
        with self._lock:
            if url not in self._entries:
                return
            self._write("hdel", url)
            del self._entries[url]


def create_caches(
    backend_name: str, redis_url: str | None = None
) -> tuple[VisitedUrlSet, ImageCache, HttpCache]:
    """Build and load the three caches for a configured backend.

    Args:
        backend_name: "redis" or "memory".
        redis_url: Redis URL (defaults to REDIS_URL env var).

    Returns:
        Tuple of (visited URLs, image cache, HTTP cache), already loaded.
    """
    client = None
    if backend_name == "redis":
        client = redis.from_url(redis_url or get_redis_url())
    elif backend_name != "memory":
        raise ValueError(f"Unknown cache backend: {backend_name!r}")

    caches = (VisitedUrlSet(client), ImageCache(client), HttpCache(client))
    for cache in caches:
        cache.load()
    return caches
