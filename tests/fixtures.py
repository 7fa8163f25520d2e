"""Shared test data and doubles for the badge crawler tests.

Badge images are rendered with Pillow; HTTP and Redis are replaced by
small in-process doubles so crawl scenarios run without a network.
"""

import io
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

import redis
from PIL import Image
from requests.structures import CaseInsensitiveDict

SAMPLE_HTML = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="keywords" content="retro, webring , 88x31">
    <meta name="description" content="A page full of buttons">
    <title> Button Wall </title>
</head>
<body>
    <h1>Friends</h1>

    <!-- Badge linking off-site -->
    <a href="https://friend.example/"><img src="/img/friend.png" alt="Friend" title="my friend"></a>

    <!-- Same-site navigation -->
    <a href="/about">About</a>
    <a href="links.html#top">Links</a>

    <!-- Plain external link, no badge -->
    <a href="https://stranger.example/page">Stranger</a>

    <!-- Not followable -->
    <a href="mailto:me@example.com">Mail</a>
    <a href="javascript:void(0)">Script</a>
    <a>No href</a>

    <!-- Loose images -->
    <img src="/img/banner.png" alt="Banner">
    <img alt="No source">
</body>
</html>
"""


def make_image(
    width: int = 88, height: int = 31, color: str = "red", image_format: str = "PNG"
) -> bytes:
    """Render a solid-colour image to bytes."""
    img = Image.new("RGB", (width, height), color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=image_format)
    return buffer.getvalue()


def html_page(body: str, title: str = "Test Page", head: str = "") -> bytes:
    """Wrap body markup in a minimal HTML document."""
    return (
        f"<!DOCTYPE html><html><head><title>{title}</title>{head}</head>"
        f"<body>{body}</body></html>"
    ).encode()


class MockRedis:
    """Mock Redis client for testing."""

    def __init__(self) -> None:
        self.sets: dict[str, set] = {}
        self.hashes: dict[str, dict] = {}

    def ping(self) -> bool:
        return True

    def sadd(self, key: str, *values: Any) -> int:
        members = self.sets.setdefault(key, set())
        added = 0
        for value in values:
            encoded = value.encode() if isinstance(value, str) else value
            if encoded not in members:
                members.add(encoded)
                added += 1
        return added

    def smembers(self, key: str) -> set:
        return set(self.sets.get(key, set()))

    def hset(self, key: str, field: str, value: Any) -> int:
        entries = self.hashes.setdefault(key, {})
        encoded_field = field.encode()
        is_new = encoded_field not in entries
        entries[encoded_field] = value.encode() if isinstance(value, str) else value
        return int(is_new)

    def hget(self, key: str, field: str) -> bytes | None:
        return self.hashes.get(key, {}).get(field.encode())

    def hgetall(self, key: str) -> dict:
        return dict(self.hashes.get(key, {}))

    def hdel(self, key: str, *fields: str) -> int:
        entries = self.hashes.get(key, {})
        removed = 0
        for f in fields:
            if entries.pop(f.encode(), None) is not None:
                removed += 1
        return removed


class FailingRedis(MockRedis):
    """Redis double whose writes always fail."""

    def sadd(self, key: str, *values: Any) -> int:
        raise redis.ConnectionError("connection refused")

    def hset(self, key: str, field: str, value: Any) -> int:
        raise redis.ConnectionError("connection refused")


@dataclass
class FakeResponse:
    """The slice of requests.Response the fetcher reads."""

    url: str
    status_code: int = 200
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    content: bytes = b""
    closed: bool = False

    def iter_content(self, chunk_size: int = 1) -> Iterator[bytes]:
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start : start + chunk_size]

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """requests.Session double serving canned routes.

    A route maps an exact URL to (status, headers, body), to an exception
    instance, or to a list of those served in order (the last one repeats).
    `redirects` maps a URL to the URL whose route answers it, the way
    requests reports the final URL after following redirects.
    """

    def __init__(self, routes: dict[str, Any] | None = None) -> None:
        self.routes: dict[str, Any] = dict(routes or {})
        self.redirects: dict[str, str] = {}
        self.headers: dict[str, str] = {}
        self.calls: list[tuple[str, dict[str, str]]] = []
        self.closed = False

    def get(self, url: str, headers: dict | None = None, **kwargs: Any) -> FakeResponse:
        self.calls.append((url, dict(headers or {})))
        url = self.redirects.get(url, url)
        route = self.routes.get(url)
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if route is None:
            route = (404, {}, b"")
        if isinstance(route, Exception):
            raise route
        status, response_headers, body = route
        return FakeResponse(
            url=url,
            status_code=status,
            headers=CaseInsensitiveDict(response_headers),
            content=body,
        )

    def close(self) -> None:
        self.closed = True

    def requested(self, url: str) -> int:
        return sum(1 for called, _ in self.calls if called == url)


def html_route(body: bytes, etag: str | None = None) -> tuple[int, dict[str, str], bytes]:
    headers = {"Content-Type": "text/html; charset=utf-8"}
    if etag:
        headers["ETag"] = etag
    return (200, headers, body)


def image_route(body: bytes, etag: str | None = None) -> tuple[int, dict[str, str], bytes]:
    headers = {"Content-Type": "image/png"}
    if etag:
        headers["ETag"] = etag
    return (200, headers, body)

