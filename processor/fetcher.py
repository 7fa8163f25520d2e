"""Conditional HTTP fetching for the badge crawler.

Every outbound request the crawler makes (pages and images alike) goes
through one ConditionalFetcher, which:

- Admits requests through a fixed number of worker slots, first come first served
- Streams bodies and stops reading past a byte limit
- Sends If-None-Match when an ETag for the exact URL is cached
- Turns 304 Not Modified replies back into the cached response
- Classifies failures as transient (retryable once) or terminal
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field

import requests
from requests.structures import CaseInsensitiveDict

from env_config import (
    get_crawl_max_concurrency,
    get_crawl_max_response_bytes,
    get_crawl_request_timeout,
    get_crawler_user_agent,
)
from processor.media_policy import (
    REJECTION_REASON_FILE_TOO_LARGE,
    REJECTION_REASON_HTTP_ERROR,
    format_rejection_reason,
)
from storage.caches import CachedResponse, HttpCache

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """A request failed and should not be retried.

    Attributes:
        url: The URL that was requested.
        reason: Canonical failure description.
    """

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{reason} ({url})")
        self.url = url
        self.reason = reason


class TransientFetchError(FetchError):
    """A request failed at the transport level (timeout, connection reset)."""


class FifoGate:
    """Counting gate that admits waiters in arrival order.

    A released slot is handed straight to the oldest waiter, so a caller
    that releases and immediately re-acquires queues behind it.
    """

    def __init__(self, slots: int) -> None:
        self._free = slots
        self._waiters: deque[threading.Event] = deque()
        self._lock = threading.Lock()

    def acquire(self) -> None:
        with self._lock:
            if self._free and not self._waiters:
                self._free -= 1
                return
            ticket = threading.Event()
            self._waiters.append(ticket)
        ticket.wait()

    def release(self) -> None:
        with self._lock:
            if self._waiters:
                self._waiters.popleft().set()
            else:
                self._free += 1

    @property
    def waiting(self) -> int:
        """Number of callers queued for a slot."""
        with self._lock:
            return len(self._waiters)

    def __enter__(self) -> "FifoGate":
        self.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()


@dataclass
class FetchResponse:
    """Result of a successful fetch.

    Attributes:
        url: Final URL after redirects.
        status: HTTP status of the response that produced the body.
        headers: Response headers (case-insensitive).
        content: Response body.
        from_cache: True if the server answered 304 and the body came from cache.
    """

    url: str
    status: int
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    content: bytes = b""
    from_cache: bool = False

    @property
    def content_type(self) -> str:
        """Media type without parameters, lowercased ('' if missing)."""
        raw = self.headers.get("Content-Type", "") or ""
        return raw.split(";")[0].strip().lower()


class ConditionalFetcher:
    """Bounded-concurrency HTTP client with ETag revalidation.

    Attributes:
        http_cache: Cache of the last ETag-bearing response per request URL.
        max_concurrency: Number of requests allowed in flight at once.
        timeout: Per-request timeout in seconds.
        session: Reusable requests Session for connection pooling.
        max_response_bytes: Largest body read before the fetch is abandoned.
        requests_sent: Count of requests that reached the network.
    """

    def __init__(
        self,
        http_cache: HttpCache | None = None,
        max_concurrency: int | None = None,
        timeout: int | None = None,
        user_agent: str | None = None,
        session: requests.Session | None = None,
        max_response_bytes: int | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            http_cache: Response cache (a private in-memory one by default).
            max_concurrency: Worker slot count (default: CRAWL_MAX_CONCURRENCY).
            timeout: Request timeout in seconds (default: CRAWL_REQUEST_TIMEOUT).
            user_agent: User-Agent header (default: CRAWLER_USER_AGENT).
            session: Session to send requests with.
            max_response_bytes: Body size limit (default: CRAWL_MAX_RESPONSE_BYTES).
        """
        self.http_cache = http_cache if http_cache is not None else HttpCache()
        self.max_concurrency = max_concurrency or get_crawl_max_concurrency()
        self.timeout = timeout or get_crawl_request_timeout()
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": user_agent or get_crawler_user_agent()})
        self.max_response_bytes = max_response_bytes or get_crawl_max_response_bytes()
        self.requests_sent = 0
        self._gate = FifoGate(self.max_concurrency)
        self._counter_lock = threading.Lock()

    def fetch(self, url: str) -> FetchResponse:
        """Fetch a URL, revalidating against the cache when possible.

        Args:
            url: Absolute URL to GET.

        Returns:
            FetchResponse. Never carries a 304 status.

        Raises:
            TransientFetchError: On timeouts and connection failures.
            FetchError: On HTTP error statuses, oversized bodies and other
                request failures.
        """
        cached = self.http_cache.get(url)
        headers = {}
        if cached is not None and cached.etag:
            headers["If-None-Match"] = cached.etag

        with self._gate:
            with self._counter_lock:
                self.requests_sent += 1
            try:
                response = self.session.get(
                    url,
                    headers=headers,
                    timeout=self.timeout,
                    allow_redirects=True,
                    stream=True,
                )
                try:
                    content = (
                        self._read_body(url, response)
                        if 200 <= response.status_code < 300
                        else b""
                    )
                finally:
                    response.close()
            except requests.exceptions.Timeout as e:
                raise TransientFetchError(
                    url, format_rejection_reason(REJECTION_REASON_HTTP_ERROR, "timeout")
                ) from e
            except requests.exceptions.ConnectionError as e:
                raise TransientFetchError(
                    url,
                    format_rejection_reason(
                        REJECTION_REASON_HTTP_ERROR, f"connection_error: {type(e).__name__}"
                    ),
                ) from e
            except requests.exceptions.RequestException as e:
                raise FetchError(
                    url,
                    format_rejection_reason(
                        REJECTION_REASON_HTTP_ERROR, f"request_exception: {type(e).__name__}"
                    ),
                ) from e

        if response.status_code == 304:
            if cached is None:
                raise FetchError(
                    url, format_rejection_reason(REJECTION_REASON_HTTP_ERROR, "status_304_uncached")
                )
            logger.debug(f"304 Not Modified, serving cached body: {url}")
            return FetchResponse(
                url=cached.url,
                status=200,
                headers=CaseInsensitiveDict(cached.headers),
                content=cached.content,
                from_cache=True,
            )

        if not 200 <= response.status_code < 300:
            raise FetchError(
                url,
                format_rejection_reason(
                    REJECTION_REASON_HTTP_ERROR, f"status_{response.status_code}"
                ),
            )

        etag = response.headers.get("ETag")
        if etag:
            self.http_cache.set(
                url,
                CachedResponse(
                    url=response.url,
                    etag=etag,
                    headers=dict(response.headers),
                    content=content,
                ),
            )
        else:
            self.http_cache.discard(url)

        return FetchResponse(
            url=response.url,
            status=response.status_code,
            headers=CaseInsensitiveDict(response.headers),
            content=content,
        )

    def _read_body(self, url: str, response: requests.Response) -> bytes:
        """Read a streamed body, giving up once it passes max_response_bytes.

        Raises:
            FetchError: If the declared or actual size is over the limit.
        """
        declared = response.headers.get("Content-Length")
        if declared and declared.isdigit() and int(declared) > self.max_response_bytes:
            raise FetchError(
                url, format_rejection_reason(REJECTION_REASON_FILE_TOO_LARGE, f"{declared} bytes")
            )

        chunks = []
        total = 0
        for chunk in response.iter_content(chunk_size=8192):
            total += len(chunk)
            if total > self.max_response_bytes:
                raise FetchError(
                    url,
                    format_rejection_reason(
                        REJECTION_REASON_FILE_TOO_LARGE,
                        f"over {self.max_response_bytes} bytes",
                    ),
                )
            chunks.append(chunk)
        return b"".join(chunks)

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()
