"""Badge classification pipeline.

Decides whether an <img> is an 88x31 badge, deduplicates badges by the
SHA-256 of their bytes, and folds every sighting into the Button and Host
records. Image URLs are classified at most once per cache lifetime: a
rejected URL is never fetched again, and a known badge URL is merged
without downloading it again.
"""

import logging
import threading
import time
from dataclasses import dataclass, field

from crawler.logging_config import CrawlStatistics
from processor.fetcher import ConditionalFetcher, FetchError
from processor.fingerprint import ImageInfo, compute_sha256, measure_image
from processor.media_policy import (
    REJECTION_REASON_HTTP_ERROR,
    REJECTION_REASON_INVALID_IMAGE_PAYLOAD,
    REJECTION_REASON_WRONG_DIMENSIONS,
    REJECTION_REASONS,
    format_rejection_reason,
    is_button_size,
)
from processor.url_normalization import host_key, resolve_url
from storage.blobs import BlobStore
from storage.button_store import ButtonStore
from storage.caches import (
    STATUS_BADGE,
    STATUS_NOT_BADGE,
    ImageCache,
    ImageClassification,
)
from storage.records import Button, Host

logger = logging.getLogger(__name__)


@dataclass
class ImageOutcome:
    """Result of processing one image element.

    Attributes:
        found_button: Whether the image is a badge.
        links: Link targets contributed by the badge (its href, if any).
        sha256_hash: Content hash of the badge.
    """

    found_button: bool = False
    links: list[str] = field(default_factory=list)
    sha256_hash: str | None = None


class BadgePipeline:
    """Classifies images and persists badge sightings.

    Attributes:
        store: Button/host record store.
        fetcher: Shared conditional fetcher.
        image_cache: Image URL -> classification cache.
        blob_store: Badge byte storage.
        stats: Crawl statistics collector.
        rejection_stats: Count of rejected images per reason.
    """

    def __init__(
        self,
        store: ButtonStore,
        fetcher: ConditionalFetcher,
        image_cache: ImageCache,
        blob_store: BlobStore,
        stats: CrawlStatistics | None = None,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.image_cache = image_cache
        self.blob_store = blob_store
        self.stats = stats or CrawlStatistics()
        self.rejection_stats: dict[str, int] = {reason: 0 for reason in REJECTION_REASONS}
        self._rejection_lock = threading.Lock()

    def process_image(
        self,
        src: str | None,
        page_url: str,
        href: str | None = None,
        alt: str | None = None,
        title: str | None = None,
    ) -> ImageOutcome:
        """Classify one image and record it if it is a badge.

        Args:
            src: Raw src attribute.
            page_url: URL of the page the image was found on.
            href: Resolved link target of the enclosing anchor, if any.
            alt: alt attribute text.
            title: title attribute text.

        Returns:
            ImageOutcome describing whether a badge was found.

        Raises:
            StoreError: If a record or blob could not be written.
        """
        self.stats.record_image_seen()
        image_url = resolve_url(page_url, src)
        if image_url is None:
            return ImageOutcome()

        alt = alt.strip() if alt else None
        title = title.strip() if title else None

        cached = self.image_cache.get(image_url)
        if cached is not None and cached.is_rejected:
            self.stats.record_cache_hit()
            logger.debug(f"[{page_url}] Skipping known non-badge {image_url} ({cached.reason})")
            return ImageOutcome()

        if cached is not None and cached.is_badge:
            sha256_hash = cached.sha256_hash
            if self._merge_known_badge(sha256_hash, image_url, page_url, href, alt, title):
                self.stats.record_cache_hit()
                self.stats.record_badge(created=False)
                self._attach_to_host(sha256_hash, href or page_url)
                return self._badge_outcome(sha256_hash, href)
            logger.warning(
                f"[{page_url}] Cached badge {sha256_hash} for {image_url} missing from store, "
                "fetching again"
            )

        try:
            response = self.fetcher.fetch(image_url)
        except FetchError as e:
            self._count_rejection(REJECTION_REASON_HTTP_ERROR)
            self.stats.record_image_failed(f"{image_url}: {e.reason}")
            logger.warning(f"[{page_url}] Failed to fetch image {image_url}: {e.reason}")
            return ImageOutcome()

        content = response.content
        self.stats.record_image_fetched(len(content))

        info = measure_image(content)
        if info is None:
            self._reject(
                image_url, REJECTION_REASON_INVALID_IMAGE_PAYLOAD, "cannot parse dimensions"
            )
            return ImageOutcome()
        if not is_button_size(info.width, info.height):
            self._reject(
                image_url, REJECTION_REASON_WRONG_DIMENSIONS, f"{info.width}x{info.height}", info
            )
            return ImageOutcome()

        sha256_hash = compute_sha256(content)
        self.image_cache.setdefault(
            image_url,
            ImageClassification(
                status=STATUS_BADGE,
                sha256_hash=sha256_hash,
                width=info.width,
                height=info.height,
                format=info.format,
            ),
        )

        created = self._store_badge(
            sha256_hash, info, content, image_url, page_url, href, alt, title
        )
        self.stats.record_badge(created=created)
        self._attach_to_host(sha256_hash, href or page_url)
        return self._badge_outcome(sha256_hash, href)

    @staticmethod
    def _badge_outcome(sha256_hash: str, href: str | None) -> ImageOutcome:
        return ImageOutcome(
            found_button=True, links=[href] if href else [], sha256_hash=sha256_hash
        )

    def _count_rejection(self, reason_key: str) -> None:
        with self._rejection_lock:
            self.rejection_stats[reason_key] = self.rejection_stats.get(reason_key, 0) + 1

    def _reject(
        self,
        image_url: str,
        reason_key: str,
        details: str,
        info: ImageInfo | None = None,
    ) -> None:
        """Record a permanent negative classification."""
        reason = format_rejection_reason(reason_key, details)
        self.image_cache.setdefault(
            image_url,
            ImageClassification(
                status=STATUS_NOT_BADGE,
                width=info.width if info else None,
                height=info.height if info else None,
                format=info.format if info else None,
                reason=reason,
            ),
        )
        self._count_rejection(reason_key)
        self.stats.record_image_rejected()
        logger.debug(f"Rejected image {image_url}: {reason}")

    def _merge_known_badge(
        self,
        sha256_hash: str,
        image_url: str,
        page_url: str,
        href: str | None,
        alt: str | None,
        title: str | None,
    ) -> bool:
        """Merge a sighting of an already-hashed image without fetching it.

        Returns:
            False if the badge record no longer exists.
        """
        exists = False

        def merge(button: Button | None) -> Button | None:
            nonlocal exists
            if button is None:
                return None
            exists = True
            if not button.merge_observation(image_url, page_url, href=href, alt=alt, title=title):
                return None
            return button

        self.store.update_button(sha256_hash, merge)
        if exists:
            logger.debug(f"[{page_url}] Known badge {image_url} merged into {sha256_hash}")
        return exists

    def _store_badge(
        self,
        sha256_hash: str,
        info: ImageInfo,
        content: bytes,
        image_url: str,
        page_url: str,
        href: str | None,
        alt: str | None,
        title: str | None,
    ) -> bool:
        """Create or merge the badge record for freshly fetched bytes.

        Returns:
            True if the badge was new.
        """
        created = False

        def merge(button: Button | None) -> Button | None:
            nonlocal created
            if button is not None:
                if not button.merge_observation(
                    image_url, page_url, href=href, alt=alt, title=title
                ):
                    return None
                return button

            self.blob_store.write(sha256_hash, content)
            created = True
            button = Button(timestamp=int(time.time() * 1000), type=info.format)
            button.merge_observation(image_url, page_url, href=href, alt=alt, title=title)
            return button

        self.store.update_button(sha256_hash, merge)
        if created:
            logger.info(f"[{page_url}] Badge found and saved: {image_url} ({sha256_hash})")
        else:
            logger.info(f"[{page_url}] Duplicate badge {image_url}, merged into {sha256_hash}")
        return created

    def _attach_to_host(self, sha256_hash: str, target_url: str) -> None:
        """Add the badge to the host its link points at."""
        hostname = host_key(target_url)
        if hostname is None:
            return

        def merge(host: Host | None) -> Host | None:
            if host is None:
                return Host(host=hostname, buttons=[sha256_hash])
            if not host.add_button(sha256_hash):
                return None
            return host

        self.store.update_host(hostname, merge)
