"""Breadth-first frontier scheduler for the badge crawler.

Crawls level by level: every URL of a depth level is processed on a thread
pool, the level is awaited as a whole, and the surviving candidates form
the next level. URLs are deduplicated by normalized form against the
persistent visited set and against everything already scheduled this run.
"""

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor

from crawler.items import FrontierItem
from crawler.logging_config import CrawlStatistics
from crawler.page_processor import PageProcessor
from crawler.pipelines import BadgePipeline
from env_config import (
    get_buttons_dir,
    get_cache_backend,
    get_crawl_max_concurrency,
    get_crawl_max_depth,
    get_crawl_page_workers,
    get_store_backend,
)
from processor.fetcher import ConditionalFetcher
from processor.url_normalization import normalize_url
from storage.blobs import BlobStore
from storage.button_store import ButtonStore, create_store
from storage.caches import VisitedUrlSet, create_caches

__all__ = ["FrontierItem", "FrontierScheduler", "build_scheduler"]

logger = logging.getLogger(__name__)


class FrontierScheduler:
    """Depth-limited breadth-first crawl driver.

    Attributes:
        processor: Page processor run for every frontier item.
        page_workers: Number of page tasks run at once within a level.
        stats: Crawl statistics collector.
    """

    def __init__(
        self,
        processor: PageProcessor,
        page_workers: int | None = None,
        stats: CrawlStatistics | None = None,
    ) -> None:
        self.processor = processor
        self.page_workers = page_workers or get_crawl_page_workers()
        self.stats = stats or processor.stats

    @property
    def visited(self) -> VisitedUrlSet:
        return self.processor.visited

    def crawl(self, seed_urls: Iterable[str], max_depth: int | None = None) -> None:
        """Crawl from the seeds until the frontier empties or the depth limit passes.

        Args:
            seed_urls: Absolute URLs forming depth level 0.
            max_depth: Deepest level fetched (default: the processor's limit).
                With 0 only the seeds are fetched.

        Raises:
            StoreError: If a record could not be written. Pages already
                dispatched finish; nothing further is scheduled.
        """
        if max_depth is not None:
            self.processor.max_depth = max_depth
        max_depth = self.processor.max_depth

        scheduled: set[str] = set()
        pending = self._admit((FrontierItem(url=url) for url in seed_urls), scheduled)
        logger.info(f"Starting crawl: {len(pending)} seeds, max depth {max_depth}")

        depth = 0
        try:
            while pending and depth <= max_depth:
                logger.info(f"Depth {depth}: crawling {len(pending)} URLs")
                next_level: list[FrontierItem] = []
                for candidates in self._run_level(pending):
                    if candidates:
                        next_level.extend(candidates)

                pending = self._admit(next_level, scheduled)
                logger.info(
                    f"Depth {depth} done: {len(next_level)} candidates, "
                    f"{len(pending)} new URLs queued"
                )
                depth += 1
        finally:
            self.stats.log_summary(logger)

    def _admit(
        self, items: Iterable[FrontierItem], scheduled: set[str]
    ) -> list[FrontierItem]:
        """Drop malformed, visited, and already scheduled URLs."""
        admitted = []
        for item in items:
            try:
                normalized = normalize_url(item.url)
            except ValueError:
                logger.debug(f"Dropping malformed URL {item.url!r}")
                continue
            if normalized in scheduled or normalized in self.visited:
                continue
            scheduled.add(normalized)
            admitted.append(item)
        return admitted

    def _run_level(self, items: list[FrontierItem]) -> list[list[FrontierItem] | None]:
        """Run one page task per item and wait for all of them."""
        workers = max(1, min(self.page_workers, len(items)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="page") as executor:
            futures = [executor.submit(self.processor.fetch_page, item) for item in items]
            try:
                return [future.result() for future in futures]
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

    def close(self) -> None:
        """Release the fetcher's HTTP session."""
        self.processor.fetcher.close()


def build_scheduler(
    max_depth: int | None = None,
    max_concurrency: int | None = None,
    page_workers: int | None = None,
    store: ButtonStore | None = None,
    stats: CrawlStatistics | None = None,
) -> FrontierScheduler:
    """Wire a scheduler from environment configuration.

    Args:
        max_depth: Depth limit (default: CRAWL_MAX_DEPTH).
        max_concurrency: Outbound request slots (default: CRAWL_MAX_CONCURRENCY).
        page_workers: Page tasks per level (default: CRAWL_PAGE_WORKERS).
        store: Record store (default: built from STORE_BACKEND).
        stats: Statistics collector.

    Returns:
        A ready FrontierScheduler.
    """
    stats = stats or CrawlStatistics()
    store = store or create_store(get_store_backend(), page_workers=page_workers)
    visited, image_cache, http_cache = create_caches(get_cache_backend())

    fetcher = ConditionalFetcher(
        http_cache=http_cache,
        max_concurrency=max_concurrency or get_crawl_max_concurrency(),
    )
    pipeline = BadgePipeline(
        store=store,
        fetcher=fetcher,
        image_cache=image_cache,
        blob_store=BlobStore(get_buttons_dir()),
        stats=stats,
    )
    processor = PageProcessor(
        store=store,
        fetcher=fetcher,
        pipeline=pipeline,
        visited=visited,
        max_depth=max_depth if max_depth is not None else get_crawl_max_depth(),
        stats=stats,
    )
    return FrontierScheduler(processor, page_workers=page_workers, stats=stats)
