"""Pytest configuration and fixtures for badge crawler tests.

Provides Redis and HTTP doubles, badge image factories, in-memory
stores, and database fixtures for integration tests.
"""

import os
from dataclasses import dataclass
from typing import Any

import pytest

from crawler.logging_config import CrawlStatistics
from crawler.page_processor import PageProcessor
from crawler.pipelines import BadgePipeline
from processor.fetcher import ConditionalFetcher
from storage.blobs import BlobStore
from storage.button_store import ButtonStore, MemoryRecordBackend
from storage.caches import HttpCache, ImageCache, VisitedUrlSet
from tests.fixtures import FakeSession, MockRedis, make_image

# Skip DB tests if no database URL configured
SKIP_DB_TESTS = not os.getenv("DATABASE_URL")


@pytest.fixture
def mock_redis() -> MockRedis:
    return MockRedis()


@pytest.fixture
def store() -> ButtonStore:
    """Provide an isolated in-memory record store."""
    return ButtonStore(MemoryRecordBackend())


@pytest.fixture
def blob_store(tmp_path) -> BlobStore:
    return BlobStore(tmp_path / "buttons")


@pytest.fixture
def badge_png() -> bytes:
    """An 88x31 PNG badge."""
    return make_image(88, 31, color="blue")


@dataclass
class CrawlHarness:
    """Components of one crawl wired around a FakeSession."""

    session: FakeSession
    store: ButtonStore
    blob_store: BlobStore
    visited: VisitedUrlSet
    image_cache: ImageCache
    http_cache: HttpCache
    fetcher: ConditionalFetcher
    pipeline: BadgePipeline
    processor: PageProcessor
    stats: CrawlStatistics


@pytest.fixture
def make_harness(tmp_path):
    """Factory building a full in-memory crawl stack over canned routes."""

    def _make(routes: dict[str, Any], max_depth: int = 3, **caches: Any) -> CrawlHarness:
        session = FakeSession(routes)
        store = caches.get("store") or ButtonStore(MemoryRecordBackend())
        blob_store = BlobStore(tmp_path / "buttons")
        visited = caches["visited"] if "visited" in caches else VisitedUrlSet()
        image_cache = caches["image_cache"] if "image_cache" in caches else ImageCache()
        http_cache = caches["http_cache"] if "http_cache" in caches else HttpCache()
        stats = CrawlStatistics()
        fetcher = ConditionalFetcher(
            http_cache=http_cache,
            max_concurrency=4,
            timeout=5,
            user_agent="BadgeCrawlerTest/1.0",
            session=session,
        )
        pipeline = BadgePipeline(store, fetcher, image_cache, blob_store, stats=stats)
        processor = PageProcessor(store, fetcher, pipeline, visited, max_depth, stats=stats)
        return CrawlHarness(
            session=session,
            store=store,
            blob_store=blob_store,
            visited=visited,
            image_cache=image_cache,
            http_cache=http_cache,
            fetcher=fetcher,
            pipeline=pipeline,
            processor=processor,
            stats=stats,
        )

    return _make


@pytest.fixture
def db_cursor():
    """Provide a database cursor for integration tests.

    Truncates the record tables so every test starts empty. Data is
    committed so the store (which uses pooled connections) can see it.

    Yields:
        Database cursor object
    """
    if SKIP_DB_TESTS:
        pytest.skip("DATABASE_URL not set, skipping DB test")

    from storage.db import init_connection_pool

    pool = init_connection_pool(min_connections=2, max_connections=20)
    conn = pool.getconn()
    cursor = None
    try:
        conn.autocommit = False
        cursor = conn.cursor()
        cursor.execute("TRUNCATE TABLE buttons, hosts")
        conn.commit()

        yield cursor

        conn.rollback()
    finally:
        if cursor:
            cursor.close()
        conn.autocommit = True
        pool.putconn(conn)

