"""Logging configuration for the badge crawler.

Provides structured logging with JSON formatting support for production
and human-readable formatting for development, plus the crawl statistics
collector reported at the end of every run.
"""

import json
import logging
import sys
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any

# Attributes every LogRecord carries; anything else was passed via extra=
_STANDARD_RECORD_FIELDS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "message",
        "taskName",
    }
)


class StructuredLogFormatter(logging.Formatter):
    """Structured JSON formatter for production logging.

    Outputs log records as JSON objects with consistent fields:
    - timestamp: ISO format timestamp
    - level: Log level name
    - logger: Logger name
    - message: Log message
    - any extra fields passed to the logging call
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_RECORD_FIELDS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class CrawlStatistics:
    """Collects and reports crawl statistics.

    Page tasks run on several threads, so every counter update goes
    through one lock.

    Attributes:
        start_time: When statistics collection started.
        pages_crawled: Pages fetched and parsed.
        pages_failed: Pages that failed to fetch or parse.
        pages_retried: Pages fetched a second time after a transport error.
        images_seen: Image elements considered.
        images_fetched: Image bodies downloaded.
        images_rejected: Images classified as not-a-badge.
        images_failed: Image downloads that failed.
        cache_hits: Images resolved from the classification cache.
        badges_created: New badges stored.
        badges_merged: Sightings merged into existing badges.
        total_bytes: Bytes received for pages and images.
        error_count: Failures recorded over the whole run.
        errors: The most recent error messages (at most max_errors).
    """

    def __init__(self, max_errors: int = 100) -> None:
        self.start_time: datetime = datetime.now(timezone.utc)
        self.pages_crawled: int = 0
        self.pages_failed: int = 0
        self.pages_retried: int = 0
        self.images_seen: int = 0
        self.images_fetched: int = 0
        self.images_rejected: int = 0
        self.images_failed: int = 0
        self.cache_hits: int = 0
        self.badges_created: int = 0
        self.badges_merged: int = 0
        self.total_bytes: int = 0
        self.error_count: int = 0
        self.errors: deque[str] = deque(maxlen=max_errors)
        self._lock = threading.Lock()

    def record_page_crawled(self, url: str, size: int) -> None:
        with self._lock:
            self.pages_crawled += 1
            self.total_bytes += size

    def record_page_failed(self, url: str, error: str) -> None:
        with self._lock:
            self.pages_failed += 1
            self.error_count += 1
            self.errors.append(f"Page failed {url}: {error}")

    def record_page_retried(self) -> None:
        with self._lock:
            self.pages_retried += 1

    def record_image_seen(self) -> None:
        with self._lock:
            self.images_seen += 1

    def record_image_fetched(self, size: int) -> None:
        with self._lock:
            self.images_fetched += 1
            self.total_bytes += size

    def record_image_rejected(self) -> None:
        with self._lock:
            self.images_rejected += 1

    def record_image_failed(self, error: str) -> None:
        with self._lock:
            self.images_failed += 1
            self.error_count += 1
            self.errors.append(f"Image failed: {error}")

    def record_cache_hit(self) -> None:
        with self._lock:
            self.cache_hits += 1

    def record_badge(self, created: bool) -> None:
        with self._lock:
            if created:
                self.badges_created += 1
            else:
                self.badges_merged += 1

    def get_summary(self) -> dict[str, Any]:
        """Get statistics summary as dictionary."""
        duration = (datetime.now(timezone.utc) - self.start_time).total_seconds()

        with self._lock:
            return {
                "duration_seconds": round(duration, 2),
                "pages_crawled": self.pages_crawled,
                "pages_failed": self.pages_failed,
                "pages_retried": self.pages_retried,
                "images_seen": self.images_seen,
                "images_fetched": self.images_fetched,
                "images_rejected": self.images_rejected,
                "images_failed": self.images_failed,
                "cache_hits": self.cache_hits,
                "badges_created": self.badges_created,
                "badges_merged": self.badges_merged,
                "total_bytes": self.total_bytes,
                "error_count": self.error_count,
                "recent_errors": list(self.errors),
            }

    def log_summary(self, logger: logging.Logger) -> None:
        """Log statistics summary."""
        summary = self.get_summary()

        logger.info("=" * 60)
        logger.info("CRAWL STATISTICS SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Duration: {summary['duration_seconds']:.2f} seconds")
        logger.info(f"Pages crawled: {summary['pages_crawled']}")
        logger.info(f"Pages failed: {summary['pages_failed']}")
        logger.info(f"Pages retried: {summary['pages_retried']}")
        logger.info(f"Images seen: {summary['images_seen']}")
        logger.info(f"Images fetched: {summary['images_fetched']}")
        logger.info(f"Images rejected: {summary['images_rejected']}")
        logger.info(f"Images failed: {summary['images_failed']}")
        logger.info(f"Classification cache hits: {summary['cache_hits']}")
        logger.info(f"Badges created: {summary['badges_created']}")
        logger.info(f"Badges merged: {summary['badges_merged']}")
        logger.info(f"Total bytes: {summary['total_bytes']:,}")
        logger.info(f"Errors: {summary['error_count']}")
        logger.info("=" * 60)


def setup_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
    log_file: str | None = None,
) -> None:
    """Set up logging configuration.

    Args:
        level: Logging level (default: INFO).
        json_format: Use JSON formatting for structured logs.
        log_file: Optional file path to write logs to.
    """
    if json_format:
        formatter: logging.Formatter = StructuredLogFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        handlers=handlers,
        force=True,
    )

    # Set third-party loggers to WARNING to reduce noise
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("scrapy").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)
