"""Centralized environment configuration for the badge crawler.

Loads `.env` once at import time and exposes typed getters used across
crawler, processor, and storage modules.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent
load_dotenv(PROJECT_ROOT / ".env", override=False)
logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "postgresql://localhost/badges"
DEFAULT_REDIS_URL = "redis://localhost:6379/0"
DEFAULT_QUEUE_NAMESPACE = ""
DEFAULT_CRAWLER_USER_AGENT = "BadgeCrawler/0.1 (88x31 button archiver)"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_JSON = False

DEFAULT_CRAWL_MAX_DEPTH = 3
DEFAULT_CRAWL_MAX_CONCURRENCY = 10
DEFAULT_CRAWL_PAGE_WORKERS = 16
DEFAULT_CRAWL_REQUEST_TIMEOUT = 30
DEFAULT_CRAWL_MAX_RESPONSE_BYTES = 10 * 1024 * 1024  # 10MB

DEFAULT_BUTTONS_DIR = "buttons"
DEFAULT_STORE_BACKEND = "postgres"
DEFAULT_CACHE_BACKEND = "redis"

ALLOWED_STORE_BACKENDS = {"postgres", "memory"}
ALLOWED_CACHE_BACKENDS = {"redis", "memory"}


def get_database_url() -> str:
    """Return database URL from environment with a safe local default."""
    return os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)


def get_redis_url() -> str:
    """Return Redis URL from environment with a safe local default."""
    return os.getenv("REDIS_URL", DEFAULT_REDIS_URL)


def get_queue_namespace() -> str:
    """Return optional Redis key namespace prefix."""
    return os.getenv("QUEUE_NAMESPACE", DEFAULT_QUEUE_NAMESPACE).strip().strip(":")


def get_crawler_user_agent() -> str:
    """Return crawler User-Agent string."""
    return os.getenv("CRAWLER_USER_AGENT", DEFAULT_CRAWLER_USER_AGENT)


def get_log_level() -> str:
    """Return process log level."""
    return os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL)


def get_log_json() -> bool:
    """Return whether logs should be emitted as JSON lines."""
    return get_bool_env("LOG_JSON", DEFAULT_LOG_JSON)


def get_crawl_max_depth() -> int:
    """Return the deepest frontier level that is still fetched.

    Depth 0 holds the seeds, so a value of 0 fetches only the seeds.

    Default: 3
    """
    return max(0, get_int_env("CRAWL_MAX_DEPTH", DEFAULT_CRAWL_MAX_DEPTH))


def get_crawl_max_concurrency() -> int:
    """Return the number of outbound request slots shared by pages and images."""
    return max(1, get_int_env("CRAWL_MAX_CONCURRENCY", DEFAULT_CRAWL_MAX_CONCURRENCY))


def get_crawl_page_workers() -> int:
    """Return the number of page tasks run in parallel within one depth level."""
    return max(1, get_int_env("CRAWL_PAGE_WORKERS", DEFAULT_CRAWL_PAGE_WORKERS))


def get_crawl_request_timeout() -> int:
    """Return per-request HTTP timeout in seconds."""
    return get_int_env("CRAWL_REQUEST_TIMEOUT", DEFAULT_CRAWL_REQUEST_TIMEOUT)


def get_crawl_max_response_bytes() -> int:
    """Return the largest response body the fetcher will read."""
    return max(1, get_int_env("CRAWL_MAX_RESPONSE_BYTES", DEFAULT_CRAWL_MAX_RESPONSE_BYTES))


def get_buttons_dir() -> Path:
    """Return the directory badge images are written to.

    Relative paths are resolved against the current working directory.
    """
    return Path(os.getenv("BUTTONS_DIR", DEFAULT_BUTTONS_DIR))


def get_store_backend() -> str:
    """Return the record store backend name ("postgres" or "memory")."""
    return get_choice_env("STORE_BACKEND", DEFAULT_STORE_BACKEND, ALLOWED_STORE_BACKENDS)


def get_cache_backend() -> str:
    """Return the dedup cache backend name ("redis" or "memory").

    With "memory" the visited set, image cache, and HTTP cache live only
    for the duration of the process.
    """
    return get_choice_env("CACHE_BACKEND", DEFAULT_CACHE_BACKEND, ALLOWED_CACHE_BACKENDS)


def get_int_env(name: str, default: int) -> int:
    """Parse integer environment variable with fallback."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_bool_env(name: str, default: bool) -> bool:
    """Parse bool environment variable with fallback."""
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "y", "on"}:
        return True
    if value in {"0", "false", "no", "n", "off"}:
        return False
    return default


def get_choice_env(name: str, default: str, allowed: set[str]) -> str:
    """Parse enum-like env values with fallback to default on invalid input."""
    raw = os.getenv(name)
    if raw is None:
        return default

    value = raw.strip().lower()
    if value in allowed:
        return value

    logger.warning(
        "Invalid %s value '%s'. Allowed values: %s. Falling back to '%s'.",
        name,
        raw,
        ", ".join(sorted(allowed)),
        default,
    )
    return default
