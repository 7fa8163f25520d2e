"""CLI commands for the badge crawler.

Provides commands for:
- Running a crawl from seed URLs
- Exporting the button/host snapshot as JSON
- Inspecting record counts and cache sizes
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from crawler.logging_config import setup_logging
from crawler.scheduler import build_scheduler
from env_config import (
    get_cache_backend,
    get_log_json,
    get_log_level,
    get_redis_url,
    get_store_backend,
)
from storage.button_store import StoreError, create_store
from storage.caches import check_redis_available, create_caches
from storage.db import check_database_available, close_all_connections, pool_size_for

logger = logging.getLogger(__name__)


def crawl_command(args: argparse.Namespace) -> int:
    """Crawl breadth-first from the given seeds.

    Args:
        args: Command line arguments.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    if get_cache_backend() == "redis" and not check_redis_available(get_redis_url()):
        logger.error("Redis is not available. Set CACHE_BACKEND=memory to crawl without it.")
        return 1
    if get_store_backend() == "postgres" and not check_database_available(
        max_connections=pool_size_for(args.workers)
    ):
        logger.error("Database is not available. Check DATABASE_URL.")
        return 1

    scheduler = build_scheduler(
        max_depth=args.max_depth,
        max_concurrency=args.concurrency,
        page_workers=args.workers,
    )
    try:
        scheduler.crawl(args.seeds)
    except StoreError as e:
        logger.error(f"Crawl aborted, store write failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Crawl interrupted")
        return 130
    finally:
        scheduler.close()
        close_all_connections()

    return 0


def export_command(args: argparse.Namespace) -> int:
    """Write the full button/host snapshot as JSON.

    Args:
        args: Command line arguments.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    try:
        snapshot = create_store(get_store_backend()).get_all()
    except StoreError as e:
        logger.error(f"Export failed: {e}")
        return 1

    payload = json.dumps(snapshot.to_dict(), indent=2)
    if args.output:
        Path(args.output).write_text(payload, encoding="utf-8")
        logger.info(
            f"Exported {len(snapshot.buttons)} buttons and {len(snapshot.hosts)} hosts "
            f"to {args.output}"
        )
    else:
        print(payload)
    return 0


def stats_command(args: argparse.Namespace) -> int:
    """Show record counts and cache sizes.

    Args:
        args: Command line arguments.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    try:
        snapshot = create_store(get_store_backend()).get_all()
    except StoreError as e:
        logger.error(f"Failed to read store: {e}")
        return 1

    cache_backend = get_cache_backend()
    if cache_backend == "redis" and not check_redis_available(get_redis_url()):
        logger.error("Redis is not available.")
        return 1
    visited, image_cache, http_cache = create_caches(cache_backend)

    linked = sum(1 for host in snapshot.hosts.values() if host.buttons)
    print("=" * 50)
    print("Badge Store Status")
    print("=" * 50)
    print(f"Buttons: {len(snapshot.buttons)}")
    print(f"Hosts: {len(snapshot.hosts)} ({linked} with badges)")
    print(f"Visited URLs: {len(visited)}")
    print(f"Image classifications: {len(image_cache)}")
    print(f"Cached HTTP responses: {len(http_cache)}")
    print("=" * 50)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code.
    """
    parser = argparse.ArgumentParser(
        description="88x31 Badge Crawler CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--log-file",
        type=str,
        help="Also write logs to this file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # crawl command
    crawl_parser = subparsers.add_parser(
        "crawl",
        help="Crawl for badges starting from seed URLs",
    )
    crawl_parser.add_argument("seeds", nargs="+", help="Seed URLs (depth 0)")
    crawl_parser.add_argument(
        "--max-depth",
        type=int,
        default=None,
        help="Deepest level to fetch; 0 fetches only the seeds (default: CRAWL_MAX_DEPTH)",
    )
    crawl_parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Requests in flight at once (default: CRAWL_MAX_CONCURRENCY)",
    )
    crawl_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Pages processed at once per level (default: CRAWL_PAGE_WORKERS)",
    )
    crawl_parser.set_defaults(func=crawl_command)

    # export command
    export_parser = subparsers.add_parser(
        "export",
        help="Export all buttons and hosts as JSON",
    )
    export_parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Output file (default: stdout)",
    )
    export_parser.set_defaults(func=export_command)

    # stats command
    stats_parser = subparsers.add_parser(
        "stats",
        help="Show record counts and cache sizes",
    )
    stats_parser.set_defaults(func=stats_command)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(level=get_log_level(), json_format=get_log_json(), log_file=args.log_file)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
