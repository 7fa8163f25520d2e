"""Page processing for the badge crawler.

Fetches one frontier URL, records the page on its host, runs every
<img> through the badge pipeline in document order, and returns the
links worth crawling at the next depth level.
"""

import logging
from dataclasses import dataclass, field, replace

from scrapy.http import HtmlResponse

from crawler.items import FrontierItem
from crawler.logging_config import CrawlStatistics
from crawler.pipelines import BadgePipeline
from crawler.relevance import is_likely_relevant
from processor.fetcher import ConditionalFetcher, FetchError, FetchResponse, TransientFetchError
from processor.url_normalization import host_key, normalize_url, resolve_url
from storage.button_store import ButtonStore
from storage.caches import VisitedUrlSet
from storage.records import Host, SiteMetadata

logger = logging.getLogger(__name__)

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml", "")


@dataclass
class ImageElement:
    src: str | None
    alt: str | None = None
    title: str | None = None


@dataclass
class AnchorElement:
    href: str | None
    images: list[ImageElement] = field(default_factory=list)


@dataclass
class ParsedPage:
    """Everything the processor needs from one HTML document."""

    metadata: SiteMetadata
    anchors: list[AnchorElement]
    loose_images: list[ImageElement]


def _image_element(selector) -> ImageElement:
    return ImageElement(
        src=selector.attrib.get("src"),
        alt=selector.attrib.get("alt"),
        title=selector.attrib.get("title"),
    )


def extract_metadata(page: HtmlResponse) -> SiteMetadata:
    """Extract title, keywords, and description from a page.

    Args:
        page: Parsed HTML response.

    Returns:
        SiteMetadata with stripped values; keywords are comma-split.
    """
    title = page.css("title::text").get()
    keywords = page.css("meta[name=keywords]::attr(content)").get()
    description = page.css("meta[name=description]::attr(content)").get()

    return SiteMetadata(
        title=title.strip() if title is not None else None,
        keywords=[k.strip() for k in keywords.split(",") if k.strip()] if keywords else None,
        description=description.strip() if description is not None else None,
    )


def parse_page(response: FetchResponse) -> ParsedPage:
    """Parse a fetched HTML document.

    Args:
        response: Successful fetch result.

    Returns:
        ParsedPage with anchors and images in document order.
    """
    headers = {}
    if response.headers.get("Content-Type"):
        headers["Content-Type"] = response.headers["Content-Type"]
    page = HtmlResponse(url=response.url, body=response.content, headers=headers)

    anchors = [
        AnchorElement(
            href=anchor.attrib.get("href"),
            images=[_image_element(img) for img in anchor.xpath(".//img")],
        )
        for anchor in page.xpath("//a")
    ]
    loose_images = [_image_element(img) for img in page.xpath("//img[not(ancestor::a)]")]

    return ParsedPage(
        metadata=extract_metadata(page),
        anchors=anchors,
        loose_images=loose_images,
    )


class PageProcessor:
    """Fetches and processes single frontier items.

    Attributes:
        store: Button/host record store.
        fetcher: Shared conditional fetcher.
        pipeline: Badge classification pipeline.
        visited: Normalized URLs crawled so far.
        max_depth: Deepest level still fetched.
        stats: Crawl statistics collector.
    """

    def __init__(
        self,
        store: ButtonStore,
        fetcher: ConditionalFetcher,
        pipeline: BadgePipeline,
        visited: VisitedUrlSet,
        max_depth: int,
        stats: CrawlStatistics | None = None,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.pipeline = pipeline
        self.visited = visited
        self.max_depth = max_depth
        self.stats = stats or pipeline.stats

    def fetch_page(self, item: FrontierItem, retries: int = 1) -> list[FrontierItem] | None:
        """Crawl one page and collect the links to follow.

        Args:
            item: Frontier item to crawl.
            retries: Extra attempts allowed after a transport-level failure.

        Returns:
            Candidate links for the next level, or None if the page was
            skipped or failed.

        Raises:
            StoreError: If a record could not be written.
        """
        try:
            normalized = normalize_url(item.url)
        except ValueError:
            logger.warning(f"Dropping malformed URL {item.url!r}")
            return None

        if item.depth > self.max_depth or normalized in self.visited:
            return None

        try:
            response = self._fetch_with_retry(item.url, retries)
        except FetchError as e:
            # Marked visited so the same run does not keep retrying it
            self.visited.add(normalized)
            self.stats.record_page_failed(item.url, e.reason)
            logger.error(f"Error fetching {item.url}: {e.reason}")
            return None

        self.visited.add(normalized)
        final_url = response.url
        if final_url != item.url:
            try:
                self.visited.add(normalize_url(final_url))
            except ValueError:
                pass

        self.stats.record_page_crawled(final_url, len(response.content))
        via = " via badge link" if item.found_button else ""
        logger.info(
            f"Fetched {final_url} (depth: {item.depth}{via}"
            f"{', cached' if response.from_cache else ''})"
        )

        if response.content_type not in HTML_CONTENT_TYPES:
            logger.debug(f"Skipping non-HTML response: {response.content_type} for {final_url}")
            return []

        try:
            parsed = parse_page(response)
        except Exception as e:
            self.stats.record_page_failed(final_url, f"parse_error: {e}")
            logger.error(f"Error parsing {final_url}: {e}")
            return None

        new_path = [*item.path_history, item.url]
        self._record_page(final_url, new_path, parsed.metadata)
        return self._process_elements(item, final_url, new_path, parsed)

    def _fetch_with_retry(self, url: str, retries: int) -> FetchResponse:
        """Fetch a page, retrying transport failures up to `retries` times."""
        attempt = 0
        while True:
            try:
                return self.fetcher.fetch(url)
            except TransientFetchError as e:
                if attempt >= retries:
                    raise
                attempt += 1
                self.stats.record_page_retried()
                logger.warning(f"Transient error fetching {url} ({e.reason}), retrying")

    def _record_page(self, page_url: str, path: list[str], metadata: SiteMetadata) -> None:
        """Merge the page URL, breadcrumb, and metadata into its Host record."""
        hostname = host_key(page_url)
        if hostname is None:
            return

        def merge(host: Host | None) -> Host | None:
            if host is None:
                host = Host(host=hostname)
            changed = host.add_page(page_url, path)
            changed = host.add_metadata(metadata) or changed
            return host if changed else None

        self.store.update_host(hostname, merge)

    def _process_elements(
        self,
        item: FrontierItem,
        page_url: str,
        path: list[str],
        parsed: ParsedPage,
    ) -> list[FrontierItem]:
        candidates: dict[str, FrontierItem] = {}
        breadcrumb = tuple(path)

        def add_candidate(url: str, found_button: bool) -> None:
            existing = candidates.get(url)
            if existing is None:
                candidates[url] = FrontierItem(
                    url=url,
                    path_history=breadcrumb,
                    depth=item.depth + 1,
                    found_button=found_button,
                )
            elif found_button and not existing.found_button:
                candidates[url] = replace(existing, found_button=True)

        total = len(parsed.loose_images) + sum(len(a.images) for a in parsed.anchors)
        logger.debug(f"[{page_url}] {len(parsed.anchors)} anchors, {total} images")

        for anchor in parsed.anchors:
            href = resolve_url(page_url, anchor.href)
            found_button = False

            for img in anchor.images:
                outcome = self.pipeline.process_image(
                    img.src, page_url, href=href, alt=img.alt, title=img.title
                )
                if outcome.found_button:
                    found_button = True
                    for link in outcome.links:
                        add_candidate(link, True)

            if href is not None and is_likely_relevant(href, page_url, found_button):
                add_candidate(href, found_button)

        for img in parsed.loose_images:
            self.pipeline.process_image(img.src, page_url, href=None, alt=img.alt, title=img.title)

        return list(candidates.values())
