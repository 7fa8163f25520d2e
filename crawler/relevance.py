"""Relevance filter deciding which discovered links are worth crawling.

The crawler roams freely inside a site but only jumps to another host
when a badge on the anchor points there.
"""

from processor.url_normalization import host_key


def is_likely_relevant(href: str, page_url: str, found_button: bool) -> bool:
    """Decide whether a link should be added to the frontier.

    Args:
        href: Absolute link target.
        page_url: URL of the page the link was found on.
        found_button: Whether a badge was found inside the anchor.

    Returns:
        True for same-host links; for cross-host links, only when a badge
        was found on the anchor. False if either URL has no host.
    """
    target_host = host_key(href)
    page_host = host_key(page_url)
    if target_host is None or page_host is None:
        return False
    if target_host == page_host:
        return True
    return found_button
