"""Frontier item definitions for the badge crawler."""

from dataclasses import dataclass


@dataclass(frozen=True)
class FrontierItem:
    """A URL waiting to be crawled.

    Attributes:
        url: Absolute URL to fetch.
        path_history: Breadcrumb of page URLs from the seed to the page
            that linked here (empty for seeds).
        depth: Frontier level the URL is fetched at (0 for seeds).
        found_button: Whether a badge was found on the anchor that
            produced this link (False for seeds).
    """

    url: str
    path_history: tuple[str, ...] = ()
    depth: int = 0
    found_button: bool = False
