"""Record types persisted by the badge store.

Buttons are keyed by the SHA-256 of their image bytes and hosts by
hostname. Both serialize to the JSON layout read by the browse front end,
so field names on the wire stay camelCase (``foundAt``).
"""

from dataclasses import dataclass, field
from typing import Any


def append_unique(values: list[Any], value: Any) -> bool:
    """Append value unless it is empty or already present.

    Args:
        values: List to grow in place.
        value: Candidate value.

    Returns:
        True if the value was appended.
    """
    if value is None or value == "" or value in values:
        return False
    values.append(value)
    return True


@dataclass
class SiteMetadata:
    """Page metadata observed on a host."""

    title: str | None = None
    keywords: list[str] | None = None
    description: str | None = None

    def same_page_identity(self, other: "SiteMetadata") -> bool:
        """Two entries describe the same page when title and description match."""
        return self.title == other.title and self.description == other.description

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "keywords": list(self.keywords) if self.keywords is not None else None,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SiteMetadata":
        keywords = data.get("keywords")
        return cls(
            title=data.get("title"),
            keywords=list(keywords) if keywords is not None else None,
            description=data.get("description"),
        )


@dataclass
class Button:
    """A deduplicated 88x31 badge.

    Attributes:
        srcs: Distinct source URLs serving these exact bytes.
        alts: Distinct alt/title texts.
        hrefs: Distinct link targets the badge points to.
        found_at: Distinct pages the badge was seen on.
        timestamp: Creation time in epoch milliseconds.
        type: Container format detected at first classification.
    """

    srcs: list[str] = field(default_factory=list)
    alts: list[str] = field(default_factory=list)
    hrefs: list[str] = field(default_factory=list)
    found_at: list[str] = field(default_factory=list)
    timestamp: int = 0
    type: str | None = None

    def merge_observation(
        self,
        src: str,
        page_url: str,
        href: str | None = None,
        alt: str | None = None,
        title: str | None = None,
    ) -> bool:
        """Fold one sighting into the record.

        Returns:
            True if any field grew.
        """
        changed = append_unique(self.found_at, page_url)
        changed = append_unique(self.srcs, src) or changed
        changed = append_unique(self.hrefs, href) or changed
        changed = append_unique(self.alts, alt) or changed
        changed = append_unique(self.alts, title) or changed
        return changed

    def to_dict(self) -> dict[str, Any]:
        return {
            "srcs": list(self.srcs),
            "alts": list(self.alts),
            "hrefs": list(self.hrefs),
            "foundAt": list(self.found_at),
            "timestamp": self.timestamp,
            "type": self.type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Button":
        return cls(
            srcs=list(data.get("srcs", [])),
            alts=list(data.get("alts", [])),
            hrefs=list(data.get("hrefs", [])),
            found_at=list(data.get("foundAt", [])),
            timestamp=int(data.get("timestamp", 0)),
            type=data.get("type"),
        )


@dataclass
class Host:
    """Everything known about one hostname.

    Attributes:
        host: Hostname key.
        metadata: Distinct page metadata entries.
        buttons: Hashes of badges whose link points at this host.
        urls: Distinct page URLs crawled on this host.
        paths: Distinct breadcrumb trails (seed -> page) that reached this host.
    """

    host: str
    metadata: list[SiteMetadata] = field(default_factory=list)
    buttons: list[str] = field(default_factory=list)
    urls: list[str] = field(default_factory=list)
    paths: list[list[str]] = field(default_factory=list)

    def add_metadata(self, metadata: SiteMetadata) -> bool:
        """Append metadata unless an entry with the same title and description exists."""
        if any(existing.same_page_identity(metadata) for existing in self.metadata):
            return False
        self.metadata.append(metadata)
        return True

    def add_button(self, sha256_hash: str) -> bool:
        return append_unique(self.buttons, sha256_hash)

    def add_page(self, url: str, path: list[str]) -> bool:
        """Record a crawled page and the breadcrumb that reached it."""
        changed = append_unique(self.urls, url)
        return append_unique(self.paths, list(path)) or changed

    def to_dict(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "metadata": [m.to_dict() for m in self.metadata],
            "buttons": list(self.buttons),
            "urls": list(self.urls),
            "paths": [list(p) for p in self.paths],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Host":
        return cls(
            host=data["host"],
            metadata=[SiteMetadata.from_dict(m) for m in data.get("metadata", [])],
            buttons=list(data.get("buttons", [])),
            urls=list(data.get("urls", [])),
            paths=[list(p) for p in data.get("paths", [])],
        )


@dataclass
class ButtonDB:
    """Full snapshot of both record spaces."""

    hosts: dict[str, Host] = field(default_factory=dict)
    buttons: dict[str, Button] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "hosts": {key: host.to_dict() for key, host in self.hosts.items()},
            "buttons": {key: button.to_dict() for key, button in self.buttons.items()},
        }
