"""Tests for Button and Host record types."""

from storage.records import Button, ButtonDB, Host, SiteMetadata, append_unique


class TestAppendUnique:
    def test_skips_empty_and_duplicates(self) -> None:
        values: list[str] = ["a"]
        assert append_unique(values, "a") is False
        assert append_unique(values, None) is False
        assert append_unique(values, "") is False
        assert append_unique(values, "b") is True
        assert values == ["a", "b"]


class TestButton:
    """Test Button merging and serialization."""

    def test_merge_observation_grows_every_field(self) -> None:
        button = Button()
        changed = button.merge_observation(
            "https://a.example/b.png",
            "https://a.example/",
            href="https://b.example/",
            alt="B site",
            title="Visit B",
        )

        assert changed is True
        assert button.srcs == ["https://a.example/b.png"]
        assert button.found_at == ["https://a.example/"]
        assert button.hrefs == ["https://b.example/"]
        assert button.alts == ["B site", "Visit B"]

    def test_merge_observation_is_duplicate_free(self) -> None:
        button = Button()
        button.merge_observation("https://a.example/b.png", "https://a.example/", alt="B")
        changed = button.merge_observation(
            "https://a.example/b.png", "https://a.example/", alt="B", title="B"
        )

        assert changed is False
        assert button.alts == ["B"]
        assert button.srcs == ["https://a.example/b.png"]

    def test_missing_href_and_alt_are_not_recorded(self) -> None:
        button = Button()
        button.merge_observation("https://a.example/b.png", "https://a.example/")

        assert button.hrefs == []
        assert button.alts == []

    def test_to_dict_uses_found_at_wire_name(self) -> None:
        button = Button(found_at=["https://a.example/"], timestamp=1700000000000, type="png")
        data = button.to_dict()

        assert data["foundAt"] == ["https://a.example/"]
        assert "found_at" not in data
        assert Button.from_dict(data) == button


class TestHost:
    """Test Host merging."""

    def test_metadata_deduplicated_by_title_and_description(self) -> None:
        host = Host(host="a.example")
        assert host.add_metadata(SiteMetadata("Home", ["x"], "desc")) is True
        assert host.add_metadata(SiteMetadata("Home", ["y", "z"], "desc")) is False
        assert host.add_metadata(SiteMetadata("Home", None, "other")) is True

        assert len(host.metadata) == 2
        assert host.metadata[0].keywords == ["x"]

    def test_add_page_deduplicates_urls_and_paths(self) -> None:
        host = Host(host="a.example")
        assert host.add_page("https://a.example/x", ["https://seed.example/"]) is True
        assert host.add_page("https://a.example/x", ["https://seed.example/"]) is False
        assert host.add_page("https://a.example/x", ["https://other.example/"]) is True

        assert host.urls == ["https://a.example/x"]
        assert host.paths == [["https://seed.example/"], ["https://other.example/"]]

    def test_add_button(self) -> None:
        host = Host(host="a.example")
        assert host.add_button("ab" * 32) is True
        assert host.add_button("ab" * 32) is False
        assert host.buttons == ["ab" * 32]


class TestButtonDB:
    def test_to_dict(self) -> None:
        db = ButtonDB(
            hosts={"a.example": Host(host="a.example", buttons=["ff"])},
            buttons={"ff": Button(srcs=["https://a.example/b.png"], timestamp=1, type="gif")},
        )
        data = db.to_dict()

        assert data["hosts"]["a.example"]["buttons"] == ["ff"]
        assert data["buttons"]["ff"]["type"] == "gif"
        assert data["buttons"]["ff"]["foundAt"] == []
