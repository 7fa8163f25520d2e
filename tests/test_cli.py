"""Tests for CLI commands."""

import json
from unittest.mock import MagicMock, patch

import pytest

from storage.button_store import ButtonStore, MemoryRecordBackend, StoreError
from storage.records import Button, Host


@pytest.fixture
def memory_backends(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("CACHE_BACKEND", "memory")
    monkeypatch.setenv("BUTTONS_DIR", str(tmp_path / "buttons"))


class TestCrawlCommand:
    """Test the crawl command."""

    def test_runs_scheduler_with_arguments(self, memory_backends) -> None:
        from crawler.cli import crawl_command

        scheduler = MagicMock()
        with patch("crawler.cli.build_scheduler", return_value=scheduler) as build:
            args = MagicMock(
                seeds=["https://a.example/"], max_depth=0, concurrency=2, workers=None
            )
            exit_code = crawl_command(args)

        assert exit_code == 0
        build.assert_called_once_with(max_depth=0, max_concurrency=2, page_workers=None)
        scheduler.crawl.assert_called_once_with(["https://a.example/"])
        scheduler.close.assert_called_once()

    def test_store_failure_exits_nonzero(self, memory_backends) -> None:
        from crawler.cli import crawl_command

        scheduler = MagicMock()
        scheduler.crawl.side_effect = StoreError("disk full")
        with patch("crawler.cli.build_scheduler", return_value=scheduler):
            args = MagicMock(
                seeds=["https://a.example/"], max_depth=1, concurrency=None, workers=None
            )
            exit_code = crawl_command(args)

        assert exit_code == 1
        scheduler.close.assert_called_once()

    def test_requires_redis_when_configured(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from crawler.cli import crawl_command

        monkeypatch.setenv("CACHE_BACKEND", "redis")
        with (
            patch("crawler.cli.check_redis_available", return_value=False),
            patch("crawler.cli.build_scheduler") as build,
        ):
            exit_code = crawl_command(MagicMock(seeds=["https://a.example/"]))

        assert exit_code == 1
        build.assert_not_called()

    def test_requires_database_when_configured(self, memory_backends, monkeypatch) -> None:
        from crawler.cli import crawl_command

        monkeypatch.setenv("STORE_BACKEND", "postgres")
        with (
            patch("crawler.cli.check_database_available", return_value=False) as check,
            patch("crawler.cli.build_scheduler") as build,
        ):
            exit_code = crawl_command(MagicMock(seeds=["https://a.example/"], workers=40))

        assert exit_code == 1
        check.assert_called_once_with(max_connections=42)
        build.assert_not_called()


class TestExportCommand:
    """Test the export command."""

    def test_writes_snapshot_json(self, memory_backends, tmp_path) -> None:
        from crawler.cli import export_command

        store = ButtonStore(MemoryRecordBackend())
        store.update_button("ab" * 32, lambda b: Button(srcs=["https://a.example/b.png"]))
        store.update_host("a.example", lambda h: Host(host="a.example", buttons=["ab" * 32]))
        output = tmp_path / "export.json"

        with patch("crawler.cli.create_store", return_value=store):
            exit_code = export_command(MagicMock(output=str(output)))

        assert exit_code == 0
        data = json.loads(output.read_text())
        assert data["buttons"]["ab" * 32]["srcs"] == ["https://a.example/b.png"]
        assert data["buttons"]["ab" * 32]["foundAt"] == []
        assert data["hosts"]["a.example"]["buttons"] == ["ab" * 32]

    def test_prints_to_stdout(self, memory_backends, capsys: pytest.CaptureFixture) -> None:
        from crawler.cli import export_command

        exit_code = export_command(MagicMock(output=None))

        assert exit_code == 0
        assert json.loads(capsys.readouterr().out) == {"hosts": {}, "buttons": {}}


class TestStatsAndMain:
    def test_stats_command(self, memory_backends, capsys: pytest.CaptureFixture) -> None:
        from crawler.cli import stats_command

        exit_code = stats_command(MagicMock())

        assert exit_code == 0
        out = capsys.readouterr().out
        assert "Buttons: 0" in out
        assert "Visited URLs: 0" in out

    def test_main_without_command_prints_help(self) -> None:
        from crawler.cli import main

        assert main([]) == 1

    def test_main_dispatches_crawl(self, memory_backends) -> None:
        from crawler.cli import main

        with (
            patch("crawler.cli.setup_logging"),
            patch("crawler.cli.build_scheduler") as build,
        ):
            exit_code = main(["crawl", "https://a.example/", "--max-depth", "0"])

        assert exit_code == 0
        build.assert_called_once_with(max_depth=0, max_concurrency=None, page_workers=None)
        build.return_value.crawl.assert_called_once_with(["https://a.example/"])
