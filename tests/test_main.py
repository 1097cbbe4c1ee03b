"""Tests for the command line entry point."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

import main
from gemcrawl.storage.checkpoint import PersistenceError
from gemcrawl.utils.config import Config


class TestApplyOverrides:
    def test_flags_override_config(self):
        args = main.build_parser().parse_args([
            "--url", "gemini://example.org/",
            "--resume", "old.json",
            "--output", "new.json",
            "--max-entries", "5",
            "--workers", "3",
            "--insecure",
            "--json-logs",
        ])
        config = main.apply_overrides(Config(), args)

        assert config.crawler.start_url == "gemini://example.org/"
        assert config.crawler.max_entries == 5
        assert config.crawler.max_concurrent_requests == 3
        assert config.crawler.insecure_skip_verify is True
        assert config.checkpoint.resume_from == "old.json"
        assert config.checkpoint.path == "new.json"
        assert config.logging.json is True

    def test_no_flags_keep_config(self):
        config = main.apply_overrides(Config(), main.build_parser().parse_args([]))
        assert config == Config()

    def test_invalid_override(self):
        args = main.build_parser().parse_args(["--workers", "0"])
        with pytest.raises(ValueError):
            main.apply_overrides(Config(), args)


class TestMain:
    def test_missing_explicit_config(self, tmp_path, capsys):
        assert main.main(["--config", str(tmp_path / "nope.yaml")]) == 1
        assert "not found" in capsys.readouterr().out

    def test_invalid_config(self, tmp_path, capsys):
        path = tmp_path / "config.yaml"
        path.write_text("crawler:\n  max_concurrent_requests: 0\n")
        assert main.main(["--config", str(path)]) == 1

    def test_runs_app(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(f"logging:\n  file: {tmp_path / 'crawler.log'}\n")

        with patch.object(main.CrawlerApp, "run", AsyncMock(return_value=0)) as run, \
                patch.object(main, "setup_logging"), \
                patch.object(main, "log_system_info"):
            assert main.main(["--config", str(path), "--max-pages", "3"]) == 0

        config = run.call_args.args[0]
        assert isinstance(config, Config)
        assert run.call_args.kwargs["max_pages"] == 3


class TestCrawlerApp:
    @pytest.mark.asyncio
    async def test_fatal_persistence_error(self, tmp_path):
        config = Config()
        config.checkpoint.resume_from = str(tmp_path / "missing.json")
        config.checkpoint.path = str(tmp_path / "out.json")

        assert await main.CrawlerApp().run(config) == 1

    @pytest.mark.asyncio
    async def test_successful_run(self, tmp_path):
        config = Config()
        config.checkpoint.path = str(tmp_path / "out.json")

        with patch("gemcrawl.crawler.scheduler.CrawlerScheduler.start_crawling",
                   AsyncMock(return_value=None)):
            assert await main.CrawlerApp().run(config) == 0

    @pytest.mark.asyncio
    async def test_final_save_failure_is_fatal(self, tmp_path):
        config = Config()
        config.checkpoint.path = str(tmp_path / "out.json")

        with patch("gemcrawl.crawler.scheduler.CrawlerScheduler.start_crawling",
                   AsyncMock(side_effect=PersistenceError("disk full"))):
            assert await main.CrawlerApp().run(config) == 1
