import logging

import pytest

from disclosure_downloader.cli import build_parser, config_from_args, configure_logging
from disclosure_downloader.config import ENV_OVERRIDES, ENV_PREFIX, DownloaderConfig


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for suffix in ENV_OVERRIDES:
        monkeypatch.delenv(ENV_PREFIX + suffix, raising=False)
    monkeypatch.setattr("disclosure_downloader.config.load_dotenv", lambda: None)


class TestParser:
    def test_download_defaults(self):
        args = build_parser().parse_args(["download"])
        config = config_from_args(args)
        assert config == DownloaderConfig()

    def test_download_overrides(self):
        args = build_parser().parse_args(
            [
                "download",
                "--concurrency",
                "8",
                "--max-attempts",
                "5",
                "--backoff",
                "1.5",
                "--reports-dir",
                "/tmp/pdfs",
                "--report",
                "out.json",
                "--rotate-command",
                "scripts/rotate_vpn.sh",
                "-v",
            ]
        )
        config = config_from_args(args)
        assert args.verbose
        assert config.concurrency == 8
        assert config.max_attempts == 5
        assert config.backoff_seconds == 1.5
        assert config.reports_dir == "/tmp/pdfs"
        assert config.report_path == "out.json"
        assert config.rotate_command == "scripts/rotate_vpn.sh"

    def test_index_years(self):
        args = build_parser().parse_args(["index", "--years", "2021", "2022"])
        assert config_from_args(args).years == [2021, 2022]

    def test_run_accepts_both(self):
        args = build_parser().parse_args(
            ["run", "--years", "2024", "--concurrency", "2"]
        )
        config = config_from_args(args)
        assert config.years == [2024]
        assert config.concurrency == 2

    def test_invalid_concurrency_rejected(self):
        args = build_parser().parse_args(["download", "--concurrency", "0"])
        with pytest.raises(ValueError):
            config_from_args(args)

    def test_no_command(self):
        args = build_parser().parse_args([])
        assert args.command is None


class TestConfigFromEnv:
    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("DISCLOSURES_CONCURRENCY", "6")
        monkeypatch.setenv("DISCLOSURES_ROTATE_COMMAND", "rotate.sh")
        config = DownloaderConfig.from_env()
        assert config.concurrency == 6
        assert config.rotate_command == "rotate.sh"

    def test_explicit_wins_over_env(self, monkeypatch):
        monkeypatch.setenv("DISCLOSURES_CONCURRENCY", "6")
        assert DownloaderConfig.from_env(concurrency=2).concurrency == 2


class TestConfigureLogging:
    def test_log_level_env(self, monkeypatch):
        calls = {}
        monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.update(kw))
        monkeypatch.setenv("LOG_LEVEL", "warn")
        configure_logging(verbose=False)
        assert calls["level"] == logging.WARNING

    def test_verbose_wins(self, monkeypatch):
        calls = {}
        monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.update(kw))
        monkeypatch.setenv("LOG_LEVEL", "error")
        configure_logging(verbose=True)
        assert calls["level"] == logging.DEBUG

    def test_unknown_level_is_info(self, monkeypatch):
        calls = {}
        monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.update(kw))
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        configure_logging(verbose=False)
        assert calls["level"] == logging.INFO
