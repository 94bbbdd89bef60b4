"""Tests for the logging setup."""

import logging

import pytest
from marketplace.utils.logging import configure_logging, get_log_level


@pytest.fixture()
def restore_logging():
    yield
    configure_logging("")


class TestConfigureLogging:
    def test_log_dir_gets_rotating_files(self, tmp_path, restore_logging):
        configure_logging(tmp_path / "logs")

        assert (tmp_path / "logs" / "marketplace.log").exists()
        assert (tmp_path / "logs" / "marketplace_error.log").exists()
        assert len(logging.getLogger().handlers) == 3

    def test_empty_log_dir_logs_to_stdout_only(self, tmp_path, monkeypatch, restore_logging):
        monkeypatch.chdir(tmp_path)
        configure_logging("")

        assert len(logging.getLogger().handlers) == 1
        assert not (tmp_path / "logs").exists()

    def test_environment_variable_sets_directory(self, tmp_path, monkeypatch, restore_logging):
        monkeypatch.setenv("MARKETPLACE_LOG_DIR", str(tmp_path / "var"))
        configure_logging()

        assert (tmp_path / "var" / "marketplace.log").exists()

    def test_level_follows_environment(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.delenv("ENVIRONMENT", raising=False)
        monkeypatch.setenv("PROTEAN_ENV", "production")
        assert get_log_level() == "INFO"

        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert get_log_level() == "ERROR"
