"""Tests for configuration loading and logging setup."""

import json
import logging
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from scrum_maturity import create_service
from scrum_maturity.config import DEFAULTS, ENV_OVERRIDES, configure_logging, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "maturity-config.json"
    path.write_text(json.dumps({
        "jiraUrl": "https://file.atlassian.net",
        "sprintCount": 8,
        "closedStatuses": ["Shipped"]
    }))
    return str(path)


class TestLoadConfig:
    """Test file and environment configuration."""

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "nope.json"))
        assert config == DEFAULTS

    def test_file_values_override_defaults(self, config_file):
        config = load_config(config_file)
        assert config["jiraUrl"] == "https://file.atlassian.net"
        assert config["sprintCount"] == 8
        assert config["closedStatuses"] == ["Shipped"]
        assert config["cacheTtlMinutes"] == 30

    def test_malformed_file_ignored(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{oops")
        assert load_config(str(path)) == DEFAULTS

    def test_environment_overrides_file(self, config_file, monkeypatch):
        monkeypatch.setenv("JIRA_URL", "https://env.atlassian.net")
        monkeypatch.setenv("JIRA_API_TOKEN", "secret")
        monkeypatch.setenv("STORY_POINTS_FIELDS", "customfield_1, customfield_2")
        monkeypatch.setenv("CACHE_TTL_MINUTES", "15")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        config = load_config(config_file)

        assert config["jiraUrl"] == "https://env.atlassian.net"
        assert config["apiToken"] == "secret"
        assert config["storyPointsFields"] == ["customfield_1", "customfield_2"]
        assert config["cacheTtlMinutes"] == 15.0
        assert config["logLevel"] == "DEBUG"

    def test_unknown_log_level_ignored(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "verbose")
        assert load_config(str(tmp_path / "nope.json"))["logLevel"] == "INFO"

    def test_invalid_number_ignored(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CACHE_TTL_MINUTES", "soon")
        assert load_config(str(tmp_path / "nope.json"))["cacheTtlMinutes"] == 30

    def test_defaults_not_shared(self, tmp_path):
        config = load_config(str(tmp_path / "nope.json"))
        config["sprintCount"] = 1
        assert DEFAULTS["sprintCount"] == 6


class TestConfigureLogging:
    """Test package logger setup."""

    @pytest.fixture(autouse=True)
    def restore_logger(self):
        package_logger = logging.getLogger("scrum_maturity")
        handlers = list(package_logger.handlers)
        level = package_logger.level
        yield
        package_logger.handlers = handlers
        package_logger.setLevel(level)

    def test_sets_level_once_per_handler(self):
        package_logger = configure_logging("debug")
        handler_count = len(package_logger.handlers)

        configure_logging("WARNING")

        assert package_logger.name == "scrum_maturity"
        assert package_logger.level == logging.WARNING
        assert len(package_logger.handlers) == handler_count

    def test_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert configure_logging().level == logging.ERROR

    def test_unknown_level_falls_back_to_info(self, monkeypatch):
        assert configure_logging("verbose").level == logging.INFO

        monkeypatch.setenv("LOG_LEVEL", "verbose")
        assert configure_logging().level == logging.INFO

    def test_service_starts_with_unknown_level(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "verbose")
        monkeypatch.setenv("METRICS_HISTORY_PATH", str(tmp_path / "metrics.json"))

        service = create_service(str(tmp_path / "none.json"))

        assert service.config["logLevel"] == "INFO"
        assert logging.getLogger("scrum_maturity").level == logging.INFO
