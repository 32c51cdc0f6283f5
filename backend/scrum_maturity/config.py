"""Configuration loading and logging setup."""

import copy
import json
import logging
import os

from .flow import DEFAULT_CLOSED_STATUSES, DEFAULT_IN_PROGRESS_STATUSES
from .history import DEFAULT_HISTORY_PATH
from .issues import DEFAULT_STORY_POINTS_FIELDS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(
    os.path.dirname(os.path.dirname(__file__)), "config", "maturity-config.json"
)

DEFAULTS = {
    "jiraUrl": "",
    "email": "",
    "apiToken": "",
    "storyPointsFields": list(DEFAULT_STORY_POINTS_FIELDS),
    "inProgressStatuses": list(DEFAULT_IN_PROGRESS_STATUSES),
    "closedStatuses": list(DEFAULT_CLOSED_STATUSES),
    "cacheTtlMinutes": 30,
    "historyPath": DEFAULT_HISTORY_PATH,
    "historyMaxEntriesPerBoard": 100,
    "historyRetentionDays": 90,
    "sprintCount": 6,
    "flowSprintCount": 3,
    "logLevel": "INFO",
}


def _comma_list(value: str) -> list:
    return [part.strip() for part in value.split(",") if part.strip()]


def _log_level(value: str) -> str:
    level = value.upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"Unknown log level: {value}")
    return level


# Environment variable -> (config key, converter)
ENV_OVERRIDES = {
    "JIRA_URL": ("jiraUrl", str),
    "JIRA_EMAIL": ("email", str),
    "JIRA_API_TOKEN": ("apiToken", str),
    "LOG_LEVEL": ("logLevel", _log_level),
    "STORY_POINTS_FIELDS": ("storyPointsFields", _comma_list),
    "CACHE_TTL_MINUTES": ("cacheTtlMinutes", float),
    "METRICS_HISTORY_PATH": ("historyPath", str),
}


def load_config(path: str = None) -> dict:
    """Load settings from the JSON config file, then apply environment overrides.

    A missing file leaves the defaults in place; a malformed one is logged and
    ignored. Unknown keys in the file are kept as-is.
    """
    config = copy.deepcopy(DEFAULTS)
    config_path = path or DEFAULT_CONFIG_PATH

    if os.path.exists(config_path):
        try:
            with open(config_path, "r") as f:
                config.update(json.load(f))
            logger.info(f"Loaded config from {config_path}")
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Failed to load config from {config_path}: {e}")
    else:
        logger.info(f"No config file at {config_path}, using defaults")

    for env_name, (key, convert) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if not value:
            continue
        try:
            config[key] = convert(value)
        except ValueError:
            logger.warning(f"Ignoring invalid {env_name}={value!r}")

    return config


def configure_logging(level=None):
    """Send ``scrum_maturity`` log records to stderr at ``level``.

    ``level`` defaults to the ``LOG_LEVEL`` environment variable, then INFO.
    An unknown level name is logged and replaced by INFO. Calling this again
    only changes the level.
    """
    level = level or os.environ.get("LOG_LEVEL") or "INFO"
    if isinstance(level, str):
        try:
            level = _log_level(level)
        except ValueError:
            logger.warning(f"Unknown log level {level!r}, using INFO")
            level = "INFO"

    package_logger = logging.getLogger("scrum_maturity")
    package_logger.setLevel(level)

    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s [%(name)s] %(message)s"
        ))
        package_logger.addHandler(handler)

    return package_logger
