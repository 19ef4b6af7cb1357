from __future__ import annotations

import json
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Literal, Optional
from urllib.parse import urlparse

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from . import config_constants
from .models import FeedSource, FileFeedSource, UrlFeedSource


# SKIP .env loading in test environments - tests should use Config objects and
# environment variables directly, never rely on .env files
def _is_test_environment() -> bool:
    """Check if we're running in a test environment."""
    import sys

    if "pytest" in sys.modules or "PYTEST_CURRENT_TEST" in os.environ:
        return True
    if os.environ.get("TESTING", "").lower() in ("1", "true", "yes"):
        return True
    return False


if not _is_test_environment():
    try:
        load_dotenv(override=False)
    except (PermissionError, OSError):
        # If loading fails, continue without .env file
        pass

# Re-exported for convenience
DEFAULT_LOG_LEVEL = config_constants.DEFAULT_LOG_LEVEL
DEFAULT_OUTPUT_DIR = config_constants.DEFAULT_OUTPUT_DIR
DEFAULT_TIMEOUT_SECONDS = config_constants.DEFAULT_TIMEOUT_SECONDS
DEFAULT_USER_AGENT = config_constants.DEFAULT_USER_AGENT
DEFAULT_WORKERS = config_constants.DEFAULT_WORKERS
DEFAULT_FILENAME_MODE = config_constants.DEFAULT_FILENAME_MODE
MIN_WORKERS = config_constants.MIN_WORKERS
MIN_TIMEOUT_SECONDS = config_constants.MIN_TIMEOUT_SECONDS
VALID_LOG_LEVELS = config_constants.VALID_LOG_LEVELS
VALID_FILENAME_MODES = config_constants.VALID_FILENAME_MODES
VALID_FEED_URL_SCHEMES = config_constants.VALID_FEED_URL_SCHEMES


def _from_env_or_value(env_name: str, value: Any) -> Optional[str]:
    """Return the explicit value if given, else the environment variable, else None."""
    if value is not None:
        value_str = str(value).strip()
        if value_str:
            return value_str
    env_value = os.getenv(env_name)
    if env_value and env_value.strip():
        return env_value.strip()
    return None


class Config(BaseModel):
    """Configuration model for the podcast download pipeline.

    Exactly one feed source must be given: ``feed_url`` (alias ``url``) or
    ``feed_file`` (alias ``file``). The model is immutable after creation.
    Configuration can be created programmatically or loaded from JSON/YAML
    files using `load_config_file()`.

    Attributes:
        feed_url: HTTP(S) URL of the podcast feed.
        feed_file: Path of a previously saved feed file.
        output_dir: Download directory (default "."; OUTPUT_DIR env var when unset).
        filename_mode: "date_title" (default) or "remote_name".
        keep_feed: Save a dated copy of the feed next to the episodes.
        workers: Number of concurrent download workers (minimum: 1).
        timeout: Per-request connect/read timeout in seconds (minimum: 1).
        user_agent: HTTP User-Agent header for requests.
        max_episodes: Maximum number of episodes to download. None downloads all.
        dry_run: Log planned downloads without writing files.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional log file path for file output.

    Example:
        >>> from podcast_downloader import Config
        >>> cfg = Config(url="https://example.com/feed.xml", output_dir="./episodes", workers=8)
    """

    feed_url: Optional[str] = Field(default=None, alias="url")
    feed_file: Optional[str] = Field(default=None, alias="file")
    output_dir: str = Field(
        default=None,
        alias="output_dir",
        validate_default=True,
        description="Output directory path. Can be set via OUTPUT_DIR environment variable.",
    )
    filename_mode: Literal["date_title", "remote_name"] = Field(
        default=DEFAULT_FILENAME_MODE, alias="filename_mode"
    )
    keep_feed: bool = Field(default=False, alias="keep_rss_feed")
    workers: int = Field(default=DEFAULT_WORKERS, alias="workers")
    timeout: int = Field(default=DEFAULT_TIMEOUT_SECONDS, alias="timeout")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, alias="user_agent")
    max_episodes: Optional[int] = Field(default=None, alias="max_episodes")
    dry_run: bool = Field(default=False, alias="dry_run")
    log_level: str = Field(default=None, alias="log_level", validate_default=True)
    log_file: Optional[str] = Field(default=None, alias="log_file", validate_default=True)

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    @field_validator("feed_url", "feed_file", mode="before")
    @classmethod
    def _strip_source(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @field_validator("output_dir", mode="before")
    @classmethod
    def _load_output_dir_from_env(cls, value: Any) -> str:
        """Load output directory from environment variable if not provided."""
        return _from_env_or_value(config_constants.ENV_OUTPUT_DIR, value) or DEFAULT_OUTPUT_DIR

    @field_validator("filename_mode", mode="before")
    @classmethod
    def _normalize_filename_mode(cls, value: Any) -> str:
        if value is None:
            return DEFAULT_FILENAME_MODE
        if isinstance(value, Enum):
            value = value.value
        value_str = str(value).strip().lower().replace("-", "_")
        if value_str not in VALID_FILENAME_MODES:
            raise ValueError(f"filename_mode must be one of {VALID_FILENAME_MODES}, got: {value}")
        return value_str

    @field_validator("workers", mode="before")
    @classmethod
    def _ensure_workers(cls, value: Any) -> int:
        if value is None or value == "":
            return DEFAULT_WORKERS
        try:
            workers = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("workers must be an integer") from exc
        if workers < MIN_WORKERS:
            raise ValueError(f"workers must be at least {MIN_WORKERS}")
        return workers

    @field_validator("timeout", mode="before")
    @classmethod
    def _ensure_timeout(cls, value: Any) -> int:
        if value is None or value == "":
            return DEFAULT_TIMEOUT_SECONDS
        try:
            timeout = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("timeout must be an integer") from exc
        if timeout < MIN_TIMEOUT_SECONDS:
            raise ValueError(f"timeout must be at least {MIN_TIMEOUT_SECONDS}")
        return timeout

    @field_validator("user_agent", mode="before")
    @classmethod
    def _coerce_user_agent(cls, value: Any) -> str:
        if value is None:
            return DEFAULT_USER_AGENT
        return str(value).strip() or DEFAULT_USER_AGENT

    @field_validator("max_episodes", mode="before")
    @classmethod
    def _coerce_max_episodes(cls, value: Any) -> Optional[int]:
        if value is None or value == "":
            return None
        try:
            parsed = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("max_episodes must be an integer") from exc
        return parsed if parsed > 0 else None

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> str:
        """Normalize log level value, falling back to LOG_LEVEL from the environment."""
        level = _from_env_or_value(config_constants.ENV_LOG_LEVEL, value)
        return (level or DEFAULT_LOG_LEVEL).upper()

    @field_validator("log_level", mode="after")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        if value not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {VALID_LOG_LEVELS}, got: {value}")
        return value

    @field_validator("log_file", mode="before")
    @classmethod
    def _load_log_file_from_env(cls, value: Any) -> Optional[str]:
        """Load log file path from environment variable if not provided."""
        return _from_env_or_value(config_constants.ENV_LOG_FILE, value)

    @model_validator(mode="after")
    def _validate_feed_source(self) -> "Config":
        if (self.feed_url is None) == (self.feed_file is None):
            raise ValueError("Exactly one of feed URL or feed file must be provided")
        if self.feed_url is not None:
            parsed = urlparse(self.feed_url)
            if parsed.scheme.lower() not in VALID_FEED_URL_SCHEMES or not parsed.netloc:
                raise ValueError(
                    f"Feed URL must be an absolute http(s) URL, got: {self.feed_url}"
                )
        return self

    @property
    def feed_source(self) -> FeedSource:
        """The configured feed location as a UrlFeedSource or FileFeedSource."""
        if self.feed_url is not None:
            return UrlFeedSource(self.feed_url)
        assert self.feed_file is not None
        return FileFeedSource(Path(self.feed_file))


def load_config_file(path: str) -> Dict[str, Any]:  # noqa: C901 - file parsing handles formats
    """Load configuration from a JSON or YAML file.

    The file format is auto-detected from the file extension (`.json`, `.yaml`,
    or `.yml`). The returned dictionary can be unpacked into the `Config`
    constructor; keys may be field names or aliases.

    Args:
        path: Path to configuration file. Supports tilde expansion.

    Returns:
        Dict[str, Any]: Configuration values from the file.

    Raises:
        ValueError: If the path is empty, the file is missing or unreadable, the
            format is unsupported, parsing fails, or the top level is not a mapping

    Example:
        >>> config_dict = load_config_file("config.yaml")
        >>> cfg = Config(**config_dict)

    Supported Formats:
        **YAML** (`.yaml`, `.yml`):

            url: https://example.com/feed.xml
            output_dir: ./episodes
            workers: 8
    """
    if not path:
        raise ValueError("Config path cannot be empty")

    cfg_path = Path(path).expanduser()
    try:
        resolved = cfg_path.resolve()
    except (OSError, RuntimeError) as exc:
        raise ValueError(f"Invalid config path: {path} ({exc})") from exc

    if not resolved.exists():
        raise ValueError(f"Config file not found: {resolved}")

    suffix = resolved.suffix.lower()
    try:
        text = resolved.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Failed to read config file {resolved}: {exc}") from exc

    if suffix == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON config file {resolved}: {exc}") from exc
    elif suffix in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:  # type: ignore[attr-defined]
            raise ValueError(f"Invalid YAML config file {resolved}: {exc}") from exc
    else:
        raise ValueError(f"Unsupported config file type: {resolved.suffix}")

    if not isinstance(data, dict):
        raise ValueError("Config file must contain a mapping/object at the top level")

    return data
