"""Configuration constants for podcast_downloader.

All constants are re-exported from config.py for convenience.
"""

# General defaults
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_OUTPUT_DIR = "."
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/119.0 Safari/537.36"
)
DEFAULT_WORKERS = 4
DEFAULT_FILENAME_MODE = "date_title"

# Validation constants
MIN_WORKERS = 1
MIN_TIMEOUT_SECONDS = 1
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
VALID_FILENAME_MODES = ("date_title", "remote_name")
VALID_FEED_URL_SCHEMES = ("http", "https")

# Environment variables consulted when a value is not configured explicitly
ENV_OUTPUT_DIR = "OUTPUT_DIR"
ENV_LOG_LEVEL = "LOG_LEVEL"
ENV_LOG_FILE = "LOG_FILE"
