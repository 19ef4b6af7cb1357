"""Command-line interface helpers for podcast_downloader."""

from __future__ import annotations

import argparse
import logging
from contextlib import contextmanager
from typing import Any, Callable, cast, Dict, Iterator, List, Optional, Sequence, Tuple, TYPE_CHECKING
from urllib.parse import urlparse

from pydantic import ValidationError

from . import __version__, config, filesystem, progress, workflow
from .exceptions import PipelineError

if TYPE_CHECKING:  # pragma: no cover - typing only
    import tqdm

_LOGGER = logging.getLogger(__name__)

# Progress bar constants
TQDM_NCOLS = 80
TQDM_MIN_INTERVAL = 0.5
TQDM_MIN_ITERS = 1
BYTES_PER_KB = 1024

# Config file keys (field names and aliases) -> argparse destinations
_CONFIG_KEY_TO_DEST = {
    "url": "url",
    "feed_url": "url",
    "file": "file",
    "feed_file": "file",
    "output_dir": "output_dir",
    "filename_mode": "filename_mode",
    "keep_rss_feed": "keep_rss_feed",
    "keep_feed": "keep_rss_feed",
    "workers": "workers",
    "timeout": "timeout",
    "user_agent": "user_agent",
    "max_episodes": "max_episodes",
    "dry_run": "dry_run",
    "log_level": "log_level",
    "log_file": "log_file",
}


class _TqdmProgress:
    """Simple adapter that exposes tqdm's update interface."""

    def __init__(self, bar: "tqdm.tqdm") -> None:
        self._bar = bar

    def update(self, advance: int) -> None:
        self._bar.update(advance)


@contextmanager
def _tqdm_progress(total: Optional[int], description: str) -> Iterator[_TqdmProgress]:
    """Create a tqdm progress context matching the shared progress API."""
    from tqdm import tqdm

    kwargs: Dict[str, Any] = {"desc": description}
    if total is None:
        kwargs.update(
            total=None,
            unit="",
            leave=False,
            miniters=TQDM_MIN_ITERS,
            mininterval=TQDM_MIN_INTERVAL,
            bar_format="{desc}: {elapsed}",
            ncols=TQDM_NCOLS,
            dynamic_ncols=False,
        )
    else:
        kwargs.update(
            total=total,
            unit="B",
            unit_scale=True,
            unit_divisor=BYTES_PER_KB,
            leave=False,
        )

    with tqdm(**kwargs) as bar:
        yield _TqdmProgress(bar)


def _validate_feed_url(url_value: str, errors: List[str]) -> None:
    """Validate feed URL format.

    Args:
        url_value: Feed URL string
        errors: List to append validation errors to
    """
    parsed_obj = urlparse(url_value)
    if parsed_obj.scheme not in config.VALID_FEED_URL_SCHEMES:
        errors.append(f"Feed URL must be http or https: {url_value}")
    if not parsed_obj.netloc:
        errors.append(f"Feed URL must have a valid hostname: {url_value}")


def validate_args(args: argparse.Namespace) -> None:
    """Validate parsed CLI arguments and raise ValueError when invalid."""
    errors: List[str] = []

    url_value = (args.url or "").strip()
    file_value = (args.file or "").strip()
    if url_value and file_value:
        errors.append("Provide either a feed URL or --file, not both")
    elif not url_value and not file_value:
        errors.append("A feed URL or --file is required")
    elif url_value:
        _validate_feed_url(url_value, errors)

    if args.max_episodes is not None and args.max_episodes <= 0:
        errors.append(f"--max-episodes must be positive, got: {args.max_episodes}")

    if args.timeout <= 0:
        errors.append(f"--timeout must be positive, got: {args.timeout}")

    if args.workers < config.MIN_WORKERS:
        errors.append(f"--workers must be at least {config.MIN_WORKERS}")

    if args.log_level not in config.VALID_LOG_LEVELS:
        errors.append(f"--log-level must be one of {', '.join(config.VALID_LOG_LEVELS)}")

    if args.output_dir:
        try:
            filesystem.validate_and_normalize_output_dir(args.output_dir)
        except ValueError as exc:
            errors.append(str(exc))

    if errors:
        raise ValueError("Invalid input parameters:\n  " + "\n  ".join(errors))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="podcast-downloader",
        description="Download podcast episodes from an RSS feed.",
    )
    parser.add_argument("url", nargs="?", default=None, help="Podcast RSS feed URL")
    parser.add_argument(
        "-f", "--file", default=None, help="Read the feed from a previously saved file"
    )
    parser.add_argument(
        "-o",
        "--output-dir",
        default=None,
        help="Directory to download episodes into (default: current directory)",
    )
    parser.add_argument(
        "-r",
        "--use-remote-filename",
        dest="filename_mode",
        action="store_const",
        const="remote_name",
        default=config.DEFAULT_FILENAME_MODE,
        help="Name files after the remote file instead of '<date> - <title>.<ext>'",
    )
    parser.add_argument(
        "-k",
        "--keep-rss-feed",
        action="store_true",
        help="Save a dated copy of the feed into the output directory",
    )
    parser.add_argument(
        "-n",
        "--workers",
        "--n-threads",
        dest="workers",
        type=int,
        default=config.DEFAULT_WORKERS,
        help="Number of concurrent download workers",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=config.DEFAULT_TIMEOUT_SECONDS,
        help="Request timeout in seconds",
    )
    parser.add_argument("--user-agent", default=config.DEFAULT_USER_AGENT, help="User-Agent header")
    parser.add_argument(
        "--max-episodes", type=int, default=None, help="Maximum number of episodes to download"
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Show planned downloads without saving files"
    )
    parser.add_argument("--config", default=None, help="Path to configuration file (JSON or YAML)")
    parser.add_argument(
        "--log-level",
        default=config.DEFAULT_LOG_LEVEL,
        type=str.upper,
        help="Logging level (e.g., DEBUG, INFO)",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Path to log file (logs will be written to both console and file)",
    )
    parser.add_argument("--version", action="store_true", help="Show program version and exit")
    return parser


def _load_and_merge_config(
    parser: argparse.ArgumentParser, config_path: str, argv: Optional[Sequence[str]]
) -> argparse.Namespace:
    """Load configuration file values as parser defaults, then re-parse the CLI.

    Command-line values take precedence over the file.

    Raises:
        ValueError: If the config file is invalid or has unknown keys
    """
    config_data = config.load_config_file(config_path)
    unknown_keys = [key for key in config_data if key not in _CONFIG_KEY_TO_DEST]
    if unknown_keys:
        raise ValueError("Unknown config option(s): " + ", ".join(sorted(unknown_keys)))

    defaults_updates: Dict[str, Any] = {
        _CONFIG_KEY_TO_DEST[key]: value for key, value in config_data.items() if value is not None
    }
    if "log_level" in defaults_updates:
        defaults_updates["log_level"] = str(defaults_updates["log_level"]).upper()
    parser.set_defaults(**defaults_updates)
    return parser.parse_args(argv)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments, optionally merging configuration file defaults."""
    parser = _build_parser()
    initial_args, _ = parser.parse_known_args(argv)

    if initial_args.version:
        print(f"podcast_downloader {__version__}")
        raise SystemExit(0)

    if initial_args.config:
        args = _load_and_merge_config(parser, initial_args.config, argv)
    else:
        args = parser.parse_args(argv)

    validate_args(args)
    return args


def _build_config(args: argparse.Namespace) -> config.Config:
    """Materialize a Config object from already-validated CLI arguments."""
    payload: Dict[str, Any] = {
        "feed_url": args.url,
        "feed_file": args.file,
        "output_dir": args.output_dir,
        "filename_mode": args.filename_mode,
        "keep_feed": args.keep_rss_feed,
        "workers": args.workers,
        "timeout": args.timeout,
        "user_agent": args.user_agent,
        "max_episodes": args.max_episodes,
        "dry_run": args.dry_run,
        "log_level": args.log_level,
        "log_file": args.log_file,
    }
    return cast(config.Config, config.Config.model_validate(payload))


def _log_configuration(cfg: config.Config, logger: logging.Logger) -> None:
    """Log the effective configuration, one setting per line."""
    user_agent = cfg.user_agent if len(cfg.user_agent) <= 50 else f"{cfg.user_agent[:50]}..."
    settings = [
        ("Feed", cfg.feed_source),
        ("Output directory", cfg.output_dir),
        ("Filename mode", cfg.filename_mode),
        ("Keep feed copy", cfg.keep_feed),
        ("Max episodes", cfg.max_episodes or "all"),
        ("Workers", cfg.workers),
        ("Timeout", f"{cfg.timeout}s"),
        ("User-Agent", user_agent),
        ("Dry run", cfg.dry_run),
        ("Log level", cfg.log_level),
        ("Log file", cfg.log_file or "console only"),
    ]
    logger.info("Effective configuration:")
    for label, value in settings:
        logger.info("  %-17s %s", f"{label}:", value)


def main(
    argv: Optional[Sequence[str]] = None,
    *,
    apply_log_level_fn: Optional[Callable[[str, Optional[str]], None]] = None,
    run_pipeline_fn: Optional[Callable[[config.Config], Tuple[int, str]]] = None,
    logger: Optional[logging.Logger] = None,
) -> int:
    """Entry point for the CLI; returns an exit status code."""
    progress.set_progress_factory(_tqdm_progress)
    log = logger or _LOGGER
    if apply_log_level_fn is None:
        apply_log_level_fn = workflow.apply_log_level
    if run_pipeline_fn is None:
        run_pipeline_fn = workflow.run_pipeline

    try:
        args = parse_args(argv)
    except ValueError as exc:
        log.error(f"Error: {exc}")
        return 1

    try:
        cfg = _build_config(args)
    except ValidationError as exc:
        log.error(f"Invalid configuration: {exc}")
        return 1

    apply_log_level_fn(cfg.log_level, cfg.log_file)

    log.info("Starting podcast download")
    _log_configuration(cfg, log)

    try:
        _, summary = run_pipeline_fn(cfg)
    except PipelineError as exc:
        log.error(f"Error: {exc}")
        return 1
    except Exception as exc:
        log.error(f"Unexpected failure: {exc}", exc_info=True)
        return 1

    log.info(summary)
    return 0


if __name__ == "__main__":  # pragma: no cover - script entry
    raise SystemExit(main())
