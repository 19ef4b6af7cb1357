# This project is intended for personal, non-commercial use only.
# See README and docs/legal.md for details.

"""Podcast Downloader - Download podcast episodes from RSS feeds.

This package downloads the media enclosures of a podcast feed into a local
directory:
- From a feed URL or a previously saved feed file
- With stable, filesystem-safe filenames ("<date> - <title>.<ext>" or the remote name)
- With multi-threaded downloads and idempotent, resumable runs

Programmatic API Example:
    >>> import podcast_downloader
    >>>
    >>> config = podcast_downloader.Config(
    ...     url="https://example.com/feed.xml",
    ...     output_dir="./episodes",
    ...     workers=8,
    ... )
    >>> count, summary = podcast_downloader.run_pipeline(config)
    >>> print(f"Downloaded {count} episodes")

CLI Usage:
    $ podcast-downloader https://example.com/feed.xml -o ./episodes
    $ python -m podcast_downloader --file saved-feed.xml --use-remote-filename
"""

from __future__ import annotations

__version__ = "1.0.0"

from .config import Config, load_config_file
from .exceptions import ExtractionError, PipelineError, PodcastDownloaderError
from .models import Episode, FilenameMode, MediaKind
from .workflow import run_pipeline

__all__ = [
    "Config",
    "Episode",
    "ExtractionError",
    "FilenameMode",
    "MediaKind",
    "PipelineError",
    "PodcastDownloaderError",
    "load_config_file",
    "run_pipeline",
    "__version__",
]
