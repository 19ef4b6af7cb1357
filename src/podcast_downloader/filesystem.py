"""Filesystem utilities for podcast_downloader."""

from __future__ import annotations

import logging
import os
import re
from datetime import date
from pathlib import Path
from typing import BinaryIO, Optional
from urllib.parse import unquote, urlparse

from platformdirs import user_data_dir, user_downloads_dir, user_music_dir

from .exceptions import OutputDirectoryError
from .models import Episode, FilenameMode

logger = logging.getLogger(__name__)

MAX_FILENAME_BYTES = 255
FILENAME_SEPARATOR = " - "
FEED_ARCHIVE_EXTENSION = "xml"
FEED_ARCHIVE_FALLBACK_NAME = "feed"
_PLATFORMDIR_APP_NAMES = ("podcast_downloader", "podcast-downloader", "Podcast Downloader")

_ILLEGAL_CHARS_RE = re.compile(r'[/?<>\\:*|"]')
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x80-\x9f]")
_DOTS_ONLY_RE = re.compile(r"^\.+$")
_WINDOWS_RESERVED_RE = re.compile(r"^(con|prn|aux|nul|com[0-9]|lpt[0-9])(\..*)?$", re.IGNORECASE)
_WINDOWS_TRAILING_RE = re.compile(r"[. ]+$")


def _platformdirs_safe_roots() -> set[Path]:
    """Return resolved platformdirs locations considered safe for outputs."""

    roots: set[Path] = set()
    getters = (
        lambda: user_data_dir(_PLATFORMDIR_APP_NAMES[0]),
        lambda: user_data_dir(_PLATFORMDIR_APP_NAMES[1]),
        lambda: user_data_dir(_PLATFORMDIR_APP_NAMES[2]),
        user_downloads_dir,
        user_music_dir,
    )
    for getter in getters:
        try:
            location = getter()
        # Fall back to next candidate on failure
        except Exception:  # nosec B112
            continue
        if not location:
            continue
        try:
            resolved = Path(location).expanduser().resolve()
        except (OSError, RuntimeError):
            continue
        roots.add(resolved)
    return roots


_PLATFORMDIR_SAFE_ROOTS = _platformdirs_safe_roots()


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Truncate ``text`` so its UTF-8 encoding fits in ``max_bytes``.

    The cut always lands on a code point boundary, so the result decodes cleanly
    and never ends with a partial multi-byte character.

    Args:
        text: String to truncate
        max_bytes: Maximum encoded length in bytes (negative values act as 0)

    Returns:
        The longest prefix of ``text`` whose UTF-8 encoding is at most ``max_bytes``
    """
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[: max(max_bytes, 0)].decode("utf-8", errors="ignore")


def sanitize_filename(name: str) -> str:
    """Sanitize strings for safe filename usage.

    Removes path separators and the other characters reserved on common
    filesystems, drops control characters, blanks out names that are reserved
    on Windows (``CON``, ``NUL.txt``, ``...``), strips trailing dots and spaces,
    and limits the result to ``MAX_FILENAME_BYTES`` UTF-8 bytes. May return an
    empty string; callers decide the fallback.
    """
    cleaned = _ILLEGAL_CHARS_RE.sub("", name)
    cleaned = _CONTROL_CHARS_RE.sub("", cleaned)
    if _DOTS_ONLY_RE.match(cleaned) or _WINDOWS_RESERVED_RE.match(cleaned):
        return ""
    cleaned = _WINDOWS_TRAILING_RE.sub("", cleaned)
    return truncate_utf8(cleaned, MAX_FILENAME_BYTES)


def remote_name(url: str) -> str:
    """Return the percent-decoded final path segment of ``url``."""
    path = urlparse(url).path
    return unquote(path.rsplit("/", 1)[-1])


def build_episode_filename(episode: Episode, mode: FilenameMode) -> str:
    """Derive the on-disk filename for an episode.

    ``FilenameMode.DATE_TITLE`` produces ``"YYYY-MM-DD - <title>.<ext>"`` with the
    title shortened as needed to keep the whole name within ``MAX_FILENAME_BYTES``.
    ``FilenameMode.REMOTE_NAME`` reuses the last segment of the enclosure URL.

    Args:
        episode: A validated episode
        mode: Naming scheme to apply

    Returns:
        Filename without any directory component

    Example:
        >>> build_episode_filename(episode, FilenameMode.DATE_TITLE)
        '2024-01-01 - Episode #1 Intro.mp3'
    """
    if mode is FilenameMode.REMOTE_NAME:
        return sanitize_filename(remote_name(episode.audio_url))

    prefix = episode.publication_date.date().isoformat() + FILENAME_SEPARATOR
    suffix = "." + episode.media_kind.extension
    budget = MAX_FILENAME_BYTES - len(prefix.encode("utf-8")) - len(suffix.encode("utf-8"))
    return f"{prefix}{truncate_utf8(episode.title, budget)}{suffix}"


def build_feed_archive_filename(feed_title: str, today: Optional[date] = None) -> str:
    """Return ``"<today> - <feed title>.xml"`` for the archived feed copy."""
    day = (today or date.today()).isoformat()
    prefix = day + FILENAME_SEPARATOR
    suffix = "." + FEED_ARCHIVE_EXTENSION
    title = sanitize_filename(feed_title or "") or FEED_ARCHIVE_FALLBACK_NAME
    budget = MAX_FILENAME_BYTES - len(prefix.encode("utf-8")) - len(suffix.encode("utf-8"))
    return f"{prefix}{truncate_utf8(title, budget)}{suffix}"


def open_exclusive(path: str) -> BinaryIO:
    """Create ``path`` for binary writing, failing if it already exists.

    Raises:
        FileExistsError: If a file (or anything else) already exists at ``path``
    """
    return open(path, "xb")


def remove_partial_file(path: str) -> None:
    """Delete a partially written file, logging instead of raising on failure."""
    try:
        os.remove(path)
    except FileNotFoundError:
        return
    except OSError as exc:
        logger.warning("Failed to remove partial file %s: %s", path, exc)


def validate_and_normalize_output_dir(path: str) -> str:
    """Validate an output directory path and return an absolute, normalized version."""
    if not path or not path.strip():
        raise ValueError("Output directory path cannot be empty")

    path_obj = Path(path).expanduser()
    try:
        resolved = path_obj.resolve()
    except (OSError, RuntimeError) as exc:
        raise ValueError(f"Invalid output directory path: {path} ({exc})")

    safe_roots = {Path.cwd().resolve(), Path.home().resolve(), *_PLATFORMDIR_SAFE_ROOTS}
    if any(resolved == root or resolved.is_relative_to(root) for root in safe_roots):
        return str(resolved)

    logger.warning(f"Output directory {resolved} is outside recommended locations (home or data).")
    return str(resolved)


def prepare_output_dir(path: str, *, create: bool = True) -> str:
    """Resolve the output directory and make sure it exists.

    Args:
        path: Configured output directory
        create: Create the directory (and parents) when it is missing

    Returns:
        Absolute path of the output directory

    Raises:
        OutputDirectoryError: If the path exists but is not a directory, or
            cannot be created
    """
    try:
        resolved = validate_and_normalize_output_dir(path)
    except ValueError as exc:
        raise OutputDirectoryError(str(exc)) from exc

    if os.path.exists(resolved) and not os.path.isdir(resolved):
        raise OutputDirectoryError(f"Output path exists and is not a directory: {resolved}")
    if create:
        try:
            os.makedirs(resolved, exist_ok=True)
        except OSError as exc:
            raise OutputDirectoryError(
                f"Failed to create output directory {resolved}: {exc}"
            ) from exc
    return resolved


__all__ = [
    "MAX_FILENAME_BYTES",
    "FEED_ARCHIVE_EXTENSION",
    "FEED_ARCHIVE_FALLBACK_NAME",
    "truncate_utf8",
    "sanitize_filename",
    "remote_name",
    "build_episode_filename",
    "build_feed_archive_filename",
    "open_exclusive",
    "remove_partial_file",
    "validate_and_normalize_output_dir",
    "prepare_output_dir",
]
