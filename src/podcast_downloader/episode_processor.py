"""Episode-level processing: create the target file and stream the media into it."""

from __future__ import annotations

import logging
import os
import time
from typing import BinaryIO, Optional

import requests

from . import downloader, filesystem, models

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


def _download_into(
    episode: models.Episode, handle: BinaryIO, filename: str, user_agent: str, timeout: int
) -> Optional[int]:
    """Fetch the enclosure and stream it into ``handle``.

    Content-Length counts the bytes on the wire, so for gzip or otherwise
    encoded bodies it is compared against the wire count rather than the
    decoded bytes written to disk.

    Returns:
        Bytes written, or None when the request itself failed

    Raises:
        requests.RequestException: If the connection fails mid-transfer
        OSError: If writing fails
    """
    resp = downloader.fetch_url(episode.audio_url, user_agent, timeout, stream=True)
    if resp is None:
        return None
    try:
        content_length = downloader.parse_content_length(resp)
        encoded = downloader.content_is_encoded(resp)
        if content_length is not None and not encoded and content_length != episode.size:
            logger.warning(
                "Size mismatch for %r: feed declares %d bytes, server reports %d",
                episode.title,
                episode.size,
                content_length,
            )
        if content_length is not None and not encoded:
            total_size = content_length
        else:
            total_size = episode.size or None
        bytes_written = downloader.stream_to_file(
            resp,
            handle,
            total_size=total_size,
            description=f"Downloading {filename}",
        )
        received = downloader.bytes_received(resp, bytes_written)
    finally:
        resp.close()

    if content_length is not None:
        expected, actual = content_length, received
    else:
        expected, actual = episode.size, bytes_written
    if actual != expected:
        logger.warning(
            "Incomplete or oversized download for %r: expected %d bytes, got %d",
            episode.title,
            expected,
            actual,
        )
    return bytes_written


def download_episode(
    episode: models.Episode,
    output_dir: str,
    mode: models.FilenameMode,
    *,
    user_agent: str,
    timeout: int,
    dry_run: bool = False,
) -> models.DownloadOutcome:
    """Download one episode into ``output_dir`` unless its file already exists.

    The target file is created exclusively before any network traffic, so two
    workers (or two runs) racing for the same name never both write it. Any
    failure after creation removes the partial file so a later run retries it.
    Network and filesystem problems are reported through the returned
    outcome; anything else propagates after the partial file is removed.

    Args:
        episode: Episode to download
        output_dir: Existing directory the file is written into
        mode: Filename scheme
        user_agent: User-Agent header value
        timeout: Per-request connect/read timeout in seconds
        dry_run: Only log what would be downloaded

    Returns:
        DownloadOutcome describing what happened
    """
    filename = filesystem.build_episode_filename(episode, mode)
    path = os.path.join(output_dir, filename)

    if dry_run:
        if os.path.exists(path):
            logger.info("[dry-run] %s already exists; would skip", path)
            return models.DownloadOutcome(episode, path, models.DownloadStatus.SKIPPED)
        logger.info("[dry-run] would download %s -> %s", episode.audio_url, path)
        return models.DownloadOutcome(episode, path, models.DownloadStatus.PLANNED)

    try:
        handle = filesystem.open_exclusive(path)
    except FileExistsError:
        logger.info("Skipping %r: %s already exists", episode.title, path)
        return models.DownloadOutcome(episode, path, models.DownloadStatus.SKIPPED)
    except OSError as exc:
        logger.warning("Failed to create %s for %r: %s", path, episode.title, exc)
        return models.DownloadOutcome(
            episode, path, models.DownloadStatus.FAILED, error=str(exc)
        )

    logger.info("Downloading %r -> %s", episode.title, filename)
    dl_start = time.time()
    try:
        with handle:
            bytes_written = _download_into(episode, handle, filename, user_agent, timeout)
    except (requests.RequestException, OSError) as exc:
        logger.warning("Failed to download %r from %s: %s", episode.title, episode.audio_url, exc)
        filesystem.remove_partial_file(path)
        return models.DownloadOutcome(
            episode, path, models.DownloadStatus.FAILED, error=str(exc)
        )
    except Exception:
        filesystem.remove_partial_file(path)
        raise

    if bytes_written is None:
        filesystem.remove_partial_file(path)
        return models.DownloadOutcome(
            episode,
            path,
            models.DownloadStatus.FAILED,
            error=f"request to {episode.audio_url} failed",
        )

    dl_elapsed = time.time() - dl_start
    logger.debug(
        "Downloaded %r: %.2f MB in %.1fs", episode.title, bytes_written / BYTES_PER_MB, dl_elapsed
    )
    return models.DownloadOutcome(
        episode, path, models.DownloadStatus.DOWNLOADED, bytes_written=bytes_written
    )
