"""Core workflow orchestration: main pipeline execution.

This module wires the feed loader, the episode extraction and the download
workers together. Workers share a single pre-filled ``queue.Queue`` and pull
episodes from it until it is empty.
"""

from __future__ import annotations

import functools
import logging
import os
import queue
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import date
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from . import config, downloader, feed_loader, filesystem, models, rss_parser
from .episode_processor import download_episode

logger = logging.getLogger(__name__)


def apply_log_level(level: str, log_file: Optional[str] = None) -> None:
    """Apply logging level to root logger and configure handlers.

    Args:
        level: Log level string (e.g., 'DEBUG', 'INFO', 'WARNING')
        log_file: Optional path to log file. If provided, logs will be written to both
                  console and file.

    Raises:
        ValueError: If log level is invalid
        OSError: If log file cannot be created or written to
    """
    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    root_logger = logging.getLogger()
    log_format = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    if not root_logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(logging.Formatter(log_format))
        root_logger.addHandler(console_handler)
        root_logger.setLevel(numeric_level)
    else:
        # Update existing handlers
        root_logger.setLevel(numeric_level)
        for handler in root_logger.handlers:
            handler.setLevel(numeric_level)

    if log_file:
        file_handler_exists = any(
            isinstance(h, logging.FileHandler) and h.baseFilename == os.path.abspath(log_file)
            for h in root_logger.handlers
        )
        if not file_handler_exists:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(logging.Formatter(log_format))
            root_logger.addHandler(file_handler)
            logger.info(f"Logging to file: {log_file}")

    logger.setLevel(numeric_level)


def build_work_queue(episodes: Sequence[models.Episode]) -> "queue.Queue[models.Episode]":
    """Return a queue holding every episode, in order."""
    work_queue: "queue.Queue[models.Episode]" = queue.Queue()
    for episode in episodes:
        work_queue.put(episode)
    return work_queue


def _worker_loop(
    worker_id: int,
    work_queue: "queue.Queue[models.Episode]",
    output_dir: str,
    mode: models.FilenameMode,
    user_agent: str,
    timeout: int,
    dry_run: bool,
) -> List[models.DownloadOutcome]:
    """Drain ``work_queue`` one episode at a time until it is empty.

    The worker thread's HTTP session is closed once the queue is drained.
    """
    outcomes: List[models.DownloadOutcome] = []
    try:
        while True:
            try:
                episode = work_queue.get_nowait()
            except queue.Empty:
                break
            try:
                outcome = download_episode(
                    episode,
                    output_dir,
                    mode,
                    user_agent=user_agent,
                    timeout=timeout,
                    dry_run=dry_run,
                )
            except Exception as exc:
                logger.error(
                    "[worker %s] processing %r raised an unexpected error: %s",
                    worker_id,
                    episode.title,
                    exc,
                    exc_info=True,
                )
                outcome = models.DownloadOutcome(
                    episode, "", models.DownloadStatus.FAILED, error=str(exc)
                )
            finally:
                work_queue.task_done()
            outcomes.append(outcome)
    finally:
        downloader.close_thread_session()
    logger.debug("[worker %s] queue empty; processed %d episodes", worker_id, len(outcomes))
    return outcomes


def download_episodes(
    episodes: Sequence[models.Episode],
    output_dir: str,
    mode: models.FilenameMode = models.FilenameMode.DATE_TITLE,
    *,
    workers: int = config.DEFAULT_WORKERS,
    user_agent: str = config.DEFAULT_USER_AGENT,
    timeout: int = config.DEFAULT_TIMEOUT_SECONDS,
    dry_run: bool = False,
    side_task: Optional[Callable[[], object]] = None,
) -> models.DownloadSummary:
    """Download episodes concurrently with a fixed pool of workers.

    The queue is filled completely before any worker starts and is never
    appended to afterwards. Each worker repeatedly takes one episode with
    ``get_nowait`` and stops once the queue is empty, so every episode is
    attempted by exactly one worker. Returns after all workers have finished.

    Args:
        episodes: Episodes to download
        output_dir: Existing output directory
        mode: Filename scheme
        workers: Number of worker threads (at least 1)
        user_agent: User-Agent header value
        timeout: Per-request connect/read timeout in seconds
        dry_run: Only log planned downloads
        side_task: Optional callable run on the same executor alongside the
            workers (used for feed archiving). Its result is discarded and
            its exceptions are logged.

    Returns:
        DownloadSummary with one outcome per episode
    """
    if workers < 1:
        raise ValueError(f"workers must be at least 1, got {workers}")

    work_queue = build_work_queue(episodes)
    summary = models.DownloadSummary()
    logger.debug("Starting %d download workers for %d episodes", workers, len(episodes))

    max_workers = workers + (1 if side_task is not None else 0)
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        side_future: Optional[Future] = None
        if side_task is not None:
            side_future = executor.submit(side_task)
        worker_futures = [
            executor.submit(
                _worker_loop, worker_id, work_queue, output_dir, mode, user_agent, timeout, dry_run
            )
            for worker_id in range(1, workers + 1)
        ]
        for future in worker_futures:
            summary.outcomes.extend(future.result())
        if side_future is not None:
            try:
                side_future.result()
            except Exception as exc:
                logger.error("Feed archiving failed: %s", exc)

    return summary


def archive_feed(
    raw_bytes: bytes, feed_title: str, output_dir: str, today: Optional[date] = None
) -> Optional[str]:
    """Write a copy of the raw feed as ``"<today> - <feed title>.xml"``.

    An archive already written today is left untouched.

    Args:
        raw_bytes: Feed bytes exactly as loaded
        feed_title: Channel title, sanitized for the filename
        output_dir: Directory to write into
        today: Date used in the filename (defaults to the current date)

    Returns:
        Path of the archive written, or None if it already existed

    Raises:
        OSError: If the file cannot be created or written
    """
    path = os.path.join(output_dir, filesystem.build_feed_archive_filename(feed_title, today))
    try:
        handle = filesystem.open_exclusive(path)
    except FileExistsError:
        logger.info("Feed archive %s already exists; skipping", path)
        return None
    try:
        with handle:
            handle.write(raw_bytes)
    except OSError:
        filesystem.remove_partial_file(path)
        raise
    logger.info("Saved feed archive to %s", path)
    return path


def _summarize(
    cfg: config.Config,
    summary: models.DownloadSummary,
    extraction: models.ExtractionResult,
    output_dir: str,
) -> Tuple[int, str]:
    total = len(extraction.episodes)
    if cfg.dry_run:
        message = (
            f"Dry run complete. episodes_planned={summary.planned}, "
            f"already present {summary.skipped} of {total} episodes -> {output_dir}"
        )
        return summary.planned, message

    message = (
        f"Downloaded {summary.downloaded}, skipped {summary.skipped}, "
        f"failed {summary.failed} of {total} episodes "
        f"({summary.bytes_written} bytes, {len(extraction.failures)} items unusable) -> {output_dir}"
    )
    return summary.downloaded, message


def run_pipeline(cfg: config.Config) -> Tuple[int, str]:
    """Execute the main podcast download pipeline.

    Stages:

    1. Validate (and create) the output directory
    2. Load and parse the feed
    3. Extract episodes, logging and skipping unusable items
    4. Download episodes concurrently, archiving the feed alongside if enabled

    Args:
        cfg: Configuration object

    Returns:
        Tuple[int, str]: number of episodes downloaded (or planned, in dry-run
        mode) and a human-readable summary line

    Raises:
        OutputDirectoryError: If the output path is not a usable directory
        FeedLoadError: If the feed cannot be fetched or read
        FeedParseError: If the feed is not parseable RSS

    Example:
        >>> from podcast_downloader import Config, run_pipeline
        >>>
        >>> cfg = Config(url="https://example.com/feed.xml", output_dir="./episodes")
        >>> count, summary = run_pipeline(cfg)
    """
    start = time.time()
    output_dir = filesystem.prepare_output_dir(cfg.output_dir, create=not cfg.dry_run)
    logger.debug("Effective output dir=%s", output_dir)

    raw_bytes, base_url = feed_loader.load_feed(cfg.feed_source, cfg.user_agent, cfg.timeout)
    feed = rss_parser.parse_feed(raw_bytes, base_url)

    extraction = rss_parser.extract_episodes(feed.items, cfg.max_episodes)
    logger.info(
        "Episodes to download: %d of %d feed items", len(extraction.episodes), len(feed.items)
    )

    side_task: Optional[Callable[[], object]] = None
    if cfg.keep_feed and not cfg.dry_run:
        side_task = functools.partial(archive_feed, raw_bytes, feed.title, output_dir)
    elif cfg.keep_feed:
        logger.info("[dry-run] would save a copy of the feed to %s", output_dir)

    summary = download_episodes(
        extraction.episodes,
        output_dir,
        models.FilenameMode(cfg.filename_mode),
        workers=cfg.workers,
        user_agent=cfg.user_agent,
        timeout=cfg.timeout,
        dry_run=cfg.dry_run,
        side_task=side_task,
    )
    logger.debug("Pipeline finished in %.1fs", time.time() - start)
    return _summarize(cfg, summary, extraction, output_dir)
