"""Load raw feed bytes from a URL or a previously saved file."""

from __future__ import annotations

import logging
from typing import Tuple

from . import downloader, models
from .exceptions import FeedLoadError

logger = logging.getLogger(__name__)


def _load_from_url(source: models.UrlFeedSource, user_agent: str, timeout: int) -> Tuple[bytes, str]:
    logger.info("Fetching feed from %s", source.url)
    content, final_url = downloader.http_get(source.url, user_agent, timeout)
    if content is None:
        raise FeedLoadError(f"Failed to fetch RSS feed from {source.url}")
    return content, final_url or source.url


def _load_from_file(source: models.FileFeedSource) -> Tuple[bytes, str]:
    logger.info("Reading feed from %s", source.path)
    try:
        return source.path.expanduser().read_bytes(), ""
    except OSError as exc:
        raise FeedLoadError(f"Failed to read RSS feed file {source.path}: {exc}") from exc


def load_feed(source: models.FeedSource, user_agent: str, timeout: int) -> Tuple[bytes, str]:
    """Return the feed bytes and the base URL for resolving relative links.

    Local files have no base URL, so the second element is empty for them.

    Raises:
        FeedLoadError: If the feed cannot be fetched or read
    """
    if isinstance(source, models.UrlFeedSource):
        xml_bytes, base_url = _load_from_url(source, user_agent, timeout)
    elif isinstance(source, models.FileFeedSource):
        xml_bytes, base_url = _load_from_file(source)
    else:  # pragma: no cover - guarded by Config validation
        raise TypeError(f"Unsupported feed source: {source!r}")
    logger.debug("Loaded %d feed bytes from %s", len(xml_bytes), source)
    return xml_bytes, base_url
