"""RSS feed parsing and episode extraction."""

from __future__ import annotations

import logging
import re

# Bandit: parsing handled via defusedxml safe APIs
import xml.etree.ElementTree as ET  # nosec B405
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Iterable, List, Optional
from urllib.parse import urljoin, urlparse

from defusedxml import DefusedXmlException
from defusedxml.ElementTree import fromstring as safe_fromstring, ParseError as DefusedXMLParseError

from . import filesystem, models
from .exceptions import (
    ExtractionError,
    FeedParseError,
    InvalidEnclosureSizeError,
    MissingEnclosureError,
    MissingOrInvalidDateError,
    MissingTitleError,
    UnsupportedMediaTypeError,
)

logger = logging.getLogger(__name__)

MAX_ENCLOSURE_SIZE = 2**64
ALLOWED_MEDIA_URL_SCHEMES = ("http", "https")
_DIGITS_RE = re.compile(r"[0-9]+")


def _local_name(tag: object) -> str:
    """Return the lower-cased tag name without its namespace."""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1].lower()


def _child_text(element: ET.Element, tag: str) -> Optional[str]:
    """Return the text of the plain ``tag`` child, else of any namespaced match."""
    child = element.find(tag)
    if child is None:
        name = tag.lower()
        child = next((e for e in element if _local_name(e.tag) == name), None)
    return child.text if child is not None else None


def _children(element: ET.Element, tag: str) -> List[ET.Element]:
    children = element.findall(tag)
    if not children:
        children = [e for e in element if _local_name(e.tag) == tag.lower()]
    return children


def parse_rss_items(xml_bytes: bytes) -> tuple[str, List[ET.Element]]:
    """Parse RSS XML and extract the channel title and item elements.

    Args:
        xml_bytes: Raw RSS feed XML content

    Returns:
        Tuple of (channel_title, list_of_items)

    Raises:
        FeedParseError: If the bytes are not well-formed XML or contain no channel
    """
    try:
        root = safe_fromstring(xml_bytes)
    except (DefusedXMLParseError, DefusedXmlException, ValueError) as exc:
        raise FeedParseError(f"Failed to parse RSS XML: {exc}") from exc
    if root is None:
        raise FeedParseError("Failed to parse RSS XML: empty document")

    channel = root.find("channel")
    if channel is None:
        channel = next((e for e in root.iter() if _local_name(e.tag) == "channel"), None)
    if channel is None:
        raise FeedParseError("Feed has no <channel> element")

    title = (_child_text(channel, "title") or "").strip()
    items = _children(channel, "item")
    return title, items


def raw_item_from_element(item: ET.Element, base_url: str = "") -> models.RawItem:
    """Reduce an RSS ``<item>`` element to a RawItem.

    Relative enclosure URLs are resolved against ``base_url`` when one is known.

    Args:
        item: RSS item element
        base_url: Base URL for resolving relative URLs

    Returns:
        RawItem with the unvalidated title, guid, enclosure and pubDate
    """
    enclosures = _children(item, "enclosure")
    enclosure = None
    if enclosures:
        attrib = enclosures[0].attrib
        url = attrib.get("url")
        if url and base_url:
            url = urljoin(base_url, url.strip())
        enclosure = models.RawEnclosure(
            url=url, length=attrib.get("length"), mime_type=attrib.get("type")
        )
    return models.RawItem(
        title=_child_text(item, "title"),
        guid=_child_text(item, "guid"),
        enclosure=enclosure,
        pub_date=_child_text(item, "pubDate"),
        enclosure_count=len(enclosures),
    )


def parse_feed(xml_bytes: bytes, base_url: str = "") -> models.RssFeed:
    """Parse feed bytes into an RssFeed.

    Args:
        xml_bytes: Raw RSS feed XML content
        base_url: Feed location used to resolve relative enclosure URLs

    Returns:
        An RssFeed with the channel title, raw items, base URL and the original bytes

    Raises:
        FeedParseError: If the bytes are not a parseable RSS feed
    """
    title, elements = parse_rss_items(xml_bytes)
    items = [raw_item_from_element(element, base_url) for element in elements]
    logger.debug("Parsed feed %r with %d items", title, len(items))
    return models.RssFeed(title=title, items=items, base_url=base_url, raw_bytes=xml_bytes)


def _resolve_title(raw: models.RawItem) -> str:
    for candidate in (raw.title, raw.guid):
        if not candidate:
            continue
        # Collapse newlines and runs of whitespace before sanitizing
        normalized = " ".join(candidate.split())
        safe = filesystem.sanitize_filename(normalized)
        if safe:
            return safe
    raise MissingTitleError()


def _resolve_audio_url(raw: models.RawItem) -> str:
    if raw.enclosure is None:
        raise MissingEnclosureError("Item has no enclosure")
    if raw.enclosure_count > 1:
        raise MissingEnclosureError(f"Item has {raw.enclosure_count} enclosures, expected one")

    url = (raw.enclosure.url or "").strip()
    if not url:
        raise MissingEnclosureError("Enclosure has no URL")
    try:
        parsed = urlparse(url)
        host = parsed.hostname
    except ValueError as exc:
        raise MissingEnclosureError(f"Enclosure URL is not parseable: {url!r} ({exc})") from exc
    if parsed.scheme.lower() not in ALLOWED_MEDIA_URL_SCHEMES or not host:
        raise MissingEnclosureError(f"Enclosure URL is not an absolute http(s) URL: {url!r}")
    if not filesystem.sanitize_filename(filesystem.remote_name(url)):
        raise MissingEnclosureError(f"Enclosure URL has no usable file name: {url!r}")
    return url


def _parse_size(raw: models.RawItem) -> int:
    assert raw.enclosure is not None
    text = (raw.enclosure.length or "").strip()
    if not _DIGITS_RE.fullmatch(text):
        raise InvalidEnclosureSizeError(f"Invalid enclosure length: {raw.enclosure.length!r}")
    size = int(text)
    if size >= MAX_ENCLOSURE_SIZE:
        raise InvalidEnclosureSizeError(f"Enclosure length out of range: {text}")
    return size


def _parse_publication_date(raw: models.RawItem) -> datetime:
    text = (raw.pub_date or "").strip()
    if not text:
        raise MissingOrInvalidDateError("Item has no publication date")
    try:
        parsed = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError, OverflowError) as exc:
        raise MissingOrInvalidDateError(f"Invalid publication date: {text!r}") from exc
    if parsed is None:
        raise MissingOrInvalidDateError(f"Invalid publication date: {text!r}")
    return parsed


def create_episode(raw: models.RawItem) -> models.Episode:
    """Validate a raw feed item and build an Episode from it.

    Checks run in a fixed order (title, enclosure, size, media type, date) and
    the first failing check determines the error raised. No side effects.

    Args:
        raw: Item as read from the feed

    Returns:
        A fully valid Episode

    Raises:
        MissingTitleError: Neither title nor GUID yields a usable name
        MissingEnclosureError: No single enclosure with an absolute http(s) URL
        InvalidEnclosureSizeError: Enclosure length is not an unsigned 64-bit integer
        UnsupportedMediaTypeError: Enclosure MIME type is not in the media table
        MissingOrInvalidDateError: pubDate is missing or not RFC 2822
    """
    title = _resolve_title(raw)
    audio_url = _resolve_audio_url(raw)
    size = _parse_size(raw)
    mime_type = raw.enclosure.mime_type if raw.enclosure else None
    media_kind = models.MediaKind.from_mime_type(mime_type)
    if media_kind is None:
        raise UnsupportedMediaTypeError(mime_type)
    publication_date = _parse_publication_date(raw)
    return models.Episode(
        title=title,
        audio_url=audio_url,
        size=size,
        publication_date=publication_date,
        media_kind=media_kind,
    )


def extract_episodes(
    items: Iterable[models.RawItem], max_episodes: Optional[int] = None
) -> models.ExtractionResult:
    """Convert raw items into episodes, skipping and logging the unusable ones.

    Items are numbered from 1 in feed order. Extraction never aborts on a bad
    item; each failure is logged at WARNING and collected in the result.

    Args:
        items: Raw feed items in feed order
        max_episodes: Stop after this many episodes have been extracted

    Returns:
        ExtractionResult with the episodes and the ``(index, error)`` failures
    """
    result = models.ExtractionResult()
    for idx, raw in enumerate(items, start=1):
        if max_episodes is not None and len(result.episodes) >= max_episodes:
            break
        try:
            episode = create_episode(raw)
        except ExtractionError as exc:
            logger.warning("Skipping %s: %s", raw.describe(idx), exc.message)
            result.failures.append((idx, exc))
            continue
        result.episodes.append(episode)
    return result
