"""Shared fixtures and test utilities for podcast_downloader tests.

This module contains:
- Test constants
- Helper functions for creating test objects
- Mock classes
- Pytest hooks for validating marker behavior

All test files can import from this module using pytest's conftest.py mechanism.
"""

import argparse
from datetime import datetime, timezone

import pytest

from podcast_downloader import config, models, progress

# Test constants
TEST_BASE_URL = "https://example.com"
TEST_FEED_URL = "https://example.com/feed.xml"
TEST_MEDIA_URL = "https://cdn.example.com/audio/show-42.mp3"
TEST_RELATIVE_MEDIA = "episodes/ep1.mp3"
TEST_EPISODE_TITLE = "Episode #1: Intro"
TEST_EPISODE_TITLE_SAFE = "Episode #1 Intro"
TEST_EPISODE_GUID = "urn:uuid:4a1b2c3d"
TEST_EPISODE_SIZE = 1048576
TEST_PUB_DATE = "Mon, 01 Jan 2024 00:00:00 GMT"
TEST_PUBLICATION_DATE = datetime(2024, 1, 1, tzinfo=timezone.utc)
TEST_FEED_TITLE = "Test Feed"
TEST_OUTPUT_DIR = "output"
TEST_USER_AGENT = "test-agent"
TEST_MEDIA_TYPE_MP3 = "audio/mpeg"
TEST_MEDIA_TYPE_M4A = "audio/x-m4a"
TEST_MEDIA_TYPE_UNSUPPORTED = "audio/ogg"


def create_test_args(**overrides):
    """Create test argparse.Namespace with CLI defaults.

    Args:
        **overrides: Fields to override from defaults

    Returns:
        argparse.Namespace object with test defaults
    """
    defaults = {
        "url": TEST_FEED_URL,
        "file": None,
        "output_dir": None,
        "filename_mode": "date_title",
        "keep_rss_feed": False,
        "workers": 1,
        "timeout": 30,
        "user_agent": TEST_USER_AGENT,
        "max_episodes": None,
        "dry_run": False,
        "config": None,
        "log_level": "INFO",
        "log_file": None,
        "version": False,
    }
    defaults.update(overrides)
    return argparse.Namespace(**defaults)


def create_test_config(**overrides):
    """Create test Config object with defaults.

    Args:
        **overrides: Fields to override from defaults

    Returns:
        config.Config object with test defaults
    """
    defaults = {
        "feed_url": TEST_FEED_URL,
        "output_dir": TEST_OUTPUT_DIR,
        "user_agent": TEST_USER_AGENT,
        "timeout": 30,
        "workers": 1,
        "log_level": "INFO",
    }
    if "feed_file" in overrides and "feed_url" not in overrides:
        defaults.pop("feed_url")
    defaults.update(overrides)
    return config.Config(**defaults)


def create_test_episode(**overrides):
    """Create test Episode object with defaults.

    Args:
        **overrides: Fields to override from defaults

    Returns:
        models.Episode object with test defaults
    """
    defaults = {
        "title": TEST_EPISODE_TITLE_SAFE,
        "audio_url": TEST_MEDIA_URL,
        "size": TEST_EPISODE_SIZE,
        "publication_date": TEST_PUBLICATION_DATE,
        "media_kind": models.MediaKind.MP3,
    }
    defaults.update(overrides)
    return models.Episode(**defaults)


_UNSET = object()


def create_raw_item(
    title=TEST_EPISODE_TITLE,
    guid=None,
    url=TEST_MEDIA_URL,
    length=str(TEST_EPISODE_SIZE),
    mime_type=TEST_MEDIA_TYPE_MP3,
    pub_date=TEST_PUB_DATE,
    enclosure=_UNSET,
    enclosure_count=None,
):
    """Create a RawItem with a single valid enclosure unless overridden.

    Pass ``enclosure=None`` for an item without any enclosure.
    """
    if enclosure is _UNSET:
        enclosure = models.RawEnclosure(url=url, length=length, mime_type=mime_type)
    if enclosure_count is None:
        enclosure_count = 0 if enclosure is None else 1
    return models.RawItem(
        title=title,
        guid=guid,
        enclosure=enclosure,
        pub_date=pub_date,
        enclosure_count=enclosure_count,
    )


def build_item_xml(
    title=TEST_EPISODE_TITLE,
    url=TEST_MEDIA_URL,
    length=str(TEST_EPISODE_SIZE),
    mime_type=TEST_MEDIA_TYPE_MP3,
    pub_date=TEST_PUB_DATE,
    guid=None,
):
    """Build one RSS <item> element as a string; None omits the field."""
    parts = ["    <item>"]
    if title is not None:
        parts.append(f"      <title>{title}</title>")
    if guid is not None:
        parts.append(f"      <guid>{guid}</guid>")
    if url is not None:
        parts.append(f'      <enclosure url="{url}" length="{length}" type="{mime_type}" />')
    if pub_date is not None:
        parts.append(f"      <pubDate>{pub_date}</pubDate>")
    parts.append("    </item>")
    return "\n".join(parts)


def build_rss_xml(title=TEST_FEED_TITLE, items=None):
    """Build RSS XML for a channel with the given <item> strings.

    Args:
        title: Feed title
        items: List of item XML strings (see ``build_item_xml``)

    Returns:
        RSS XML string
    """
    items_xml = "\n".join(items or [])
    return f"""<?xml version='1.0'?>
<rss version="2.0">
  <channel>
    <title>{title}</title>
{items_xml}
  </channel>
</rss>""".strip()


def create_media_response(media_bytes, url, content_type="audio/mpeg", content_length=None):
    """Create MockHTTPResponse for media file.

    Args:
        media_bytes: Media file bytes
        url: Media URL
        content_type: Content type header
        content_length: Content-Length header override (defaults to the body size;
            pass False to omit the header)

    Returns:
        MockHTTPResponse object
    """
    headers = {"Content-Type": content_type}
    if content_length is None:
        headers["Content-Length"] = str(len(media_bytes))
    elif content_length is not False:
        headers["Content-Length"] = str(content_length)
    return MockHTTPResponse(url=url, headers=headers, chunks=[media_bytes])


def create_rss_response(rss_xml, url):
    """Create MockHTTPResponse for an RSS feed."""
    return MockHTTPResponse(
        content=rss_xml.encode("utf-8"),
        url=url,
        headers={"Content-Type": "application/rss+xml"},
    )


class MockRawStream:
    """Stand-in for the urllib3 response behind ``Response.raw``."""

    def __init__(self, wire_bytes):
        self.wire_bytes = wire_bytes

    def tell(self):
        return self.wire_bytes


class MockHTTPResponse:
    """Simple mock for HTTP responses."""

    def __init__(
        self, *, content=b"", url="", headers=None, chunks=None, error=None, raw=None
    ):
        self.status_code = 200
        self.content = content
        self.raw = raw
        self.url = url
        self.headers = headers or {}
        self.closed = False
        self._chunks = chunks if chunks is not None else [content]
        self._error = error

    def raise_for_status(self):
        return None

    def iter_content(self, chunk_size=1):
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error

    def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def reset_progress_factory():
    """Keep the global progress factory from leaking between tests."""
    yield
    progress.set_progress_factory(None)


def pytest_collection_modifyitems(config, items):
    """Validate that markers are working correctly.

    When running with ``-m integration``, fail loudly if no integration tests
    were collected.
    """
    marker_expr = config.getoption("-m", default=None)
    if marker_expr == "integration":
        if not [item for item in items if item.get_closest_marker("integration")]:
            pytest.fail(
                "ERROR: Running with -m integration but no integration tests collected! "
                "Check that tests have the @pytest.mark.integration decorator."
            )
