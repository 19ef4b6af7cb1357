#!/usr/bin/env python3
"""Tests for HTTP downloader functionality."""

import io
import sys
import threading
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests

from podcast_downloader import downloader, progress

tests_dir = Path(__file__).resolve().parents[2]
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

from conftest import (  # noqa: E402
    create_media_response,
    MockHTTPResponse,
    MockRawStream,
    TEST_FEED_URL,
    TEST_MEDIA_URL,
    TEST_USER_AGENT,
)


class TestHTTPSessionConfiguration(unittest.TestCase):
    """Tests for HTTP session configuration."""

    def test_adapters_make_a_single_attempt(self):
        session = requests.Session()
        try:
            downloader._configure_http_session(session)
            for prefix in ("https://", "http://"):
                adapter = session.get_adapter(prefix)
                self.assertIsInstance(adapter, requests.adapters.HTTPAdapter)
                self.assertEqual(adapter.max_retries.total, downloader.HTTP_RETRY_TOTAL)
                self.assertEqual(adapter.max_retries.total, 0)
        finally:
            session.close()

    def test_sessions_are_thread_local(self):
        sessions = []

        def grab():
            sessions.append(downloader._get_thread_request_session())

        grab()
        grab()
        thread = threading.Thread(target=grab)
        thread.start()
        thread.join()

        self.assertIs(sessions[0], sessions[1])
        self.assertIsNot(sessions[0], sessions[2])

    def test_closed_session_is_dropped_and_replaced(self):
        sessions = []

        def run():
            first = downloader._get_thread_request_session()
            downloader.close_thread_session()
            second = downloader._get_thread_request_session()
            downloader.close_thread_session()
            sessions.extend([first, second])

        thread = threading.Thread(target=run)
        thread.start()
        thread.join()

        self.assertIsNot(sessions[0], sessions[1])
        with downloader._SESSION_REGISTRY_LOCK:
            self.assertNotIn(sessions[0], downloader._SESSION_REGISTRY)
            self.assertNotIn(sessions[1], downloader._SESSION_REGISTRY)

    def test_close_without_session_is_a_no_op(self):
        thread = threading.Thread(target=downloader.close_thread_session)
        thread.start()
        thread.join()


class TestNormalizeURL(unittest.TestCase):
    def test_simple_url_unchanged(self):
        self.assertEqual(downloader.normalize_url(TEST_MEDIA_URL), TEST_MEDIA_URL)

    def test_non_ascii_is_quoted(self):
        result = downloader.normalize_url(f"{TEST_MEDIA_URL}/тест")
        self.assertIn("%D1%82%D0%B5%D1%81%D1%82", result)

    def test_existing_escapes_preserved(self):
        url = "https://cdn.example.com/My%20Show.mp3"
        self.assertEqual(downloader.normalize_url(url), url)


class TestFetchURL(unittest.TestCase):
    """Tests for fetch_url."""

    @patch("podcast_downloader.downloader._get_thread_request_session")
    def test_returns_response_and_sends_user_agent(self, mock_session_factory):
        session = MagicMock()
        response = MockHTTPResponse(content=b"ok", url=TEST_FEED_URL)
        session.get.return_value = response
        mock_session_factory.return_value = session

        result = downloader.fetch_url(TEST_FEED_URL, TEST_USER_AGENT, 7, stream=True)

        self.assertIs(result, response)
        session.get.assert_called_once_with(
            TEST_FEED_URL, headers={"User-Agent": TEST_USER_AGENT}, timeout=7, stream=True
        )

    @patch("podcast_downloader.downloader._get_thread_request_session")
    def test_request_failure_returns_none_and_logs(self, mock_session_factory):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("refused")
        mock_session_factory.return_value = session

        with self.assertLogs("podcast_downloader.downloader", level="WARNING") as logs:
            result = downloader.fetch_url(TEST_FEED_URL, TEST_USER_AGENT, 5)

        self.assertIsNone(result)
        self.assertEqual(session.get.call_count, 1)
        self.assertIn("refused", logs.output[0])

    @patch("podcast_downloader.downloader._get_thread_request_session")
    def test_http_error_status_returns_none(self, mock_session_factory):
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError("404 Client Error")
        session = MagicMock()
        session.get.return_value = response
        mock_session_factory.return_value = session

        with self.assertLogs("podcast_downloader.downloader", level="WARNING"):
            self.assertIsNone(downloader.fetch_url(TEST_FEED_URL, TEST_USER_AGENT, 5))


class TestHttpGet(unittest.TestCase):
    @patch("podcast_downloader.downloader.fetch_url")
    def test_returns_body_and_final_url(self, mock_fetch):
        response = MockHTTPResponse(content=b"<rss/>", url="https://example.com/moved.xml")
        mock_fetch.return_value = response

        content, final_url = downloader.http_get(TEST_FEED_URL, TEST_USER_AGENT, 5)

        self.assertEqual(content, b"<rss/>")
        self.assertEqual(final_url, "https://example.com/moved.xml")
        self.assertTrue(response.closed)

    @patch("podcast_downloader.downloader.fetch_url", return_value=None)
    def test_failed_request(self, _mock_fetch):
        self.assertEqual(downloader.http_get(TEST_FEED_URL, TEST_USER_AGENT, 5), (None, None))


class TestParseContentLength(unittest.TestCase):
    def test_values(self):
        cases = [({"Content-Length": "2000"}, 2000), ({}, None), ({"Content-Length": "x"}, None)]
        for headers, expected in cases:
            with self.subTest(headers=headers):
                response = MockHTTPResponse(headers=headers)
                self.assertEqual(downloader.parse_content_length(response), expected)

    def test_negative_value_is_ignored(self):
        response = MockHTTPResponse(headers={"Content-Length": "-5"})
        self.assertIsNone(downloader.parse_content_length(response))


class TestEncodedBodies(unittest.TestCase):
    """Tests for wire byte accounting of content-encoded responses."""

    def test_content_is_encoded(self):
        cases = [
            ({}, False),
            ({"Content-Encoding": "identity"}, False),
            ({"Content-Encoding": "gzip"}, True),
            ({"Content-Encoding": " Deflate "}, True),
        ]
        for headers, expected in cases:
            with self.subTest(headers=headers):
                response = MockHTTPResponse(headers=headers)
                self.assertEqual(downloader.content_is_encoded(response), expected)

    def test_gzip_uses_raw_stream_position(self):
        response = MockHTTPResponse(
            headers={"Content-Encoding": "gzip"}, raw=MockRawStream(40)
        )
        self.assertEqual(downloader.bytes_received(response, 5000), 40)

    def test_plain_body_uses_decoded_count(self):
        response = MockHTTPResponse(raw=MockRawStream(40))
        self.assertEqual(downloader.bytes_received(response, 5000), 5000)

    def test_missing_raw_stream_falls_back(self):
        response = MockHTTPResponse(headers={"Content-Encoding": "gzip"})
        self.assertEqual(downloader.bytes_received(response, 5000), 5000)


class TestStreamToFile(unittest.TestCase):
    """Tests for streaming a response body into a file object."""

    def test_writes_all_chunks_and_reports_progress(self):
        response = MockHTTPResponse(url=TEST_MEDIA_URL, chunks=[b"abc", b"", b"defg"])
        handle = io.BytesIO()
        updates = []

        class _Recorder:
            def update(self, advance):
                updates.append(advance)

        from contextlib import contextmanager

        @contextmanager
        def factory(total, description):
            self.assertEqual(total, 7)
            self.assertEqual(description, "Downloading show-42.mp3")
            yield _Recorder()

        progress.set_progress_factory(factory)
        written = downloader.stream_to_file(
            response, handle, total_size=7, description="Downloading show-42.mp3"
        )

        self.assertEqual(written, 7)
        self.assertEqual(handle.getvalue(), b"abcdefg")
        self.assertEqual(updates, [3, 4])

    def test_mid_transfer_error_propagates(self):
        response = MockHTTPResponse(
            url=TEST_MEDIA_URL, chunks=[b"abc"], error=requests.ConnectionError("reset")
        )
        handle = io.BytesIO()
        with self.assertRaises(requests.ConnectionError):
            downloader.stream_to_file(response, handle)
        self.assertEqual(handle.getvalue(), b"abc")

    def test_media_response_helper_sets_length(self):
        response = create_media_response(b"12345", TEST_MEDIA_URL)
        self.assertEqual(downloader.parse_content_length(response), 5)


if __name__ == "__main__":
    unittest.main()
