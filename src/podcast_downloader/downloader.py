"""HTTP session management and download helpers for podcast_downloader."""

from __future__ import annotations

import atexit
import logging
import threading
from typing import BinaryIO, cast, List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from requests.utils import requote_uri
from urllib3.util.retry import Retry

from . import progress
from .progress import ProgressReporter

logger = logging.getLogger(__name__)

# Track if we've suppressed urllib3 logs (lazy initialization)
_urllib3_logs_suppressed = False


def _suppress_urllib3_debug_logs() -> None:
    """Suppress verbose urllib3 debug logs when root logger is DEBUG.

    Called lazily on first session use, once the root logger is configured.
    """
    global _urllib3_logs_suppressed
    if _urllib3_logs_suppressed:
        return

    root_logger = logging.getLogger()
    root_level = root_logger.level if root_logger.level else logging.INFO
    if root_level <= logging.DEBUG:
        for logger_name in ("urllib3", "urllib3.connectionpool", "urllib3.connection"):
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    _urllib3_logs_suppressed = True


DOWNLOAD_CHUNK_SIZE = 1024 * 256
# Every request is attempted exactly once
HTTP_RETRY_TOTAL = 0

_THREAD_LOCAL = threading.local()
_SESSION_REGISTRY: List[requests.Session] = []
_SESSION_REGISTRY_LOCK = threading.Lock()


def normalize_url(url: str) -> str:
    """Normalize URLs while preserving already-encoded segments."""
    normalized = requote_uri(url)
    if normalized != url:
        logger.debug("Normalized URL %s -> %s", url, normalized)
    return cast(str, normalized)


def _configure_http_session(session: requests.Session) -> None:
    """Attach single-attempt HTTP adapters to a session."""
    retry = Retry(total=HTTP_RETRY_TOTAL, raise_on_status=False)
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    logger.debug("Configured HTTP session %s with single-attempt adapters", hex(id(session)))


def _get_thread_request_session() -> requests.Session:
    # Suppress urllib3 debug logs on first use
    _suppress_urllib3_debug_logs()

    session = getattr(_THREAD_LOCAL, "session", None)
    if session is None:
        session = requests.Session()
        _configure_http_session(session)
        setattr(_THREAD_LOCAL, "session", session)
        with _SESSION_REGISTRY_LOCK:
            _SESSION_REGISTRY.append(session)
        logger.debug("Created new thread-local HTTP session %s", hex(id(session)))
    return session


def _close_all_sessions() -> None:
    with _SESSION_REGISTRY_LOCK:
        for session in _SESSION_REGISTRY:
            try:
                session.close()
            # Best-effort cleanup; ignore shutdown errors
            except Exception:  # pragma: no cover  # nosec B110
                pass
        _SESSION_REGISTRY.clear()


def close_thread_session() -> None:
    """Close and forget the calling thread's session, if it has one."""
    session = getattr(_THREAD_LOCAL, "session", None)
    if session is None:
        return
    _THREAD_LOCAL.session = None
    with _SESSION_REGISTRY_LOCK:
        if session in _SESSION_REGISTRY:
            _SESSION_REGISTRY.remove(session)
    session.close()
    logger.debug("Closed thread-local HTTP session %s", hex(id(session)))


atexit.register(_close_all_sessions)


def _open_http_request(
    url: str, user_agent: str, timeout: int, *, stream: bool = False
) -> Optional[requests.Response]:
    """Execute an HTTP GET request and return the response if successful."""
    normalized_url = normalize_url(url)
    headers = {"User-Agent": user_agent}
    try:
        session = _get_thread_request_session()
        logger.debug(
            "Opening HTTP connection to %s (timeout=%s, stream=%s) via session %s",
            normalized_url,
            timeout,
            stream,
            hex(id(session)),
        )
        resp = session.get(normalized_url, headers=headers, timeout=timeout, stream=stream)
        resp.raise_for_status()
        logger.debug(
            "HTTP request to %s succeeded with status %s and Content-Length=%s",
            normalized_url,
            resp.status_code,
            resp.headers.get("Content-Length"),
        )
        return resp
    except requests.RequestException as exc:
        logger.warning(f"Failed to fetch {url}: {exc}")
        return None


def fetch_url(
    url: str, user_agent: str, timeout: int, *, stream: bool = False
) -> Optional[requests.Response]:
    """Public wrapper around the single-attempt HTTP GET logic."""

    return _open_http_request(url, user_agent, timeout, stream=stream)


def parse_content_length(resp: requests.Response) -> Optional[int]:
    """Return the response Content-Length as an int, or None if absent or malformed."""
    content_length = resp.headers.get("Content-Length")
    try:
        value = int(content_length) if content_length else None
    except (TypeError, ValueError):
        logger.debug("Ignoring malformed Content-Length header %r", content_length)
        return None
    if value is not None and value < 0:
        return None
    return value


def content_is_encoded(resp: requests.Response) -> bool:
    """Return True when the body is sent with a Content-Encoding such as gzip.

    ``iter_content`` decodes such bodies, so the decoded byte count no longer
    matches Content-Length.
    """
    encoding = (resp.headers.get("Content-Encoding") or "").strip().lower()
    return encoding not in ("", "identity")


def bytes_received(resp: requests.Response, decoded_bytes: int) -> int:
    """Return the number of body bytes read off the wire.

    Equal to ``decoded_bytes`` unless the body was content-encoded, in which
    case the count kept by the underlying urllib3 response is used.
    """
    if not content_is_encoded(resp):
        return decoded_bytes
    raw = getattr(resp, "raw", None)
    tell = getattr(raw, "tell", None)
    if tell is None:
        return decoded_bytes
    return int(tell())


def http_get(url: str, user_agent: str, timeout: int) -> Tuple[Optional[bytes], Optional[str]]:
    """Fetch a URL and return its body and final URL (after redirects)."""
    resp = fetch_url(url, user_agent, timeout, stream=False)
    if resp is None:
        logger.debug("No response received for %s", url)
        return None, None
    try:
        return resp.content, (resp.url or url)
    except (requests.RequestException, OSError) as exc:
        logger.warning(f"Failed to read response from {url}: {exc}")
        return None, None
    finally:
        resp.close()


def stream_to_file(
    resp: requests.Response,
    handle: BinaryIO,
    *,
    total_size: Optional[int] = None,
    description: str = "Downloading",
) -> int:
    """Copy a streamed response body into an open binary file.

    Args:
        resp: Response opened with ``stream=True``
        handle: Destination file opened for binary writing
        total_size: Expected byte count used for progress reporting
        description: Progress bar label

    Returns:
        Number of bytes written

    Raises:
        requests.RequestException: If the connection fails mid-transfer
        OSError: If writing to ``handle`` fails
    """
    logger.debug(
        "Streaming download from %s (content-length=%s, chunk-size=%s)",
        resp.url,
        total_size,
        DOWNLOAD_CHUNK_SIZE,
    )
    total_bytes = 0
    with progress.progress_context(total_size, description) as reporter:
        for chunk in resp.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
            if not chunk:
                continue
            handle.write(chunk)
            chunk_size = len(chunk)
            total_bytes += chunk_size
            cast(ProgressReporter, reporter).update(chunk_size)
    logger.debug("Finished downloading %s (%s bytes written)", resp.url, total_bytes)
    return total_bytes
