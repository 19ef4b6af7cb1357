from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .exceptions import ExtractionError

MEDIA_TYPE_EXTENSIONS: Dict[str, str] = {
    "audio/mpeg": "mp3",
    "audio/x-m4a": "m4a",
    "video/quicktime": "mov",
    "video/mp4": "mp4",
    "video/x-m4v": "m4v",
    "application/pdf": "pdf",
}


class MediaKind(str, Enum):
    """Kind of media carried by an episode enclosure.

    The value of each member is the file extension used for it.
    """

    MP3 = "mp3"
    M4A = "m4a"
    MOV = "mov"
    MP4 = "mp4"
    M4V = "m4v"
    PDF = "pdf"

    @property
    def extension(self) -> str:
        return self.value

    @classmethod
    def from_mime_type(cls, mime_type: Optional[str]) -> Optional["MediaKind"]:
        """Look up a declared MIME type in the fixed media table.

        Matching ignores case, surrounding whitespace, and parameters after ``;``.

        Returns:
            The matching MediaKind, or None for any unmapped type
        """
        if not mime_type:
            return None
        essence = mime_type.split(";", 1)[0].strip().lower()
        extension = MEDIA_TYPE_EXTENSIONS.get(essence)
        return cls(extension) if extension else None


class FilenameMode(str, Enum):
    """How output filenames are derived from an episode."""

    DATE_TITLE = "date_title"
    REMOTE_NAME = "remote_name"


@dataclass(frozen=True)
class RawEnclosure:
    """Enclosure attributes exactly as declared in the feed (unvalidated strings)."""

    url: Optional[str] = None
    length: Optional[str] = None
    mime_type: Optional[str] = None


@dataclass(frozen=True)
class RawItem:
    """A feed item reduced to the fields episode extraction reads.

    Attributes:
        title: Item <title> text, if any.
        guid: Item <guid> text, if any.
        enclosure: The first <enclosure> element, if any.
        pub_date: Item <pubDate> text, if any.
        enclosure_count: Number of <enclosure> elements on the item.
    """

    title: Optional[str] = None
    guid: Optional[str] = None
    enclosure: Optional[RawEnclosure] = None
    pub_date: Optional[str] = None
    enclosure_count: int = 0

    def describe(self, idx: int) -> str:
        """Return a short label identifying the item in log messages."""
        label = (self.title or "").strip() or (self.guid or "").strip()
        return f"item {idx} ({label!r})" if label else f"item {idx}"


@dataclass(frozen=True)
class Episode:
    """A fully validated podcast episode ready for download.

    Episodes only exist in a fully valid state; they are created by
    ``rss_parser.create_episode`` and never modified afterwards.

    Attributes:
        title: Filesystem-safe title (falls back to the item GUID). Never empty.
        audio_url: Absolute URL of the enclosure.
        size: Declared enclosure length in bytes (advisory only).
        publication_date: Parsed publication timestamp.
        media_kind: Media kind derived from the enclosure MIME type.

    Example:
        >>> episode = Episode(
        ...     title="Episode 1 Introduction",
        ...     audio_url="https://cdn.example.com/audio/ep1.mp3",
        ...     size=1048576,
        ...     publication_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        ...     media_kind=MediaKind.MP3,
        ... )
    """

    title: str
    audio_url: str
    size: int
    publication_date: datetime
    media_kind: MediaKind


@dataclass
class RssFeed:
    """A parsed feed: its title, raw items, and the bytes it was parsed from.

    Attributes:
        title: Channel title (empty string when the feed declares none).
        items: Raw items in feed order.
        base_url: URL used to resolve relative enclosure URLs (may be empty).
        raw_bytes: The exact bytes the feed was parsed from, used for archiving.
    """

    title: str
    items: List[RawItem]
    base_url: str = ""
    raw_bytes: bytes = b""


@dataclass(frozen=True)
class UrlFeedSource:
    """Feed fetched over HTTP(S)."""

    url: str

    def __str__(self) -> str:
        return self.url


@dataclass(frozen=True)
class FileFeedSource:
    """Feed previously saved to local disk."""

    path: Path

    def __str__(self) -> str:
        return str(self.path)


FeedSource = Union[UrlFeedSource, FileFeedSource]


@dataclass
class ExtractionResult:
    """Outcome of converting a batch of raw items into episodes.

    Attributes:
        episodes: Successfully extracted episodes, in feed order.
        failures: ``(item_index, error)`` pairs for the items that were skipped.
    """

    episodes: List[Episode] = field(default_factory=list)
    failures: List[Tuple[int, ExtractionError]] = field(default_factory=list)


class DownloadStatus(str, Enum):
    """Terminal state of one episode's download attempt."""

    DOWNLOADED = "downloaded"
    SKIPPED = "skipped"
    FAILED = "failed"
    PLANNED = "planned"


@dataclass
class DownloadOutcome:
    """Result of processing a single episode.

    Attributes:
        episode: The episode that was processed.
        path: Target path of the download.
        status: What happened.
        bytes_written: Number of bytes written to ``path``.
        error: Description of the failure for FAILED outcomes.
    """

    episode: Episode
    path: str
    status: DownloadStatus
    bytes_written: int = 0
    error: Optional[str] = None


@dataclass
class DownloadSummary:
    """Aggregate of all per-episode outcomes of one download run."""

    outcomes: List[DownloadOutcome] = field(default_factory=list)

    def count(self, status: DownloadStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def downloaded(self) -> int:
        return self.count(DownloadStatus.DOWNLOADED)

    @property
    def skipped(self) -> int:
        return self.count(DownloadStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(DownloadStatus.FAILED)

    @property
    def planned(self) -> int:
        return self.count(DownloadStatus.PLANNED)

    @property
    def bytes_written(self) -> int:
        return sum(outcome.bytes_written for outcome in self.outcomes)
