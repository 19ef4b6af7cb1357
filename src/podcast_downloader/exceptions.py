"""Custom exceptions for podcast_downloader.

Two families of errors exist:

- ``ExtractionError`` and its subclasses describe why a single feed item could
  not become an ``Episode``. They are recoverable: the item is logged and
  skipped, and the run continues with the remaining items.
- ``PipelineError`` and its subclasses are fatal. They are raised before any
  download worker starts and abort the run with a non-zero exit status.

Exception Hierarchy:
    PodcastDownloaderError (base)
    ├── ExtractionError - One feed item is unusable
    │   ├── MissingTitleError
    │   ├── MissingEnclosureError
    │   ├── InvalidEnclosureSizeError
    │   ├── UnsupportedMediaTypeError
    │   └── MissingOrInvalidDateError
    └── PipelineError - The run cannot proceed
        ├── OutputDirectoryError
        ├── FeedLoadError
        └── FeedParseError
"""

from enum import Enum
from typing import Optional


class PodcastDownloaderError(Exception):
    """Base exception for all podcast_downloader errors."""

    pass


class ExtractionErrorKind(str, Enum):
    """Closed set of reasons a feed item can fail extraction."""

    MISSING_TITLE = "missing_title"
    MISSING_ENCLOSURE = "missing_enclosure"
    INVALID_ENCLOSURE_SIZE = "invalid_enclosure_size"
    UNSUPPORTED_MEDIA_TYPE = "unsupported_media_type"
    MISSING_OR_INVALID_DATE = "missing_or_invalid_date"


class ExtractionError(PodcastDownloaderError):
    """Raised when a raw feed item cannot be turned into an Episode.

    Attributes:
        kind: Which of the fixed extraction failures occurred
        message: Human-readable description of the failure
    """

    kind: ExtractionErrorKind

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class MissingTitleError(ExtractionError):
    """Item has neither a usable title nor a GUID."""

    kind = ExtractionErrorKind.MISSING_TITLE

    def __init__(self, message: str = "Item has no title and no GUID") -> None:
        super().__init__(message)


class MissingEnclosureError(ExtractionError):
    """Item has no enclosure, several enclosures, or an unusable enclosure URL."""

    kind = ExtractionErrorKind.MISSING_ENCLOSURE


class InvalidEnclosureSizeError(ExtractionError):
    """Enclosure length is missing or not an unsigned 64-bit integer."""

    kind = ExtractionErrorKind.INVALID_ENCLOSURE_SIZE


class UnsupportedMediaTypeError(ExtractionError):
    """Enclosure MIME type is not in the supported media table.

    Attributes:
        mime_type: The declared MIME type (None when the enclosure declared none)
    """

    kind = ExtractionErrorKind.UNSUPPORTED_MEDIA_TYPE

    def __init__(self, mime_type: Optional[str]) -> None:
        self.mime_type = mime_type
        super().__init__(f"Unsupported media type: {mime_type!r}")


class MissingOrInvalidDateError(ExtractionError):
    """Publication date is missing or not in RFC 2822 format."""

    kind = ExtractionErrorKind.MISSING_OR_INVALID_DATE


class PipelineError(PodcastDownloaderError):
    """Base class for fatal errors that abort a run before downloads start."""

    pass


class OutputDirectoryError(PipelineError):
    """Output directory path exists but is not a directory, or cannot be created."""

    pass


class FeedLoadError(PipelineError):
    """Feed bytes could not be fetched or read."""

    pass


class FeedParseError(PipelineError):
    """Feed bytes could not be parsed as an RSS feed."""

    pass


__all__ = [
    "PodcastDownloaderError",
    "ExtractionErrorKind",
    "ExtractionError",
    "MissingTitleError",
    "MissingEnclosureError",
    "InvalidEnclosureSizeError",
    "UnsupportedMediaTypeError",
    "MissingOrInvalidDateError",
    "PipelineError",
    "OutputDirectoryError",
    "FeedLoadError",
    "FeedParseError",
]
