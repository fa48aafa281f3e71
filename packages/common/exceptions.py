"""Custom exception hierarchy for the deck importer.

This module defines application-specific exceptions that provide:
- Clear separation of fatal import failures from recoverable misses
- A single base class for callers that only care that an import failed
- Structured logging context
"""

from __future__ import annotations


class DeckImportError(Exception):
    """Base exception for all application errors.

    All custom exceptions inherit from this to enable:
    - A single ``except`` clause at entry points (CLI, callers)
    - Consistent error logging patterns
    - Type-safe error catching
    """

    def __init__(self, message: str, *, context: dict[str, object] | None = None) -> None:
        """Initialize error with message and optional context.

        Args:
            message: Human-readable error description.
            context: Additional key-value pairs for structured logging.
        """
        super().__init__(message)
        self.context = context or {}


class ArchiveError(DeckImportError):
    """Base class for errors reading a deck archive."""


class ArchiveFormatError(ArchiveError):
    """Archive is not a zip file or lacks the collection database."""


class MissingTableError(ArchiveError):
    """One of notes, cards or revlog is missing or empty."""


class DecompressionError(ArchiveError):
    """Buffer could not be decompressed.

    Only raised inside the decompressor; callers see the raw buffer instead.
    """


class MediaResolutionMiss(DeckImportError):
    """A field references a media file that the archive does not contain."""


class FrequencyLoadError(DeckImportError):
    """Frequency spreadsheet could not be read."""


class PersistenceError(DeckImportError):
    """Writing to the storage backend failed."""


class ConfigurationError(DeckImportError):
    """Invalid or missing configuration."""


class NotFoundError(DeckImportError):
    """Requested resource not found."""
