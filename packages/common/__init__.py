# Common utilities

from packages.common.exceptions import (
    ArchiveError,
    ArchiveFormatError,
    ConfigurationError,
    DecompressionError,
    DeckImportError,
    FrequencyLoadError,
    MediaResolutionMiss,
    MissingTableError,
    NotFoundError,
    PersistenceError,
)
from packages.common.logging import (
    clear_import_id,
    configure_logging,
    get_import_id,
    get_logger,
    set_import_id,
)

__all__ = [
    "ArchiveError",
    "ArchiveFormatError",
    "ConfigurationError",
    "DecompressionError",
    "DeckImportError",
    "FrequencyLoadError",
    "MediaResolutionMiss",
    "MissingTableError",
    "NotFoundError",
    "PersistenceError",
    "clear_import_id",
    "configure_logging",
    "get_import_id",
    "get_logger",
    "set_import_id",
]
