"""Storage backends for imported cards."""

from packages.common.config import Settings
from packages.storage.api import ApiCardSink
from packages.storage.base import LAST_ANKI_SYNC, LAST_FULL_IMPORT, TOTAL_CARDS, CardSink
from packages.storage.local import SqliteCardStore


def create_sink(settings: Settings) -> CardSink:
    """Build the REST sink when an API URL is configured, else the local store."""
    if settings.api_url:
        return ApiCardSink(
            settings.api_url,
            timeout=settings.api_timeout_seconds,
            page_size=settings.api_page_size,
            upload_filename=settings.upload_filename,
        )
    return SqliteCardStore(settings.store_path)


__all__ = [
    "LAST_ANKI_SYNC",
    "LAST_FULL_IMPORT",
    "TOTAL_CARDS",
    "ApiCardSink",
    "CardSink",
    "SqliteCardStore",
    "create_sink",
]
