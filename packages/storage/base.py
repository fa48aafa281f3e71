"""Storage backend interface for imported cards."""

from typing import Any, Protocol

from packages.importer.models import CardRecord, CardStatsUpdate

# Metadata keys written by the importer
LAST_FULL_IMPORT = "last_full_import"
LAST_ANKI_SYNC = "last_anki_sync"
TOTAL_CARDS = "total_cards"


class CardSink(Protocol):
    """Where finished card records are written.

    ``embed_media`` tells the importer whether media travels inside each
    record (base64) or is handed over once through ``save_media``.
    """

    embed_media: bool

    async def save_cards(self, cards: list[CardRecord]) -> None:
        """Write one batch, replacing existing cards with the same nid."""
        ...

    async def save_media(self, media: dict[str, bytes]) -> None:
        """Store raw media blobs keyed by filename."""
        ...

    async def list_note_index(self) -> dict[int, int]:
        """Map each stored nid to the backend's record ID for that card."""
        ...

    async def update_card_stats(self, record_id: int, update: CardStatsUpdate) -> None:
        """Apply scheduling state without touching app-specific fields."""
        ...

    async def get_metadata(self) -> dict[str, Any]:
        """Return all stored import metadata."""
        ...

    async def set_metadata(self, values: dict[str, Any]) -> None:
        """Merge ``values`` into the stored import metadata."""
        ...

    async def close(self) -> None:
        """Release connections."""
        ...
