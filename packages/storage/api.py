"""REST backend sink for imported cards."""

from typing import Any, Literal

import httpx

from packages.common.exceptions import PersistenceError
from packages.common.logging import get_logger
from packages.importer.models import CardRecord, CardStatsUpdate

logger = get_logger(module=__name__)

MediaKind = Literal["word_audio", "sentence_audio", "image"]

MEDIA_PATHS: dict[str, str] = {
    "word_audio": "audio/word",
    "sentence_audio": "audio/sentence",
    "image": "image",
}


class ApiCardSink:
    """Writes cards to the flashcard backend's bulk-import API.

    Media is sent inline as base64 with each card. Authentication is the
    caller's concern: pass a preconfigured ``client`` to add headers.
    """

    embed_media = True

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 60.0,
        page_size: int = 500,
        upload_filename: str = "deck.apkg",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.upload_filename = upload_filename
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as exc:
            raise PersistenceError(
                f"API request failed: {exc}",
                context={"method": method, "endpoint": endpoint},
            ) from exc

        if response.is_error:
            raise PersistenceError(
                _error_message(response),
                context={
                    "method": method,
                    "endpoint": endpoint,
                    "status_code": response.status_code,
                },
            )
        return response

    async def _request_json(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        response = await self._request(method, endpoint, **kwargs)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise PersistenceError(
                f"API returned invalid JSON for {endpoint}",
                context={"endpoint": endpoint},
            ) from exc

    async def save_cards(self, cards: list[CardRecord]) -> None:
        """POST one batch to the bulk-import endpoint."""
        payload = {
            "cards": [card.model_dump(mode="json") for card in cards],
            "filename": self.upload_filename,
        }
        await self._request_json("POST", "/cards/bulk", json=payload)
        logger.debug("cards_uploaded", count=len(cards))

    async def save_media(self, media: dict[str, bytes]) -> None:
        """Media travels inline with each card; nothing to do."""

    async def list_cards(self) -> list[dict[str, Any]]:
        """Fetch every card from the backend, following pagination."""
        cards: list[dict[str, Any]] = []
        page = 1
        while True:
            data = await self._request_json(
                "GET", "/cards", params={"page": page, "per_page": self.page_size}
            )
            cards.extend(data.get("cards") or [])
            if page >= int(data.get("pages") or 1):
                break
            page += 1
        return cards

    async def list_note_index(self) -> dict[int, int]:
        """Map nid -> backend card ID."""
        return {
            int(card["nid"]): int(card["id"])
            for card in await self.list_cards()
            if card.get("nid") is not None and card.get("id") is not None
        }

    async def update_card_stats(self, record_id: int, update: CardStatsUpdate) -> None:
        """PUT scheduling fields only; the backend keeps everything else."""
        await self._request_json("PUT", f"/cards/{record_id}", json=update.as_payload())

    async def fetch_media(self, record_id: int, kind: MediaKind) -> bytes:
        """Download a card's stored word audio, sentence audio or image."""
        response = await self._request("GET", f"/cards/{record_id}/{MEDIA_PATHS[kind]}")
        return response.content

    async def get_metadata(self) -> dict[str, Any]:
        data: dict[str, Any] = await self._request_json("GET", "/user/preferences")
        return data

    async def set_metadata(self, values: dict[str, Any]) -> None:
        await self._request_json("PUT", "/user/preferences", json=values)

    async def close(self) -> None:
        """Close the HTTP client if this sink created it."""
        if self._owns_client:
            await self._client.aclose()


def _error_message(response: httpx.Response) -> str:
    """Prefer the backend's own error text over the status line."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        message = data.get("error") or data.get("message")
        if message:
            return str(message)
    return f"API request failed with status {response.status_code}"
