"""Media blobs extracted from a deck archive."""

import base64

from packages.common.exceptions import MediaResolutionMiss
from packages.common.logging import get_logger

logger = get_logger(module=__name__)


class MediaLibrary:
    """Lookup of media blobs by their real (manifest) filename."""

    def __init__(self, blobs: dict[str, bytes] | None = None) -> None:
        self._blobs = dict(blobs or {})

    def __len__(self) -> int:
        return len(self._blobs)

    def __contains__(self, filename: object) -> bool:
        return filename in self._blobs

    def filenames(self) -> list[str]:
        return sorted(self._blobs)

    def items(self) -> list[tuple[str, bytes]]:
        return sorted(self._blobs.items())

    def get(self, filename: str) -> bytes:
        """Return the blob for ``filename``.

        Raises:
            MediaResolutionMiss: If the archive did not contain the file.
        """
        try:
            return self._blobs[filename]
        except KeyError:
            raise MediaResolutionMiss(
                f"Media file not in archive: {filename}",
                context={"filename": filename},
            ) from None

    def resolve(self, filename: str | None) -> bytes | None:
        """Return the blob for ``filename``, or None when absent."""
        if not filename:
            return None
        try:
            return self.get(filename)
        except MediaResolutionMiss as exc:
            logger.debug("media_missing", **exc.context)
            return None

    def resolve_base64(self, filename: str | None) -> str | None:
        """Return the blob base64-encoded for upload, or None when absent."""
        blob = self.resolve(filename)
        if blob is None:
            return None
        return base64.b64encode(blob).decode("ascii")
