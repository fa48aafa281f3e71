"""Detection and decompression of zstd/zlib payloads inside Anki archives."""

import io
import zlib

import zstandard

from packages.common.exceptions import DecompressionError
from packages.common.logging import get_logger

logger = get_logger(module=__name__)

# zstd frame magic, 0xFD2FB528 read little-endian
ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"


def is_zstd_compressed(data: bytes) -> bool:
    """Check the first four bytes for the zstd frame magic."""
    return len(data) >= 4 and data[:4] == ZSTD_MAGIC


def decompress_zstd(data: bytes) -> bytes:
    """Decompress a zstd buffer.

    Uses a streaming reader so frames written without a content size
    (as Anki does) still decode.

    Raises:
        DecompressionError: If the buffer is not valid zstd.
    """
    try:
        reader = zstandard.ZstdDecompressor().stream_reader(io.BytesIO(data))
        with reader:
            return reader.read()
    except zstandard.ZstdError as exc:
        raise DecompressionError(f"Invalid zstd data: {exc}") from exc


def decompress_zlib(data: bytes) -> bytes:
    """Decompress a zlib buffer.

    Raises:
        DecompressionError: If the buffer is not valid zlib.
    """
    try:
        return zlib.decompress(data)
    except zlib.error as exc:
        raise DecompressionError(f"Invalid zlib data: {exc}") from exc


def decompress(data: bytes) -> bytes:
    """Decompress ``data`` if it is zstd or zlib, otherwise return it unchanged.

    Never raises for undecodable input: a buffer that fails every codec is
    treated as already plain.
    """
    data = bytes(data)

    if is_zstd_compressed(data):
        try:
            result = decompress_zstd(data)
            logger.debug("decompressed", codec="zstd", size=len(result))
            return result
        except DecompressionError as exc:
            logger.warning("zstd_decompression_failed", error=str(exc))

    try:
        result = decompress_zlib(data)
    except DecompressionError:
        logger.debug("not_compressed", size=len(data))
        return data

    logger.debug("decompressed", codec="zlib", size=len(result))
    return result
