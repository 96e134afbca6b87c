"""
Bundle compression.

The compressed artifact is the 4 byte ASCII tag ``EZBR`` followed by a
brotli stream of the raw bundle, so readers can detect the format without
decompressing.
"""

from typing import BinaryIO

import brotli

from edgefn.core.exceptions import CompressError

COMPRESSED_ESZIP_MAGIC_ID = b"EZBR"
CHUNK_SIZE = 64 * 1024


def compress(reader: BinaryIO, writer: BinaryIO, chunk_size: int = CHUNK_SIZE) -> None:
    """Write the magic tag and stream ``reader`` through brotli into ``writer``.

    Raises:
        CompressError: On any read, write or encoder failure.
    """
    try:
        writer.write(COMPRESSED_ESZIP_MAGIC_ID)
    except OSError as e:
        raise CompressError(f"failed to append magic id: {e}") from e

    compressor = brotli.Compressor()
    try:
        while True:
            chunk = reader.read(chunk_size)
            if not chunk:
                break
            writer.write(compressor.process(chunk))
        writer.write(compressor.finish())
    except (OSError, brotli.error) as e:
        raise CompressError(f"failed to compress eszip: {e}") from e


def decompress(reader: BinaryIO, writer: BinaryIO, chunk_size: int = CHUNK_SIZE) -> None:
    """Inverse of compress(). Verifies the tag before decoding."""
    try:
        magic = reader.read(len(COMPRESSED_ESZIP_MAGIC_ID))
    except OSError as e:
        raise CompressError(f"failed to read magic id: {e}") from e
    if magic != COMPRESSED_ESZIP_MAGIC_ID:
        raise CompressError(f"unrecognised bundle format: {magic!r}")

    decompressor = brotli.Decompressor()
    try:
        while True:
            chunk = reader.read(chunk_size)
            if not chunk:
                break
            writer.write(decompressor.process(chunk))
    except (OSError, brotli.error) as e:
        raise CompressError(f"failed to decompress eszip: {e}") from e
    if not decompressor.is_finished():
        raise CompressError("failed to decompress eszip: truncated stream")


def is_compressed(data: bytes) -> bool:
    return data[: len(COMPRESSED_ESZIP_MAGIC_ID)] == COMPRESSED_ESZIP_MAGIC_ID
