# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
stackbak Codec - Streaming gzip for database dumps.

Dumps are never held in memory: the dump tool's stdout is compressed
chunk by chunk into db/<name>.sql.gz, and on restore the file is
decompressed chunk by chunk into the import tool's stdin.
"""

import zlib
from pathlib import Path
from typing import AsyncIterator

import aiofiles
import structlog

from stackbak.exceptions import CollaboratorError, CorruptBundleError

logger = structlog.get_logger()

DEFAULT_GZIP_LEVEL = 6
READ_CHUNK_SIZE = 64 * 1024

# zlib wbits: 16 + 15 writes a gzip container, 32 + 15 accepts gzip or zlib
_GZIP_WRITE_WBITS = 31
_GZIP_READ_WBITS = 47


class GzipFileSink:
    """
    Async context manager compressing written chunks into a .gz file.

    Usage:
        async with GzipFileSink(path) as sink:
            await sink.write(b"...")
    """

    def __init__(self, path: Path, level: int = DEFAULT_GZIP_LEVEL):
        self.path = path
        self.level = level
        self.bytes_in = 0
        self._file = None
        self._compressor = None

    async def __aenter__(self) -> "GzipFileSink":
        self._compressor = zlib.compressobj(self.level, zlib.DEFLATED, _GZIP_WRITE_WBITS)
        try:
            self._file = await aiofiles.open(self.path, "wb")
        except OSError as e:
            raise CollaboratorError(
                f"Failed to open {self.path} for writing: {e}",
                details={"path": str(self.path)},
            )
        return self

    async def write(self, chunk: bytes) -> None:
        self.bytes_in += len(chunk)
        data = self._compressor.compress(chunk)
        if not data:
            return
        try:
            await self._file.write(data)
        except OSError as e:
            raise CollaboratorError(
                f"Failed to write {self.path}: {e}",
                details={"path": str(self.path)},
            )

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None:
                await self._file.write(self._compressor.flush())
        except OSError as e:
            raise CollaboratorError(
                f"Failed to write {self.path}: {e}",
                details={"path": str(self.path)},
            )
        finally:
            await self._file.close()
        logger.debug("gzip_written", path=str(self.path), bytes_in=self.bytes_in)


async def iter_gunzip(
    path: Path,
    chunk_size: int = READ_CHUNK_SIZE,
) -> AsyncIterator[bytes]:
    """
    Yield the decompressed contents of a .gz file.

    Concatenated gzip members are decompressed in sequence.

    Raises:
        CorruptBundleError: If the file is not valid gzip or is truncated
    """
    decompressor = zlib.decompressobj(_GZIP_READ_WBITS)
    # True while the current gzip member has been fed but not finished
    in_member = False

    async with aiofiles.open(path, "rb") as f:
        while True:
            raw = await f.read(chunk_size)
            if not raw:
                break
            while raw:
                in_member = True
                try:
                    out = decompressor.decompress(raw)
                except zlib.error as e:
                    raise CorruptBundleError(
                        f"Dump is not valid gzip: {e}",
                        details={"path": str(path)},
                    )
                if out:
                    yield out
                if decompressor.eof:
                    in_member = False
                    raw = decompressor.unused_data
                    decompressor = zlib.decompressobj(_GZIP_READ_WBITS)
                else:
                    raw = b""

    if in_member:
        raise CorruptBundleError(
            "Dump is truncated",
            details={"path": str(path)},
        )


async def check_gzip(path: Path) -> int:
    """
    Decompress a .gz file end to end without keeping the output.

    Returns:
        Uncompressed size in bytes

    Raises:
        CorruptBundleError: If the file is not valid gzip or is truncated
    """
    size = 0
    async for chunk in iter_gunzip(path):
        size += len(chunk)
    logger.debug("gzip_checked", path=str(path), size=size)
    return size
