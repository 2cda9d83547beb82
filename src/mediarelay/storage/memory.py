"""In-memory upload buffer backend."""

import io
from typing import BinaryIO

from mediarelay.storage.base import (
    COPY_CHUNK_BYTES,
    BufferBackend,
    BufferedUpload,
    check_size,
)


class MemoryBufferedUpload(BufferedUpload):
    """Upload content held as bytes."""

    def __init__(self, content: bytes):
        self._content: bytes | None = content
        self.size = len(content)

    def read_prefix(self, n: int) -> bytes:
        return (self._content or b"")[:n]

    def open(self) -> BinaryIO:
        if self._content is None:
            raise ValueError("Buffered upload already discarded")
        return io.BytesIO(self._content)

    def discard(self) -> None:
        self._content = None


class MemoryBufferBackend(BufferBackend):
    """Buffers uploads in process memory."""

    async def buffer(self, file_data: BinaryIO, max_bytes: int) -> MemoryBufferedUpload:
        """Read the stream into memory, failing fast past max_bytes."""
        chunks = []
        copied = 0
        while chunk := file_data.read(COPY_CHUNK_BYTES):
            copied += len(chunk)
            check_size(copied, max_bytes)
            chunks.append(chunk)
        return MemoryBufferedUpload(b"".join(chunks))

    def get_backend_name(self) -> str:
        return "memory"
