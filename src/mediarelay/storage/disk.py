"""Transient local filesystem upload buffer backend."""

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO, Optional

from mediarelay.storage.base import (
    COPY_CHUNK_BYTES,
    BufferBackend,
    BufferedUpload,
    check_size,
)

logger = logging.getLogger(__name__)


class DiskBufferedUpload(BufferedUpload):
    """Upload content held in a private temporary file."""

    def __init__(self, path: Path, size: int):
        self.path = path
        self.size = size

    def read_prefix(self, n: int) -> bytes:
        with open(self.path, "rb") as f:
            return f.read(n)

    def open(self) -> BinaryIO:
        return open(self.path, "rb")

    def discard(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(
                f"Failed to delete temporary upload file: {e}",
                extra={"path": str(self.path)},
            )


class DiskBufferBackend(BufferBackend):
    """Buffers uploads to temporary files under base_path."""

    def __init__(self, base_path: Optional[str] = None):
        self.base_path = base_path or None

    async def buffer(self, file_data: BinaryIO, max_bytes: int) -> DiskBufferedUpload:
        """Stream the upload to a temporary file in a worker thread."""
        return await asyncio.to_thread(self._write, file_data, max_bytes)

    def _write(self, file_data: BinaryIO, max_bytes: int) -> DiskBufferedUpload:
        fd, name = tempfile.mkstemp(prefix="upload-", suffix=".part", dir=self.base_path)
        path = Path(name)
        copied = 0
        try:
            with os.fdopen(fd, "wb") as f:
                while chunk := file_data.read(COPY_CHUNK_BYTES):
                    copied += len(chunk)
                    check_size(copied, max_bytes)
                    f.write(chunk)
        except BaseException:
            path.unlink(missing_ok=True)
            raise
        return DiskBufferedUpload(path, copied)

    def get_backend_name(self) -> str:
        return "disk"
