"""Abstract upload buffer interface."""

from abc import ABC, abstractmethod
from typing import BinaryIO

from mediarelay.services.upload.exceptions import SizeExceededError

COPY_CHUNK_BYTES = 65536  # 64KB chunks


class BufferedUpload(ABC):
    """Upload content held locally between validation and transfer."""

    size: int

    @abstractmethod
    def read_prefix(self, n: int) -> bytes:
        """Return at most the first n bytes of the content."""
        pass

    @abstractmethod
    def open(self) -> BinaryIO:
        """Open a fresh binary reader positioned at the start."""
        pass

    @abstractmethod
    def discard(self) -> None:
        """Release the content. Safe to call more than once."""
        pass


class BufferBackend(ABC):
    """Abstract base class for upload buffer backends."""

    @abstractmethod
    async def buffer(self, file_data: BinaryIO, max_bytes: int) -> BufferedUpload:
        """Copy an inbound stream into a local buffer.

        Args:
            file_data: Inbound file stream
            max_bytes: Hard size limit enforced while copying

        Returns:
            Buffered upload

        Raises:
            SizeExceededError: If the stream holds more than max_bytes
        """
        pass

    @abstractmethod
    def get_backend_name(self) -> str:
        """Return backend identifier."""
        pass


def check_size(copied: int, max_bytes: int) -> None:
    if copied > max_bytes:
        raise SizeExceededError(
            f"Upload stream exceeded {max_bytes} bytes while buffering"
        )
