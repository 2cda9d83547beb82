"""Pytest configuration and shared fixtures."""

import asyncio
import io
from typing import List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest

from mediarelay.services.upload.exceptions import (
    DirectoryError,
    RemoteConnectionError,
    TransferFailedError,
)
from mediarelay.services.upload.pipeline import UploadPipeline
from mediarelay.services.upload.rate_limit import InMemoryRateLimitStore
from mediarelay.services.upload.validation import InboundFile, UploadPolicy
from mediarelay.storage.memory import MemoryBufferBackend

ALLOWED_TYPES = frozenset(
    ["image/jpeg", "image/png", "image/webp", "video/mp4", "video/quicktime"]
)

PNG_HEADER = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR"
JPEG_HEADER = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00"
EXE_HEADER = b"MZ\x90\x00\x03\x00\x00\x00\x04\x00"
MP4_HEADER = b"\x00\x00\x00\x20ftypisom\x00\x00\x02\x00isomiso2avc1mp41"


class FakeSession:
    """Transfer session double recording every call."""

    def __init__(self, client: "FakeTransferClient"):
        self.client = client
        self.close_calls = 0
        self.directories: List[str] = []

    async def ensure_directory(self, path: str) -> None:
        if self.client.fail_directory:
            raise DirectoryError(f"Cannot enter or create {path!r} on ftp.internal: 550")
        self.directories.append(path)

    async def send(self, source, destination_name: str) -> None:
        self.client.send_started.set()
        if self.client.block_send:
            await asyncio.Event().wait()
        if self.client.fail_send:
            raise TransferFailedError(f"STOR {destination_name} on ftp.internal failed: 451")
        # Yield so concurrent uploads interleave
        await asyncio.sleep(0)
        self.client.sent.append((destination_name, source.read()))

    async def close(self) -> None:
        self.close_calls += 1


class FakeTransferClient:
    """Transfer client double; never touches the network."""

    def __init__(self):
        self.fail_connect = False
        self.fail_directory = False
        self.fail_send = False
        self.block_send = False
        self.connect_calls = 0
        self.sessions: List[FakeSession] = []
        self.sent: List[Tuple[str, bytes]] = []
        self.send_started = asyncio.Event()

    async def connect(self) -> FakeSession:
        self.connect_calls += 1
        if self.fail_connect:
            raise RemoteConnectionError(
                "Cannot connect to ftp.internal:21 as 'deploy': [Errno 111] Connection refused"
            )
        session = FakeSession(self)
        self.sessions.append(session)
        return session


@pytest.fixture
def png_bytes():
    """A 2 KB payload with a PNG signature."""
    return PNG_HEADER + b"\x00" * (2048 - len(PNG_HEADER))


@pytest.fixture
def jpeg_bytes():
    return JPEG_HEADER + b"\x00" * 512


@pytest.fixture
def exe_bytes():
    """A payload with a Windows executable signature."""
    return EXE_HEADER + b"\x00" * 1024


@pytest.fixture
def mp4_bytes():
    return MP4_HEADER + b"\x00" * 1024


@pytest.fixture
def transfer_client():
    return FakeTransferClient()


@pytest.fixture
def make_pipeline(transfer_client):
    """Factory for pipelines wired to the fake transfer client."""

    def _make(**overrides) -> UploadPipeline:
        options = dict(
            policy=UploadPolicy(
                max_file_size_bytes=1024 * 1024,
                allowed_mime_types=ALLOWED_TYPES,
            ),
            rate_limiter=InMemoryRateLimitStore(max_requests=20, window_seconds=60),
            buffer_backend=MemoryBufferBackend(),
            transfer_client=transfer_client,
            public_base_url="https://cdn.example.com/uploads/",
            remote_directory="/public_html/uploads",
        )
        options.update(overrides)
        return UploadPipeline(**options)

    return _make


@pytest.fixture
def make_loader():
    """Factory for request-gate doubles returning one inbound file."""

    def _make(
        content: Optional[bytes],
        content_type: str = "image/png",
        filename: str = "photo.png",
        size: Optional[int] = None,
    ) -> AsyncMock:
        if content is None:
            return AsyncMock(return_value=None)
        inbound = InboundFile(
            filename=filename,
            content_type=content_type,
            size=len(content) if size is None else size,
            file=io.BytesIO(content),
        )
        return AsyncMock(return_value=inbound)

    return _make
