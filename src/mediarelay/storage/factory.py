"""Upload buffer backend selection."""

from mediarelay.core.config import Settings, settings as default_settings
from mediarelay.storage.base import BufferBackend
from mediarelay.storage.disk import DiskBufferBackend
from mediarelay.storage.memory import MemoryBufferBackend


def get_buffer_backend(settings: Settings = default_settings) -> BufferBackend:
    """Return the buffer backend named by UPLOAD_BUFFER_BACKEND.

    Raises:
        ValueError: If the configured backend is unknown
    """
    backend = settings.UPLOAD_BUFFER_BACKEND.strip().lower()
    if backend == "memory":
        return MemoryBufferBackend()
    if backend == "disk":
        return DiskBufferBackend(settings.UPLOAD_TMP_DIR)
    raise ValueError(f"Unknown UPLOAD_BUFFER_BACKEND: {settings.UPLOAD_BUFFER_BACKEND}")
