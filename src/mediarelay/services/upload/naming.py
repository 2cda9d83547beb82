"""Storage name allocation for relayed uploads."""

import re
import secrets
import time
from pathlib import PurePosixPath
from typing import Callable, Dict, Optional

# Sniffed type -> extension used in the storage name
MIME_EXTENSION_MAP: Dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
}

ALLOWED_EXTENSIONS = frozenset(MIME_EXTENSION_MAP.values())

EXTENSION_ALIASES: Dict[str, str] = {
    ".jpeg": ".jpg",
    ".jpe": ".jpg",
    ".qt": ".mov",
    ".m4v": ".mp4",
}

FALLBACK_EXTENSION = ".bin"

TOKEN_BYTES = 16

STORAGE_NAME_PATTERN = re.compile(r"^\d{13,}-[0-9a-f]{32}\.[a-z0-9]{2,4}$")


def _epoch_millis() -> int:
    return time.time_ns() // 1_000_000


def _random_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def normalize_extension(filename: Optional[str]) -> Optional[str]:
    """Return the allow-listed extension of a client filename, if any.

    Args:
        filename: Client-supplied original name (untrusted)

    Returns:
        Lowercase extension with leading dot, or None if the name has no
        extension in the allow-list
    """
    if not filename:
        return None
    # Only the final component counts; "../../x.png" has suffix ".png"
    name = filename.replace("\\", "/")
    suffix = PurePosixPath(name).suffix.lower()
    suffix = EXTENSION_ALIASES.get(suffix, suffix)
    if suffix in ALLOWED_EXTENSIONS:
        return suffix
    return None


def extension_for(mime_type: str, original_filename: Optional[str] = None) -> str:
    """Pick the storage extension for a sniffed type."""
    extension = MIME_EXTENSION_MAP.get(mime_type.lower())
    if extension:
        return extension
    return normalize_extension(original_filename) or FALLBACK_EXTENSION


def allocate_storage_name(
    mime_type: str,
    original_filename: Optional[str] = None,
    *,
    clock: Optional[Callable[[], int]] = None,
    token_source: Optional[Callable[[], str]] = None,
) -> str:
    """Generate a collision-resistant storage name.

    The name has the form ``<epoch-ms>-<token><ext>``. No character of the
    client-supplied filename is used except, as a fallback, its extension
    after normalization against the allow-list.

    Args:
        mime_type: Sniffed media type
        original_filename: Client filename, consulted only when the type has
            no known extension
        clock: Returns epoch milliseconds; defaults to the wall clock
        token_source: Returns a lowercase hex token; defaults to ``secrets``

    Returns:
        Storage name string
    """
    timestamp = (clock or _epoch_millis)()
    token = (token_source or _random_token)()
    return f"{timestamp}-{token}{extension_for(mime_type, original_filename)}"
