"""
Content-based media type detection.

Identifies the true type of an upload from its leading bytes (magic numbers),
ignoring the client-declared content type and the file extension:
- images: JPEG, PNG, GIF, WebP
- video: MP4 (ISO base media) and QuickTime
- non-media formats that are recognised only so rejections can name them:
  Windows/DOS executables, ELF binaries, PDF, ZIP, scripts
"""

from typing import Dict, List, Tuple

from mediarelay.storage.base import BufferedUpload

UNKNOWN_TYPE = "unknown"

# Enough for every signature below, including the ftyp brand at offset 8
SNIFF_PREFIX_BYTES = 64

# (offset, signature, mime type); checked in order
MAGIC_SIGNATURES: List[Tuple[int, bytes, str]] = [
    (0, b"\xff\xd8\xff", "image/jpeg"),
    (0, b"\x89PNG\r\n\x1a\n", "image/png"),
    (0, b"GIF87a", "image/gif"),
    (0, b"GIF89a", "image/gif"),
    (0, b"MZ", "application/x-msdownload"),
    (0, b"\x7fELF", "application/x-executable"),
    (0, b"%PDF-", "application/pdf"),
    (0, b"PK\x03\x04", "application/zip"),
    (0, b"#!", "text/x-shellscript"),
]

# ISO base media file format major brands (bytes 8..12 after "ftyp")
FTYP_BRAND_MAP: Dict[bytes, str] = {
    b"qt  ": "video/quicktime",
    b"isom": "video/mp4",
    b"iso2": "video/mp4",
    b"iso4": "video/mp4",
    b"iso5": "video/mp4",
    b"iso6": "video/mp4",
    b"mp41": "video/mp4",
    b"mp42": "video/mp4",
    b"avc1": "video/mp4",
    b"dash": "video/mp4",
    b"M4V ": "video/mp4",
    b"M4VH": "video/mp4",
    b"M4VP": "video/mp4",
    b"MSNV": "video/mp4",
    b"NDAS": "video/mp4",
    b"3gp4": "video/mp4",
    b"3gp5": "video/mp4",
}

# Pre-ftyp QuickTime files start directly with one of these atoms
QUICKTIME_ATOMS = (b"moov", b"mdat", b"wide", b"free", b"pnot")


def sniff_bytes(prefix: bytes) -> str:
    """
    Detect the media type of a file from its first bytes.

    Args:
        prefix: Leading bytes of the file; only the first
            SNIFF_PREFIX_BYTES are inspected

    Returns:
        MIME type string, or UNKNOWN_TYPE if no signature matches

    Examples:
        >>> sniff_bytes(b"\\x89PNG\\r\\n\\x1a\\n....")
        'image/png'
        >>> sniff_bytes(b"MZ\\x90\\x00")
        'application/x-msdownload'
        >>> sniff_bytes(b"")
        'unknown'
    """
    head = prefix[:SNIFF_PREFIX_BYTES]

    for offset, signature, mime_type in MAGIC_SIGNATURES:
        if head[offset:offset + len(signature)] == signature:
            return mime_type

    if len(head) >= 12 and head[0:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "image/webp"

    if len(head) >= 12 and head[4:8] == b"ftyp":
        return FTYP_BRAND_MAP.get(head[8:12], UNKNOWN_TYPE)

    if len(head) >= 8 and head[4:8] in QUICKTIME_ATOMS:
        return "video/quicktime"

    return UNKNOWN_TYPE


def sniff_buffer(buffered: BufferedUpload) -> str:
    """Detect the media type of a buffered upload without reading all of it."""
    return sniff_bytes(buffered.read_prefix(SNIFF_PREFIX_BYTES))
