"""Cheap pre-transfer checks on the inbound upload."""

from dataclasses import dataclass, field
from typing import BinaryIO, Callable, FrozenSet, Optional, Sequence

from mediarelay.services.upload.exceptions import (
    DeclaredTypeRejectedError,
    NoFileProvidedError,
    SizeExceededError,
    UploadError,
)

# Multipart boundaries and part headers on top of the file bytes
FORM_OVERHEAD_BYTES = 16 * 1024


@dataclass
class InboundFile:
    """File part as delivered by the HTTP layer. Everything here is untrusted."""

    filename: Optional[str]
    content_type: Optional[str]
    size: Optional[int]
    file: BinaryIO


@dataclass(frozen=True)
class UploadPolicy:
    """Limits applied to every upload."""

    max_file_size_bytes: int
    allowed_mime_types: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_settings(cls, settings) -> "UploadPolicy":
        return cls(
            max_file_size_bytes=settings.max_upload_bytes,
            allowed_mime_types=frozenset(settings.allowed_mime_types),
        )

    @property
    def max_request_bytes(self) -> int:
        """Largest acceptable multipart request body."""
        return self.max_file_size_bytes + FORM_OVERHEAD_BYTES

    def allows(self, mime_type: Optional[str]) -> bool:
        return normalize_mime_type(mime_type) in self.allowed_mime_types


PreFilterCheck = Callable[[Optional[InboundFile], UploadPolicy], Optional[UploadError]]


def normalize_mime_type(mime_type: Optional[str]) -> str:
    """Lowercase a MIME type and strip parameters."""
    return (mime_type or "").lower().split(";")[0].strip()


def check_declared_length(
    declared_length: Optional[int], policy: UploadPolicy
) -> Optional[UploadError]:
    """Reject a request whose whole body is already known to be too large."""
    if declared_length is None:
        return None
    if declared_length > policy.max_request_bytes:
        return SizeExceededError(
            f"Request body of {declared_length} bytes exceeds limit of "
            f"{policy.max_file_size_bytes} bytes"
        )
    return None


def check_file_present(
    inbound: Optional[InboundFile], policy: UploadPolicy
) -> Optional[UploadError]:
    if inbound is None:
        return NoFileProvidedError("Request has no 'file' part")
    return None


def check_declared_size(
    inbound: Optional[InboundFile], policy: UploadPolicy
) -> Optional[UploadError]:
    if inbound is not None and inbound.size is not None:
        if inbound.size > policy.max_file_size_bytes:
            return SizeExceededError(
                f"Declared size {inbound.size} exceeds limit of "
                f"{policy.max_file_size_bytes} bytes"
            )
    return None


def check_declared_type(
    inbound: Optional[InboundFile], policy: UploadPolicy
) -> Optional[UploadError]:
    if inbound is not None and not policy.allows(inbound.content_type):
        return DeclaredTypeRejectedError(
            f"Declared content type {inbound.content_type!r} not allowed"
        )
    return None


# Order matters: the first failing check names the rejection
PREFILTER_CHECKS: Sequence[PreFilterCheck] = (
    check_file_present,
    check_declared_size,
    check_declared_type,
)


def run_prefilter(
    inbound: Optional[InboundFile],
    policy: UploadPolicy,
    checks: Sequence[PreFilterCheck] = PREFILTER_CHECKS,
) -> Optional[UploadError]:
    """Run pre-filter checks in order.

    Returns:
        The first rejection, or None if the upload passed every check
    """
    for check in checks:
        rejection = check(inbound, policy)
        if rejection is not None:
            return rejection
    return None
