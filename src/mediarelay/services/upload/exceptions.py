"""Error taxonomy for the upload pipeline.

Every error carries two messages: ``detail`` is for server-side logs and may
contain hosts, paths or protocol replies; ``public_message`` is what the
caller sees and never contains either.
"""

from typing import Optional


class UploadError(Exception):
    """Base exception for upload pipeline failures."""

    category: str = "InternalError"
    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, detail: str = "", public_message: Optional[str] = None):
        super().__init__(detail or self.public_message)
        self.detail = detail or self.public_message
        if public_message is not None:
            self.public_message = public_message

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500


class NoFileProvidedError(UploadError):
    """Raised when the request carries no file part."""

    category = "NoFileProvided"
    status_code = 400
    public_message = "No file received"


class DeclaredTypeRejectedError(UploadError):
    """Raised when the client-declared MIME type is not allowed."""

    category = "DeclaredTypeRejected"
    status_code = 400
    public_message = "File type not allowed"


class SizeExceededError(UploadError):
    """Raised when the upload is larger than the configured maximum."""

    category = "SizeExceeded"
    status_code = 400
    public_message = "File too large"


class ContentSniffRejectedError(UploadError):
    """Raised when the file content does not match an allowed media type."""

    category = "ContentSniffRejected"
    status_code = 400
    public_message = "File content does not match an allowed media type"


class RateLimitedError(UploadError):
    """Raised when the client exceeded its request budget."""

    category = "RateLimited"
    status_code = 429
    public_message = "Too many requests, please try again later"

    def __init__(self, detail: str = "", retry_after: float = 0.0):
        super().__init__(detail)
        self.retry_after = retry_after


class RemoteStoreError(UploadError):
    """Base exception for remote store failures."""

    category = "TransferFailed"
    status_code = 500
    public_message = "Upload to storage failed"


class RemoteConnectionError(RemoteStoreError):
    """Raised when the remote store cannot be reached or refuses login."""

    category = "ConnectionError"


class DirectoryError(RemoteStoreError):
    """Raised when the remote target directory cannot be created or entered."""

    category = "DirectoryError"


class TransferFailedError(RemoteStoreError):
    """Raised when sending the file to the remote store fails."""

    category = "TransferFailed"


class InternalError(UploadError):
    """Raised for unexpected failures inside the pipeline."""

    category = "InternalError"
