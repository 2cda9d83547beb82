"""
Upload Service

Validates single-file media uploads (rate limit, declared size and type,
content sniffing), names them and relays them to the remote FTP store.
"""

from mediarelay.services.upload.exceptions import UploadError

__all__ = ["UploadError"]
