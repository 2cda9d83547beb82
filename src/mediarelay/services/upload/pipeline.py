"""
Upload validation and relay pipeline.

One call to UploadPipeline.process handles one request, strictly in order:

    admission (rate limit) -> pre-filter -> buffer -> sniff -> name
    -> transfer -> result

Every resource acquired along the way (inbound stream, local buffer, remote
session) is registered on an AsyncExitStack as soon as it exists, so it is
released on success, on every failure and on cancellation.
"""

import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from mediarelay.core.logging import storage_name_context
from mediarelay.services.upload.exceptions import (
    ContentSniffRejectedError,
    InternalError,
    RateLimitedError,
    UploadError,
)
from mediarelay.services.upload.naming import allocate_storage_name
from mediarelay.services.upload.rate_limit import RateLimitDecision, RateLimitStore
from mediarelay.services.upload.sniffer import sniff_buffer
from mediarelay.services.upload.transfer import TransferClient
from mediarelay.services.upload.validation import (
    InboundFile,
    UploadPolicy,
    check_declared_length,
    run_prefilter,
)
from mediarelay.storage.base import BufferBackend

logger = logging.getLogger(__name__)

FileLoader = Callable[[], Awaitable[Optional[InboundFile]]]


@dataclass
class UploadResult:
    """Outcome of one pipeline run."""

    success: bool
    public_url: Optional[str] = None
    storage_name: Optional[str] = None
    error: Optional[UploadError] = None
    rate_limit: Optional[RateLimitDecision] = None

    @classmethod
    def succeeded(
        cls, public_url: str, storage_name: str, rate_limit: Optional[RateLimitDecision] = None
    ) -> "UploadResult":
        return cls(
            success=True,
            public_url=public_url,
            storage_name=storage_name,
            rate_limit=rate_limit,
        )

    @classmethod
    def failed(
        cls, error: UploadError, rate_limit: Optional[RateLimitDecision] = None
    ) -> "UploadResult":
        return cls(success=False, error=error, rate_limit=rate_limit)


def build_public_url(base_url: str, storage_name: str) -> str:
    """Join the public base URL and a storage name."""
    return f"{base_url.rstrip('/')}/{storage_name}"


class UploadPipeline:
    """Validates an inbound upload and relays it to the remote store."""

    def __init__(
        self,
        policy: UploadPolicy,
        rate_limiter: RateLimitStore,
        buffer_backend: BufferBackend,
        transfer_client: TransferClient,
        public_base_url: str,
        remote_directory: str,
        name_allocator: Callable[..., str] = allocate_storage_name,
    ):
        self.policy = policy
        self.rate_limiter = rate_limiter
        self.buffer_backend = buffer_backend
        self.transfer_client = transfer_client
        self.public_base_url = public_base_url
        self.remote_directory = remote_directory
        self.name_allocator = name_allocator

    async def process(
        self,
        client_key: str,
        load_file: FileLoader,
        declared_length: Optional[int] = None,
    ) -> UploadResult:
        """Run one upload through the pipeline.

        Args:
            client_key: Rate-limit key of the caller (usually its address)
            load_file: Parses the request body and returns the file part, or
                None when the request carries no file. Never awaited for
                requests rejected before buffering.
            declared_length: Total request body length announced by the
                client, if any

        Returns:
            UploadResult; errors are reported in the result, not raised.
            Cancellation propagates after cleanup has run.
        """
        decision = self.rate_limiter.hit(client_key)

        try:
            if not decision.allowed:
                raise RateLimitedError(
                    f"Client {client_key} exceeded {decision.limit} requests per window",
                    retry_after=decision.reset_after,
                )
            async with AsyncExitStack() as cleanup:
                storage_name = await self._run(cleanup, load_file, declared_length)
        except UploadError as e:
            self._log_failure(e, client_key)
            return UploadResult.failed(e, decision)
        except Exception as e:
            logger.error(
                f"Unexpected error during upload: {e}",
                extra={"client": client_key},
                exc_info=True,
            )
            return UploadResult.failed(InternalError(str(e)), decision)

        public_url = build_public_url(self.public_base_url, storage_name)
        logger.info(
            f"Upload completed: {storage_name}",
            extra={"client": client_key, "storage_name": storage_name},
        )
        return UploadResult.succeeded(public_url, storage_name, decision)

    async def _run(
        self,
        cleanup: AsyncExitStack,
        load_file: FileLoader,
        declared_length: Optional[int],
    ) -> str:
        rejection = check_declared_length(declared_length, self.policy)
        if rejection is not None:
            raise rejection

        inbound = await load_file()
        if inbound is not None:
            cleanup.callback(inbound.file.close)

        rejection = run_prefilter(inbound, self.policy)
        if rejection is not None:
            raise rejection

        buffered = await self.buffer_backend.buffer(
            inbound.file, self.policy.max_file_size_bytes
        )
        cleanup.callback(buffered.discard)

        sniffed_type = sniff_buffer(buffered)
        if not self.policy.allows(sniffed_type):
            raise ContentSniffRejectedError(
                f"Content sniffed as {sniffed_type!r}, declared {inbound.content_type!r}"
            )

        storage_name = self.name_allocator(sniffed_type, inbound.filename)
        token = storage_name_context.set(storage_name)
        cleanup.callback(storage_name_context.reset, token)

        logger.debug(
            "Upload validated",
            extra={
                "sniffed_type": sniffed_type,
                "declared_type": inbound.content_type,
                "size_bytes": buffered.size,
            },
        )

        session = await self.transfer_client.connect()
        cleanup.push_async_callback(session.close)

        await session.ensure_directory(self.remote_directory)

        source = buffered.open()
        cleanup.callback(source.close)
        await session.send(source, storage_name)

        return storage_name

    @staticmethod
    def _log_failure(error: UploadError, client_key: str) -> None:
        extra = {"client": client_key, "category": error.category}
        if error.is_client_error:
            logger.warning(f"Upload rejected: {error.detail}", extra=extra)
        else:
            logger.error(f"Upload failed: {error.detail}", extra=extra, exc_info=error)
