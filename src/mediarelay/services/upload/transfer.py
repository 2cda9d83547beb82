"""FTP/FTPS transfer client for the remote media store."""

import asyncio
import ftplib
import io
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, BinaryIO, Callable, Optional, Union

from mediarelay.services.upload.exceptions import (
    DirectoryError,
    RemoteConnectionError,
    TransferFailedError,
)

logger = logging.getLogger(__name__)

TRANSFER_BLOCK_SIZE = 65536

TransferSource = Union[bytes, bytearray, BinaryIO]


class TransferSession:
    """One authenticated connection to the remote store.

    A session belongs to a single request and is never reused. All blocking
    ftplib calls run in a worker thread; each socket operation is bounded by
    the timeout the connection was opened with. Cancelling a caller does not
    stop its worker thread, so close() waits for it before sending QUIT.
    """

    def __init__(self, ftp: ftplib.FTP, host: str):
        self._ftp = ftp
        self._host = host
        self._closed = False
        self._in_flight: Optional[asyncio.Future] = None

    @property
    def closed(self) -> bool:
        return self._closed

    async def ensure_directory(self, path: str) -> None:
        """Change into path on the remote store, creating missing segments.

        Args:
            path: Remote directory; absolute paths start from the root

        Raises:
            DirectoryError: If a segment cannot be entered or created
        """
        self._check_open()
        try:
            await self._call(self._ensure_directory, path)
        except ftplib.all_errors as e:
            logger.error(
                f"Failed to prepare remote directory: {e}",
                extra={"host": self._host, "remote_dir": path, "error": str(e)},
            )
            raise DirectoryError(f"Cannot enter or create {path!r} on {self._host}: {e}") from e

    def _ensure_directory(self, path: str) -> None:
        if path.startswith("/"):
            self._ftp.cwd("/")
        for segment in (s for s in path.split("/") if s):
            try:
                self._ftp.cwd(segment)
            except ftplib.error_perm:
                self._ftp.mkd(segment)
                self._ftp.cwd(segment)

    async def send(self, source: TransferSource, destination_name: str) -> None:
        """Upload source under destination_name in the current directory.

        Raises:
            TransferFailedError: If the name is not a plain file name or the
                upload fails
        """
        self._check_open()
        if not destination_name or "/" in destination_name or "\\" in destination_name:
            raise TransferFailedError(f"Refusing to store under name {destination_name!r}")

        if isinstance(source, (bytes, bytearray)):
            source = io.BytesIO(source)

        try:
            await self._call(
                self._ftp.storbinary,
                f"STOR {destination_name}",
                source,
                blocksize=TRANSFER_BLOCK_SIZE,
            )
        except ftplib.all_errors as e:
            logger.error(
                f"Failed to upload {destination_name}: {e}",
                extra={"host": self._host, "destination": destination_name, "error": str(e)},
            )
            raise TransferFailedError(f"STOR {destination_name} on {self._host} failed: {e}") from e

        logger.info(
            f"Uploaded {destination_name}",
            extra={"host": self._host, "destination": destination_name},
        )

    async def close(self) -> None:
        """Close the connection. Idempotent."""
        if self._closed:
            return
        self._closed = True
        call = self._in_flight
        if call is not None and not call.done():
            await asyncio.wait([call])
            if not call.cancelled() and call.exception() is not None:
                logger.debug(
                    f"Abandoned transfer call ended with: {call.exception()}",
                    extra={"host": self._host},
                )
        await asyncio.to_thread(self._close)

    def _close(self) -> None:
        try:
            self._ftp.quit()
        except ftplib.all_errors as e:
            logger.debug(
                f"QUIT failed, closing socket: {e}",
                extra={"host": self._host},
            )
        finally:
            self._ftp.close()

    async def _call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        call = asyncio.ensure_future(asyncio.to_thread(func, *args, **kwargs))
        self._in_flight = call
        return await asyncio.shield(call)

    def _check_open(self) -> None:
        if self._closed:
            raise RemoteConnectionError("Transfer session already closed")


class TransferClient:
    """Opens sessions against the configured remote store."""

    def __init__(
        self,
        host: str,
        user: str,
        password: str,
        port: int = 21,
        secure: bool = True,
        timeout: float = 30.0,
        passive: bool = True,
    ):
        self.host = host
        self.port = port
        self.user = user
        self._password = password
        self.secure = secure
        self.timeout = timeout
        self.passive = passive

    @classmethod
    def from_settings(cls, settings) -> "TransferClient":
        return cls(
            host=settings.FTP_HOST,
            port=settings.FTP_PORT,
            user=settings.FTP_USER,
            password=settings.FTP_PASSWORD,
            secure=settings.FTP_SECURE,
            timeout=settings.FTP_TIMEOUT_SECONDS,
            passive=settings.FTP_PASSIVE,
        )

    async def connect(self) -> TransferSession:
        """Connect and log in.

        Returns:
            Open transfer session

        Raises:
            RemoteConnectionError: If the host is unreachable, the connection
                times out or login is refused
        """
        if not self.host:
            raise RemoteConnectionError("FTP_HOST not configured")

        logger.info(
            "Connecting to remote store",
            extra={"host": self.host, "port": self.port, "secure": self.secure},
        )
        opening = asyncio.ensure_future(asyncio.to_thread(self._open))
        try:
            ftp = await asyncio.shield(opening)
        except asyncio.CancelledError:
            opening.add_done_callback(self._discard_late_connection)
            raise
        except ftplib.all_errors as e:
            logger.error(
                f"Failed to connect to remote store: {e}",
                extra={"host": self.host, "port": self.port, "error": str(e)},
            )
            raise RemoteConnectionError(
                f"Cannot connect to {self.host}:{self.port} as {self.user!r}: {e}"
            ) from e
        return TransferSession(ftp, self.host)

    def _open(self) -> ftplib.FTP:
        ftp = ftplib.FTP_TLS(timeout=self.timeout) if self.secure else ftplib.FTP(timeout=self.timeout)
        try:
            ftp.connect(self.host, self.port)
            ftp.login(self.user, self._password)
            if self.secure:
                ftp.prot_p()
            ftp.set_pasv(self.passive)
        except BaseException:
            ftp.close()
            raise
        return ftp

    def _discard_late_connection(self, opening: asyncio.Future) -> None:
        """Close a connection whose caller was cancelled during login."""
        if opening.cancelled() or opening.exception() is not None:
            return
        logger.info(
            "Closing connection opened after the upload was cancelled",
            extra={"host": self.host},
        )
        opening.result().close()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[TransferSession]:
        """Open a session that is closed on exit, whatever happens inside."""
        session = await self.connect()
        try:
            yield session
        finally:
            await session.close()
