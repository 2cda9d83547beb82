"""Unit tests for the FTP transfer client."""

import asyncio
import ftplib
import io
import threading
from unittest.mock import MagicMock, patch

import pytest

from mediarelay.services.upload.exceptions import (
    DirectoryError,
    RemoteConnectionError,
    TransferFailedError,
)
from mediarelay.services.upload.transfer import (
    TRANSFER_BLOCK_SIZE,
    TransferClient,
    TransferSession,
)


@pytest.fixture
def mock_ftp_tls():
    """Mock ftplib.FTP_TLS."""
    with patch("mediarelay.services.upload.transfer.ftplib.FTP_TLS") as mock_cls:
        yield mock_cls


@pytest.fixture
def mock_ftp_plain():
    """Mock ftplib.FTP."""
    with patch("mediarelay.services.upload.transfer.ftplib.FTP") as mock_cls:
        yield mock_cls


@pytest.fixture
def client():
    return TransferClient(
        host="ftp.example.com",
        user="deploy",
        password="s3cret",
        port=2121,
        secure=True,
        timeout=12.5,
    )


@pytest.fixture
def ftp():
    return MagicMock()


@pytest.fixture
def session(ftp):
    return TransferSession(ftp, "ftp.example.com")


@pytest.mark.asyncio
async def test_connect_secure(client, mock_ftp_tls):
    """FTPS login protects the data channel and uses the configured timeout."""
    instance = mock_ftp_tls.return_value

    session = await client.connect()

    mock_ftp_tls.assert_called_once_with(timeout=12.5)
    instance.connect.assert_called_once_with("ftp.example.com", 2121)
    instance.login.assert_called_once_with("deploy", "s3cret")
    instance.prot_p.assert_called_once()
    instance.set_pasv.assert_called_once_with(True)
    assert isinstance(session, TransferSession)
    assert session.closed is False


@pytest.mark.asyncio
async def test_connect_plain(mock_ftp_plain, mock_ftp_tls):
    client = TransferClient(host="ftp.example.com", user="u", password="p", secure=False)
    instance = mock_ftp_plain.return_value

    await client.connect()

    mock_ftp_tls.assert_not_called()
    instance.connect.assert_called_once_with("ftp.example.com", 21)
    instance.prot_p.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        ConnectionRefusedError(111, "Connection refused"),
        TimeoutError("timed out"),
        ftplib.error_perm("530 Login incorrect."),
    ],
)
async def test_connect_failure(client, mock_ftp_tls, error):
    instance = mock_ftp_tls.return_value
    instance.login.side_effect = error

    with pytest.raises(RemoteConnectionError) as exc_info:
        await client.connect()

    instance.close.assert_called_once()
    assert "ftp.example.com" in exc_info.value.detail
    assert "s3cret" not in exc_info.value.detail
    assert "s3cret" not in exc_info.value.public_message


@pytest.mark.asyncio
async def test_connect_without_host():
    client = TransferClient(host="", user="u", password="p")

    with pytest.raises(RemoteConnectionError, match="FTP_HOST"):
        await client.connect()


def test_from_settings():
    settings = MagicMock(
        FTP_HOST="ftp.example.com",
        FTP_PORT=990,
        FTP_USER="deploy",
        FTP_PASSWORD="pw",
        FTP_SECURE=False,
        FTP_TIMEOUT_SECONDS=20.0,
        FTP_PASSIVE=False,
    )

    client = TransferClient.from_settings(settings)

    assert (client.host, client.port, client.user) == ("ftp.example.com", 990, "deploy")
    assert client.secure is False
    assert client.timeout == 20.0
    assert client.passive is False


@pytest.mark.asyncio
async def test_ensure_directory_creates_missing_segments(session, ftp):
    existing = {"/", "public_html"}

    def cwd(path):
        if path not in existing:
            raise ftplib.error_perm("550 No such directory")

    def mkd(path):
        existing.add(path)
        return path

    ftp.cwd.side_effect = cwd
    ftp.mkd.side_effect = mkd

    await session.ensure_directory("/public_html/media/uploads")

    ftp.mkd.assert_any_call("media")
    ftp.mkd.assert_any_call("uploads")
    assert ftp.mkd.call_count == 2
    assert ftp.cwd.call_args_list[0].args == ("/",)
    assert ftp.cwd.call_args_list[-1].args == ("uploads",)


@pytest.mark.asyncio
async def test_ensure_relative_directory_does_not_go_to_root(session, ftp):
    await session.ensure_directory("uploads")

    ftp.cwd.assert_called_once_with("uploads")


@pytest.mark.asyncio
async def test_ensure_directory_failure(session, ftp):
    ftp.cwd.side_effect = ftplib.error_perm("550 No such directory")
    ftp.mkd.side_effect = ftplib.error_perm("550 Permission denied")

    with pytest.raises(DirectoryError):
        await session.ensure_directory("/readonly")


@pytest.mark.asyncio
async def test_send_stream(session, ftp):
    source = io.BytesIO(b"data")

    await session.send(source, "1700000000000-abc.png")

    ftp.storbinary.assert_called_once_with(
        "STOR 1700000000000-abc.png", source, blocksize=TRANSFER_BLOCK_SIZE
    )


@pytest.mark.asyncio
async def test_send_bytes_are_wrapped(session, ftp):
    await session.send(b"data", "name.png")

    sent = ftp.storbinary.call_args.args[1]
    assert sent.read() == b"data"


@pytest.mark.asyncio
async def test_send_failure(session, ftp):
    ftp.storbinary.side_effect = ftplib.error_temp("451 Requested action aborted")

    with pytest.raises(TransferFailedError) as exc_info:
        await session.send(b"data", "name.png")

    assert "451" in exc_info.value.detail
    assert "451" not in exc_info.value.public_message


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["", "../escape.png", "dir/name.png", "dir\\name.png"])
async def test_send_refuses_path_names(session, ftp, name):
    with pytest.raises(TransferFailedError):
        await session.send(b"data", name)

    ftp.storbinary.assert_not_called()


@pytest.mark.asyncio
async def test_close_is_idempotent(session, ftp):
    await session.close()
    await session.close()

    ftp.quit.assert_called_once()
    ftp.close.assert_called_once()
    assert session.closed is True


@pytest.mark.asyncio
async def test_close_survives_failed_quit(session, ftp):
    ftp.quit.side_effect = EOFError()

    await session.close()

    ftp.close.assert_called_once()


@pytest.mark.asyncio
async def test_closed_session_refuses_work(session, ftp):
    await session.close()

    with pytest.raises(RemoteConnectionError):
        await session.send(b"data", "name.png")


@pytest.mark.asyncio
async def test_session_context_closes_on_error(client, mock_ftp_tls):
    instance = mock_ftp_tls.return_value

    with pytest.raises(RuntimeError):
        async with client.session() as session:
            raise RuntimeError("boom")

    assert session.closed is True
    instance.quit.assert_called_once()
    instance.close.assert_called_once()


async def wait_for(predicate, timeout=5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        assert loop.time() < deadline, "condition not reached in time"
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_cancelled_connect_closes_late_connection(client, mock_ftp_tls):
    """A login that completes after the caller is cancelled is not left open."""
    instance = mock_ftp_tls.return_value
    entered = threading.Event()
    release = threading.Event()

    def slow_login(user, password):
        entered.set()
        release.wait(5)

    instance.login.side_effect = slow_login

    task = asyncio.create_task(client.connect())
    await asyncio.to_thread(entered.wait, 5)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    instance.close.assert_not_called()
    release.set()

    await wait_for(lambda: instance.close.called)
    instance.close.assert_called_once()


@pytest.mark.asyncio
async def test_close_waits_for_cancelled_send(session, ftp):
    """QUIT is only sent once the abandoned upload thread has finished."""
    calls = []
    entered = threading.Event()
    release = threading.Event()

    def slow_storbinary(*args, **kwargs):
        entered.set()
        release.wait(5)
        calls.append("storbinary")

    ftp.storbinary.side_effect = slow_storbinary
    ftp.quit.side_effect = lambda: calls.append("quit")

    task = asyncio.create_task(session.send(b"data", "name.png"))
    await asyncio.to_thread(entered.wait, 5)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    closing = asyncio.create_task(session.close())
    await asyncio.sleep(0.05)
    assert not closing.done()
    ftp.quit.assert_not_called()

    release.set()
    await closing

    assert calls == ["storbinary", "quit"]
    ftp.close.assert_called_once()
