"""
Transfer Initiator

Connects to a listener and performs exactly one PUT or GET.

PUT Flow:
1. Size the local file (fails before connecting if it can't be read)
2. Send "PUT <remote-name> <size>"
3. Stream the file in bounded chunks
4. Read the listener's status line (OK / ERR / empty)

GET Flow:
1. Send "GET <name>"
2. Expect "SIZE <n>"; anything else is a ProtocolMismatch, no file created
3. Receive exactly n bytes into the save file as they arrive
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import aiofiles
import aiofiles.os

from .protocol import (
    Connection, TransferRequest, TransferOperation, open_connection,
    parse_size_reply, REPLY_OK,
)
from .stream import (
    ProgressCallback, TransferStats, receive_to_file, send_from_file,
)
from ..config import Config
from ..errors import (
    SendFailed, ReceiveFailed, ConnectionClosed, FileOpenFailed,
)
from ..file import safe_name

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class PutResult:
    """Outcome of an upload."""
    remote_name: str
    size: int
    status: str  # listener's status line, '' if none arrived
    bytes_sent: int = 0

    @property
    def ok(self) -> bool:
        return self.status == REPLY_OK


@dataclass
class GetResult:
    """Outcome of a download."""
    path: Path
    size: int  # size announced by the listener
    bytes_received: int = 0

    @property
    def complete(self) -> bool:
        return self.bytes_received == max(self.size, 0)


class TransferClient:
    """
    Initiator side of the protocol.

    Every call opens its own connection and closes it before returning.
    """

    def __init__(self, host: str, port: int, config: Optional[Config] = None):
        self.host = host
        self.port = port
        self.config = config or Config()

    async def connect(self) -> Connection:
        """Open a connection to the listener (raises ConnectFailed)."""
        return await open_connection(
            self.host,
            self.port,
            connect_timeout=self.config.connect_timeout,
            timeout=self.config.transfer_timeout,
        )

    async def put(self, local_path: PathLike,
                  remote_name: Optional[str] = None,
                  progress: Optional[ProgressCallback] = None) -> PutResult:
        """
        Upload a local file.

        Args:
            local_path: File to send
            remote_name: Name on the listener (default: sanitized base name)
            progress: Called with TransferStats after each chunk

        Returns:
            PutResult; ``status`` is '' if the transfer broke off

        Raises:
            FileOpenFailed: local file missing or unreadable
            InvalidName: remote name contains whitespace
            ConnectFailed: listener unreachable
        """
        local_path = Path(local_path)
        remote = remote_name or safe_name(str(local_path))
        try:
            size = (await aiofiles.os.stat(local_path)).st_size
        except OSError as e:
            raise FileOpenFailed(f"Cannot read {local_path}: {e}") from e
        request = TransferRequest(TransferOperation.PUT, remote, size)

        try:
            src = await aiofiles.open(local_path, 'rb')
        except OSError as e:
            raise FileOpenFailed(f"Cannot read {local_path}: {e}") from e
        stats = TransferStats()
        status = ''

        try:
            conn = await self.connect()
            try:
                await conn.send_line(request.to_line())
                await send_from_file(
                    conn, src, size, self.config.chunk_size,
                    stats=stats, progress=progress,
                )
                status = await conn.recv_line()
            except SendFailed as e:
                logger.warning(
                    f"Upload stopped at {stats.bytes_transferred:,} "
                    f"of {size:,} bytes: {e}"
                )
                status = await self._late_status(conn)
            except ConnectionClosed as e:
                logger.warning(f"No status from listener: {e}")
            finally:
                await conn.close()
        finally:
            await src.close()

        logger.debug(f"PUT {remote} ({size} bytes) -> {status!r}")
        return PutResult(
            remote_name=remote,
            size=size,
            status=status,
            bytes_sent=stats.bytes_transferred,
        )

    async def _late_status(self, conn: Connection) -> str:
        """Pick up a status line the listener sent before cutting the upload off."""
        try:
            return await conn.recv_line()
        except ConnectionClosed as e:
            logger.debug(f"No status after failed upload: {e}")
            return ''

    async def get(self, name: str,
                  save_as: Optional[PathLike] = None,
                  progress: Optional[ProgressCallback] = None) -> GetResult:
        """
        Download a file from the listener.

        A receive failure partway through keeps what was written so far;
        check ``GetResult.complete``.

        Raises:
            ProtocolMismatch: reply was not SIZE (``e.line`` holds it)
            InvalidName: name contains whitespace
            FileOpenFailed: save file cannot be created
            ConnectFailed: listener unreachable
        """
        save_path = Path(save_as) if save_as else Path(safe_name(name))
        request = TransferRequest(TransferOperation.GET, name)
        stats = TransferStats()

        conn = await self.connect()
        try:
            await conn.send_line(request.to_line())
            try:
                line = await conn.recv_line()
            except ConnectionClosed as e:
                logger.debug(f"No reply to GET {name}: {e}")
                line = ''
            size = parse_size_reply(line)

            try:
                out = await aiofiles.open(save_path, 'wb')
            except OSError as e:
                raise FileOpenFailed(f"Cannot write {save_path}: {e}") from e

            try:
                await receive_to_file(
                    conn, out, size, self.config.chunk_size,
                    stats=stats, progress=progress,
                )
            except ReceiveFailed as e:
                logger.warning(
                    f"Download stopped at {stats.bytes_transferred:,} "
                    f"of {size:,} bytes: {e}"
                )
            finally:
                await out.close()
        finally:
            await conn.close()

        return GetResult(
            path=save_path,
            size=size,
            bytes_received=stats.bytes_transferred,
        )
