"""
Transfer Listener

Serves PUT and GET requests, one request per connection.

Design Decision: Connection Scheduling
======================================

Options Considered:
1. Blocking accept loop, one connection at a time
   - Simplest possible model
   - A stalled peer blocks everyone behind it

2. Task per connection, unbounded
   - Peers never wait on each other
   - Nothing limits open files or memory

3. Task per connection behind a semaphore
   - Default of one slot behaves like option 1
   - Raising the limit gives option 2 with a bound

Decision: asyncio server + semaphore (default: 1 slot)
- A request is not read until a slot is free, so with the default a
  second peer is served only after the first connection has closed
- Handlers share nothing but counters: each owns its own file handle
"""

import asyncio
import logging
import stat
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

from .protocol import (
    Connection, TransferRequest, TransferOperation,
    REPLY_OK, REPLY_ERR, REPLY_SIZE, REPLY_UNKNOWN_COMMAND,
)
from .stream import (
    TransferStats, discard_payload, receive_to_file, send_from_file,
)
from ..config import Config
from ..errors import (
    TransferError, SendFailed, ReceiveFailed, ConnectionClosed,
    ProtocolMismatch,
)
from ..file import resolve_resource

logger = logging.getLogger(__name__)


class TransferListener:
    """
    TCP server for incoming uploads and downloads.

    PUT: stores the payload under ``config.data_dir`` using the sanitized name.
    GET: serves a file by name (sanitized too, unless ``strict_paths`` is off).
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self.host = self.config.host
        self.port = self.config.port
        self.data_dir = Path(self.config.data_dir)
        self.server: Optional[asyncio.AbstractServer] = None
        self._slots = asyncio.Semaphore(self.config.max_concurrent_transfers)

        # Statistics
        self.uploads = 0
        self.downloads = 0
        self.bytes_received = 0
        self.bytes_sent = 0

    @property
    def is_running(self) -> bool:
        return self.server is not None and self.server.is_serving()

    async def start(self):
        """Start listening."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.server = await asyncio.start_server(
            self._handle_connection,
            self.host,
            self.port,
            backlog=self.config.backlog,
        )

        # Port 0 picks a free port; report the real one
        self.port = self.server.sockets[0].getsockname()[1]
        logger.info(f"Listening on port {self.port}")

    async def serve_forever(self):
        """Start (if needed) and serve until cancelled."""
        if self.server is None:
            await self.start()
        await self.server.serve_forever()

    async def stop(self):
        """Stop listening and wait for open connections to finish."""
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None
            logger.info(
                f"Listener stopped. {self.uploads} uploads "
                f"({self.bytes_received:,} bytes), {self.downloads} downloads "
                f"({self.bytes_sent:,} bytes)"
            )

    async def _handle_connection(self, reader: asyncio.StreamReader,
                                 writer: asyncio.StreamWriter):
        """Handle an incoming connection."""
        async with self._slots:
            conn = Connection(reader, writer, timeout=self.config.transfer_timeout)
            peer = conn.remote_address
            logger.debug(f"New transfer connection from {peer}")

            try:
                line = await conn.recv_line()
                request = TransferRequest.parse(line)

                if request.operation is TransferOperation.PUT:
                    await self.handle_put(conn, request)
                else:
                    await self.handle_get(conn, request)

            except ConnectionClosed as e:
                logger.debug(f"No request from {peer}: {e}")
            except ProtocolMismatch as e:
                logger.warning(f"Rejected request from {peer}: {e}")
                try:
                    await conn.send_line(REPLY_UNKNOWN_COMMAND)
                except SendFailed as send_error:
                    logger.debug(f"Could not reject {peer}: {send_error}")
            except TransferError as e:
                logger.warning(f"Transfer with {peer} aborted: {e}")
            except Exception as e:
                logger.error(f"Error handling connection from {peer}: {e}")
            finally:
                await conn.close()
                logger.debug(f"Connection closed: {peer}")

    async def handle_put(self, conn: Connection, request: TransferRequest):
        """
        Receive an upload.

        The partial file is left in place if the peer disconnects early,
        and no reply is sent in that case.
        """
        dest = resolve_resource(request.name, self.data_dir)
        size = request.size

        limit = self.config.max_upload_size
        if limit is not None and size > limit:
            logger.warning(
                f"Refusing {dest.name}: declared {size:,} bytes exceeds "
                f"limit of {limit:,}"
            )
            await self._refuse_upload(conn, size)
            return

        try:
            out = await aiofiles.open(dest, 'wb')
        except OSError as e:
            logger.warning(f"Cannot open {dest} for writing: {e}")
            await self._refuse_upload(conn, size)
            return

        stats = TransferStats()
        try:
            await receive_to_file(
                conn, out, size, self.config.chunk_size, stats=stats
            )
        except ReceiveFailed:
            self.bytes_received += stats.bytes_transferred
            logger.warning(
                f"Upload of {dest.name} stopped at "
                f"{stats.bytes_transferred:,} of {size:,} bytes"
            )
            raise
        finally:
            await out.close()

        self.uploads += 1
        self.bytes_received += stats.bytes_transferred
        await conn.send_line(REPLY_OK)
        logger.info(f"Received {dest.name} ({size} bytes)")

    async def _refuse_upload(self, conn: Connection, size: int):
        """Reply ERR, then drain the payload so the reply isn't lost to a reset."""
        await conn.send_line(REPLY_ERR)
        dropped = await discard_payload(conn, size, self.config.chunk_size)
        logger.debug(f"Discarded {dropped:,} bytes of refused upload")

    def _source_path(self, name: str) -> Path:
        if self.config.strict_paths:
            return resolve_resource(name, self.data_dir)
        return Path(name)

    async def handle_get(self, conn: Connection, request: TransferRequest):
        """Serve a download: ``SIZE <n>`` followed by the raw bytes."""
        path = self._source_path(request.name)

        try:
            st = await aiofiles.os.stat(path)
        except OSError as e:
            logger.warning(f"Cannot size {path}: {e}")
            await conn.send_line(REPLY_ERR)
            return

        if not stat.S_ISREG(st.st_mode):
            logger.warning(f"Not a regular file: {path}")
            await conn.send_line(REPLY_ERR)
            return

        size = st.st_size
        try:
            src = await aiofiles.open(path, 'rb')
        except OSError as e:
            logger.warning(f"Cannot open {path} for reading: {e}")
            await conn.send_line(REPLY_ERR)
            return

        stats = TransferStats()
        try:
            await conn.send_line(f"{REPLY_SIZE} {size}")
            await send_from_file(
                conn, src, size, self.config.chunk_size, stats=stats
            )
        except SendFailed as e:
            logger.warning(
                f"Download of {path} stopped at "
                f"{stats.bytes_transferred:,} of {size:,} bytes: {e}"
            )
            return
        finally:
            self.bytes_sent += stats.bytes_transferred
            await src.close()

        self.downloads += 1
        logger.info(f"Sent {request.name} ({size} bytes)")

    def get_stats(self) -> dict:
        """Get listener statistics."""
        return {
            'uploads': self.uploads,
            'downloads': self.downloads,
            'bytes_received': self.bytes_received,
            'bytes_sent': self.bytes_sent,
            'port': self.port,
        }
