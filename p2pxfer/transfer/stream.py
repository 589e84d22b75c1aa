"""
Chunked Transfer Loop

Moves file bytes between an open file and a Connection in chunks no larger
than the transfer buffer, so memory use stays flat whatever the file size.
Both directions stop after exactly ``size`` bytes.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from .protocol import Connection
from ..errors import ReceiveFailed

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 64 * 1024  # 64KB

ProgressCallback = Callable[['TransferStats'], None]


@dataclass
class TransferStats:
    """Progress of a single transfer."""
    total_bytes: int = 0
    bytes_transferred: int = 0
    chunks: int = 0

    @property
    def complete(self) -> bool:
        return self.bytes_transferred >= self.total_bytes

    @property
    def progress_percent(self) -> float:
        if self.total_bytes <= 0:
            return 100.0
        return self.bytes_transferred / self.total_bytes * 100


def chunk_sizes(total: int, capacity: int = DEFAULT_BUFFER_SIZE) -> Iterator[int]:
    """Yield the chunk lengths needed to move ``total`` bytes."""
    if capacity <= 0:
        raise ValueError(f"Buffer capacity must be positive, got {capacity}")
    left = total
    while left > 0:
        chunk = min(left, capacity)
        yield chunk
        left -= chunk


async def receive_to_file(conn: Connection, out, size: int,
                          buffer_size: int = DEFAULT_BUFFER_SIZE,
                          stats: Optional[TransferStats] = None,
                          progress: Optional[ProgressCallback] = None
                          ) -> TransferStats:
    """
    Receive exactly ``size`` bytes from ``conn`` into the open file ``out``.

    Each chunk is written as soon as it arrives. On ReceiveFailed the
    chunk in flight is dropped and whatever was already written stays in
    ``out``; pass ``stats`` to see how far the transfer got.

    Args:
        conn: Connection to read from
        out: aiofiles file opened for binary writing
        size: Number of bytes to receive (<= 0 receives nothing)
        buffer_size: Transfer buffer capacity
        stats: Optional stats object updated in place
        progress: Called with the stats after every chunk
    """
    if stats is None:
        stats = TransferStats()
    stats.total_bytes = max(size, 0)

    for chunk in chunk_sizes(size, buffer_size):
        data = await conn.recv_exact(chunk)
        await out.write(data)
        stats.bytes_transferred += len(data)
        stats.chunks += 1
        if progress:
            progress(stats)

    return stats


async def send_from_file(conn: Connection, src, size: int,
                         buffer_size: int = DEFAULT_BUFFER_SIZE,
                         stats: Optional[TransferStats] = None,
                         progress: Optional[ProgressCallback] = None
                         ) -> TransferStats:
    """
    Send up to ``size`` bytes read from the open file ``src``.

    Stops early if the file ends before ``size`` bytes (it shrank after it
    was sized); never sends more than ``size`` even if it grew.
    Raises SendFailed from the first failed write.
    """
    if stats is None:
        stats = TransferStats()
    stats.total_bytes = max(size, 0)

    for chunk in chunk_sizes(size, buffer_size):
        data = await src.read(chunk)
        if not data:
            logger.warning(
                f"File ended after {stats.bytes_transferred} of {size} bytes"
            )
            break
        await conn.send_all(data)
        stats.bytes_transferred += len(data)
        stats.chunks += 1
        if progress:
            progress(stats)

    return stats


async def discard_payload(conn: Connection, size: int,
                          buffer_size: int = DEFAULT_BUFFER_SIZE) -> int:
    """
    Read and drop up to ``size`` bytes of a payload that won't be stored.

    Closing with unread input resets the connection and loses any reply
    already sent, so a refused upload is drained first. Stops quietly if
    the peer goes away. Returns the number of bytes dropped.
    """
    dropped = 0
    for chunk in chunk_sizes(size, buffer_size):
        try:
            dropped += len(await conn.recv_exact(chunk))
        except ReceiveFailed as e:
            logger.debug(f"Stopped discarding after {dropped} bytes: {e}")
            break
    return dropped
