"""
Wire Protocol

Design Decision: Framing
========================

Options Considered:
1. Binary length prefix + JSON header
   - Compact, self-describing
   - Not readable with telnet/netcat

2. Newline-terminated text command + raw payload
   - Trivial to debug by hand
   - Payload length must be carried in the command itself

3. HTTP
   - Standard, but needs a server stack for one file per connection

Decision: Text control line + raw binary payload
- One ASCII line per direction announces what follows
- The line carries the byte count; the payload is raw, unescaped bytes
- Exactly one request per connection

Exchange:
```
initiator                               listener
---------                               --------
PUT <name> <size>\n  + <size> bytes  ->
                                     <-  OK\n | ERR\n

GET <name>\n                         ->
                                     <-  SIZE <size>\n + <size> bytes
                                         | ERR\n
```
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Awaitable, TypeVar

from ..errors import (
    ConnectFailed, InvalidName, SendFailed, ReceiveFailed, ConnectionClosed,
    ProtocolMismatch,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

ENCODING = 'utf-8'
LINE_END = '\n'

# Replies sent by the listener
REPLY_OK = 'OK'
REPLY_ERR = 'ERR'
REPLY_SIZE = 'SIZE'
REPLY_UNKNOWN_COMMAND = 'ERR unknown-command'

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


def parse_size(token: str) -> int:
    """Parse a size token; anything that isn't a 64-bit integer reads as 0."""
    try:
        value = int(token)
    except ValueError:
        return 0
    if not INT64_MIN <= value <= INT64_MAX:
        return 0
    return value


class TransferOperation(Enum):
    """Requests an initiator can make."""
    PUT = "PUT"
    GET = "GET"


@dataclass(frozen=True)
class TransferRequest:
    """A parsed control line sent by the initiator."""
    operation: TransferOperation
    name: str
    size: int = 0  # PUT only

    def __post_init__(self):
        # Names travel as a single whitespace-delimited token
        if any(ch.isspace() for ch in self.name):
            raise InvalidName(f"Name cannot contain whitespace: {self.name!r}")

    @classmethod
    def parse(cls, line: str) -> 'TransferRequest':
        """
        Parse a command line.

        Missing tokens default to empty/zero. Raises ProtocolMismatch if
        the command is neither PUT nor GET.
        """
        tokens = line.split()
        command = tokens[0] if tokens else ''
        name = tokens[1] if len(tokens) > 1 else ''
        size = parse_size(tokens[2]) if len(tokens) > 2 else 0

        try:
            operation = TransferOperation(command)
        except ValueError:
            raise ProtocolMismatch(f"Unknown command: {command!r}", line)

        if operation is TransferOperation.GET:
            size = 0
        return cls(operation=operation, name=name, size=size)

    def to_line(self) -> str:
        if self.operation is TransferOperation.PUT:
            return f"PUT {self.name} {self.size}"
        return f"GET {self.name}"


def parse_size_reply(line: str) -> int:
    """
    Parse the listener's reply to GET.

    Returns:
        The announced size

    Raises:
        ProtocolMismatch: if the line is not a SIZE reply
    """
    tokens = line.split()
    if not tokens or tokens[0] != REPLY_SIZE:
        raise ProtocolMismatch(f"Expected SIZE, got {line!r}", line)
    return parse_size(tokens[1]) if len(tokens) > 1 else 0


class Connection:
    """
    One TCP connection carrying a single request.

    The only code that touches the socket. Every blocking call is bounded
    by ``timeout`` when one is set; an expired deadline surfaces as the
    same error a reset would.
    """

    def __init__(self, reader: asyncio.StreamReader,
                 writer: asyncio.StreamWriter,
                 timeout: Optional[float] = None):
        self.reader = reader
        self.writer = writer
        self.timeout = timeout
        self._closed = False

    @property
    def remote_address(self) -> Optional[Tuple[str, int]]:
        """Get remote peer address."""
        return self.writer.get_extra_info('peername')

    @property
    def closed(self) -> bool:
        return self._closed

    async def _deadline(self, awaitable: Awaitable[T]) -> T:
        if self.timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, self.timeout)

    async def send_all(self, data: bytes):
        """Send every byte of ``data`` or raise SendFailed."""
        if self._closed or self.writer.is_closing():
            raise SendFailed("Connection closed")
        try:
            self.writer.write(data)
            await self._deadline(self.writer.drain())
        except asyncio.TimeoutError:
            raise SendFailed(f"Send timed out after {self.timeout}s")
        except OSError as e:
            raise SendFailed(f"Send failed: {e}") from e

    async def recv_exact(self, length: int) -> bytes:
        """Receive exactly ``length`` bytes or raise ReceiveFailed."""
        if length <= 0:
            return b''
        if self._closed:
            raise ReceiveFailed("Connection closed")
        try:
            return await self._deadline(self.reader.readexactly(length))
        except asyncio.IncompleteReadError as e:
            raise ReceiveFailed(
                f"Peer closed after {len(e.partial)} of {length} bytes"
            ) from e
        except asyncio.TimeoutError:
            raise ReceiveFailed(f"Receive timed out after {self.timeout}s")
        except OSError as e:
            raise ReceiveFailed(f"Receive failed: {e}") from e

    async def send_line(self, line: str):
        """Send a control line, adding the trailing newline if missing."""
        if not line.endswith(LINE_END):
            line += LINE_END
        await self.send_all(line.encode(ENCODING))

    async def recv_line(self) -> str:
        """
        Receive one control line without its newline.

        Raises:
            ConnectionClosed: peer closed before the newline
            ProtocolMismatch: line longer than the stream limit
        """
        if self._closed:
            raise ConnectionClosed("Connection closed")
        try:
            raw = await self._deadline(self.reader.readuntil(b'\n'))
        except asyncio.IncompleteReadError as e:
            raise ConnectionClosed(
                f"Peer closed after {len(e.partial)} bytes of a control line"
            ) from e
        except asyncio.LimitOverrunError as e:
            raise ProtocolMismatch(f"Control line too long ({e.consumed} bytes)")
        except asyncio.TimeoutError:
            raise ConnectionClosed(f"No control line within {self.timeout}s")
        except OSError as e:
            raise ConnectionClosed(f"Receive failed: {e}") from e
        return raw[:-1].decode(ENCODING, errors='replace')

    async def close(self):
        """Close the connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error while closing {self.remote_address}: {e}")


async def open_connection(host: str, port: int,
                          connect_timeout: Optional[float] = None,
                          timeout: Optional[float] = None) -> Connection:
    """
    Connect to a listener.

    Raises:
        ConnectFailed: if the connection cannot be established
    """
    try:
        connect = asyncio.open_connection(host, port)
        if connect_timeout is None:
            reader, writer = await connect
        else:
            reader, writer = await asyncio.wait_for(connect, connect_timeout)
    except (OSError, asyncio.TimeoutError) as e:
        logger.error(f"Failed to connect to {host}:{port}: {e}")
        raise ConnectFailed(f"Cannot connect to {host}:{port}") from e
    return Connection(reader, writer, timeout=timeout)
