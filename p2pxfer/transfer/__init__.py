"""
Transfer Module - Upload/Download over TCP

Wire protocol, chunked transfer loop, and the listener/initiator roles.
"""

from .protocol import (
    Connection, TransferRequest, TransferOperation, open_connection,
)
from .stream import TransferStats, receive_to_file, send_from_file
from .listener import TransferListener
from .initiator import TransferClient, PutResult, GetResult

__all__ = [
    'Connection',
    'TransferRequest',
    'TransferOperation',
    'open_connection',
    'TransferStats',
    'receive_to_file',
    'send_from_file',
    'TransferListener',
    'TransferClient',
    'PutResult',
    'GetResult',
]
