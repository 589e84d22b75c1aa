"""
p2pxfer - point-to-point file transfer over TCP.

One side listens and serves PUT/GET requests, the other connects and
uploads or downloads a single file per connection.
"""

from .config import Config, load_config
from .errors import (
    TransferError, ConnectFailed, SendFailed, ReceiveFailed,
    ConnectionClosed, FileOpenFailed, ProtocolMismatch, InvalidName,
)
from .file import safe_name, resolve_resource
from .transfer import (
    Connection, TransferRequest, TransferOperation, TransferStats,
    TransferListener, TransferClient, PutResult, GetResult,
)

__version__ = '0.1.0'

__all__ = [
    'Config',
    'load_config',
    'TransferError',
    'ConnectFailed',
    'SendFailed',
    'ReceiveFailed',
    'ConnectionClosed',
    'FileOpenFailed',
    'ProtocolMismatch',
    'InvalidName',
    'safe_name',
    'resolve_resource',
    'Connection',
    'TransferRequest',
    'TransferOperation',
    'TransferStats',
    'TransferListener',
    'TransferClient',
    'PutResult',
    'GetResult',
]
