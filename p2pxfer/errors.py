"""
Transfer errors.

Every failure is local to one connection: the listener logs it and keeps
accepting, the initiator reports it and exits.
"""


class TransferError(Exception):
    pass


class ConnectFailed(TransferError):
    """Raised when the TCP connection to the listener cannot be established."""


class SendFailed(TransferError):
    """Raised when a write to the peer fails or its deadline expires."""


class ReceiveFailed(TransferError):
    """Raised when the peer closes (or stalls past the deadline) mid-read."""


class ConnectionClosed(ReceiveFailed):
    """Raised when the peer closes before a full control line arrived."""


class FileOpenFailed(TransferError):
    """Raised when a local file cannot be opened or sized."""


class ProtocolMismatch(TransferError):
    """
    Raised on an unexpected or malformed control line.

    The offending line is kept on ``line`` so callers can show it.
    """

    def __init__(self, message: str, line: str = ''):
        super().__init__(message)
        self.line = line


class InvalidName(TransferError, ValueError):
    """Raised for a resource name the control line cannot carry (whitespace)."""
