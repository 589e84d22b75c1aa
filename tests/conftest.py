"""
Shared fixtures: fake streams for unit tests and loopback listeners for
end-to-end tests.
"""

import asyncio
import socket
import threading
from pathlib import Path
from typing import List, Optional

import pytest
import pytest_asyncio

from p2pxfer.config import Config
from p2pxfer.transfer import Connection, TransferListener, TransferClient


class FakeWriter:
    """Stands in for asyncio.StreamWriter and records what was written."""

    def __init__(self, fail_on_drain: Optional[int] = None):
        self.chunks: List[bytes] = []
        self.fail_on_drain = fail_on_drain
        self.close_calls = 0
        self._drains = 0

    @property
    def data(self) -> bytes:
        return b''.join(self.chunks)

    def write(self, data: bytes):
        self.chunks.append(bytes(data))

    async def drain(self):
        self._drains += 1
        if self.fail_on_drain is not None and self._drains >= self.fail_on_drain:
            raise ConnectionResetError("Connection reset by peer")

    def is_closing(self) -> bool:
        return self.close_calls > 0

    def close(self):
        self.close_calls += 1

    async def wait_closed(self):
        pass

    def get_extra_info(self, name, default=None):
        if name == 'peername':
            return ('127.0.0.1', 50000)
        return default


def make_reader(data: bytes = b'', eof: bool = True) -> asyncio.StreamReader:
    """Build a StreamReader pre-loaded with ``data``. Call inside a loop."""
    reader = asyncio.StreamReader()
    if data:
        reader.feed_data(data)
    if eof:
        reader.feed_eof()
    return reader


def make_connection(data: bytes = b'', eof: bool = True,
                    writer: Optional[FakeWriter] = None,
                    timeout: Optional[float] = None) -> Connection:
    return Connection(make_reader(data, eof), writer or FakeWriter(), timeout=timeout)


def free_port() -> int:
    """A port nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def data_dir(tmp_path) -> Path:
    path = tmp_path / 'store'
    path.mkdir()
    return path


@pytest.fixture
def listener_config(data_dir) -> Config:
    return Config(host='127.0.0.1', port=0, data_dir=data_dir)


@pytest_asyncio.fixture
async def listener(listener_config):
    server = TransferListener(listener_config)
    await server.start()
    yield server
    await server.stop()


@pytest.fixture
def client(listener) -> TransferClient:
    return TransferClient('127.0.0.1', listener.port)


class ThreadedListener:
    """Runs a TransferListener on its own event loop in a background thread."""

    def __init__(self, config: Config):
        self.config = config
        self.listener: Optional[TransferListener] = None
        self.loop = asyncio.new_event_loop()
        self._ready = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)

    @property
    def port(self) -> int:
        return self.listener.port

    def _run(self):
        asyncio.set_event_loop(self.loop)
        self.listener = TransferListener(self.config)
        self.loop.run_until_complete(self.listener.start())
        self._ready.set()
        self.loop.run_forever()

    def start(self):
        self._thread.start()
        if not self._ready.wait(5):
            raise RuntimeError("Listener did not start")

    def stop(self):
        future = asyncio.run_coroutine_threadsafe(self.listener.stop(), self.loop)
        future.result(5)
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(5)
        self.loop.close()


@pytest.fixture
def threaded_listener(listener_config):
    server = ThreadedListener(listener_config)
    server.start()
    yield server
    server.stop()
