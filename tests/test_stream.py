"""Tests for the chunked transfer loop."""

import aiofiles
import pytest

from p2pxfer.errors import ReceiveFailed, SendFailed
from p2pxfer.transfer.stream import (
    DEFAULT_BUFFER_SIZE, TransferStats, chunk_sizes, discard_payload,
    receive_to_file,
    send_from_file,
)
from tests.conftest import FakeWriter, make_connection


def test_buffer_is_64k():
    assert DEFAULT_BUFFER_SIZE == 65536


@pytest.mark.parametrize('total, expected', [
    (0, []),
    (-1, []),
    (1, [1]),
    (65536, [65536]),
    (65537, [65536, 1]),
    (200000, [65536, 65536, 65536, 3392]),
])
def test_chunk_sizes(total, expected):
    assert list(chunk_sizes(total)) == expected


def test_chunk_sizes_rejects_empty_buffer():
    with pytest.raises(ValueError):
        list(chunk_sizes(10, 0))


async def _receive(tmp_path, payload, size, **kwargs):
    conn = make_connection(payload)
    path = tmp_path / 'out.bin'
    out = await aiofiles.open(path, 'wb')
    try:
        stats = await receive_to_file(conn, out, size, **kwargs)
    finally:
        await out.close()
    return stats, path


async def test_receive_exactly_one_buffer(tmp_path):
    payload = bytes(range(256)) * 256
    stats, path = await _receive(tmp_path, payload, len(payload))
    assert stats.chunks == 1
    assert stats.bytes_transferred == 65536
    assert path.read_bytes() == payload


async def test_receive_one_buffer_plus_one(tmp_path):
    payload = b'x' * 65537
    stats, path = await _receive(tmp_path, payload, len(payload))
    assert stats.chunks == 2
    assert path.read_bytes() == payload


async def test_receive_stops_at_declared_size(tmp_path):
    stats, path = await _receive(tmp_path, b'abcdefEXTRA', 6)
    assert path.read_bytes() == b'abcdef'
    assert stats.complete


async def test_receive_nothing_for_zero_size(tmp_path):
    stats, path = await _receive(tmp_path, b'', 0)
    assert stats.chunks == 0
    assert path.read_bytes() == b''


async def test_receive_partial_keeps_completed_chunks(tmp_path):
    conn = make_connection(b'abcdef')
    path = tmp_path / 'partial.bin'
    stats = TransferStats()
    out = await aiofiles.open(path, 'wb')
    try:
        with pytest.raises(ReceiveFailed):
            await receive_to_file(conn, out, 10, buffer_size=4, stats=stats)
    finally:
        await out.close()
    # Chunk in flight ('ef' of the second 4) is dropped
    assert path.read_bytes() == b'abcd'
    assert stats.bytes_transferred == 4
    assert not stats.complete


async def test_receive_reports_progress(tmp_path):
    seen = []
    await _receive(tmp_path, b'x' * 10, 10, buffer_size=4,
                   progress=lambda s: seen.append(s.bytes_transferred))
    assert seen == [4, 8, 10]


async def _send(tmp_path, content, size, writer=None, **kwargs):
    path = tmp_path / 'in.bin'
    path.write_bytes(content)
    writer = writer or FakeWriter()
    conn = make_connection(writer=writer)
    src = await aiofiles.open(path, 'rb')
    try:
        stats = await send_from_file(conn, src, size, **kwargs)
    finally:
        await src.close()
    return stats, writer


async def test_send_one_buffer_plus_one(tmp_path):
    content = b'y' * 65537
    stats, writer = await _send(tmp_path, content, len(content))
    assert [len(c) for c in writer.chunks] == [65536, 1]
    assert stats.chunks == 2
    assert writer.data == content


async def test_send_exactly_one_buffer(tmp_path):
    content = b'z' * 65536
    stats, writer = await _send(tmp_path, content, len(content))
    assert len(writer.chunks) == 1


async def test_send_never_exceeds_size(tmp_path):
    # File grew after it was sized
    stats, writer = await _send(tmp_path, b'0123456789', 6)
    assert writer.data == b'012345'


async def test_send_stops_at_end_of_file(tmp_path):
    # File shrank after it was sized
    stats, writer = await _send(tmp_path, b'0123', 10)
    assert writer.data == b'0123'
    assert stats.bytes_transferred == 4
    assert not stats.complete


async def test_send_failure_propagates(tmp_path):
    stats = TransferStats()
    with pytest.raises(SendFailed):
        await _send(tmp_path, b'x' * 12, 12, writer=FakeWriter(fail_on_drain=2),
                    buffer_size=4, stats=stats)
    assert stats.bytes_transferred == 4


def test_progress_percent():
    assert TransferStats(total_bytes=200, bytes_transferred=50).progress_percent == 25.0
    assert TransferStats(total_bytes=0).progress_percent == 100.0


async def test_discard_payload_reads_declared_size():
    conn = make_connection(b'x' * 10 + b'NEXT')
    assert await discard_payload(conn, 10, buffer_size=4) == 10
    assert await conn.recv_exact(4) == b'NEXT'


async def test_discard_payload_stops_when_peer_leaves():
    conn = make_connection(b'x' * 6)
    assert await discard_payload(conn, 100, buffer_size=4) == 4
