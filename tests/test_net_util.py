import asyncio
import socket
import struct

import pytest

from perfstream.constants import MAX_CONTROL_MESSAGE_SIZE, MESSAGE_LENGTH_SIZE_BYTES
from perfstream.errors import CallLibcFailed, ClientError, ControlMessageTooLarge, ServerError
from perfstream.messages import (
    ClientResults,
    Direction,
    Hello,
    Parameters,
    SendParameters,
    ServerResults,
    StreamStats,
    Welcome,
)
from perfstream.net_util import (
    TCP_INFO_STRUCT,
    TcpInfo,
    client_read_message,
    client_write_error,
    client_write_message,
    get_tcp_info,
    parse_tcp_info,
    server_read_message,
    server_write_error,
    server_write_message,
)


class _Sink:
    def __init__(self):
        self.data = bytearray()
        self.drained = 0

    def write(self, data):
        self.data += data

    async def drain(self):
        self.drained += 1


def _reader_with(data):
    reader = asyncio.StreamReader()
    reader.feed_data(bytes(data))
    reader.feed_eof()
    return reader


@pytest.mark.asyncio
async def test_frame_has_big_endian_length_prefix():
    sink = _Sink()
    await server_write_message(sink, Welcome())
    payload = bytes(sink.data[MESSAGE_LENGTH_SIZE_BYTES:])
    assert payload == b'{"Message":"Welcome"}'
    assert struct.unpack(">I", sink.data[:MESSAGE_LENGTH_SIZE_BYTES])[0] == len(payload)
    assert sink.drained == 1


@pytest.mark.asyncio
async def test_client_message_round_trip():
    sink = _Sink()
    params = Parameters(Direction.CLIENT_TO_SERVER, 0, 5000, 2, "0.1.0", 4096, False)
    await client_write_message(sink, Hello("cookie-1"))
    await client_write_message(sink, SendParameters(params))
    await client_write_message(sink, ClientResults([StreamStats(0, 1000, 99)]))
    reader = _reader_with(sink.data)
    assert await server_read_message(reader) == Hello("cookie-1")
    assert await server_read_message(reader) == SendParameters(params)
    assert await server_read_message(reader) == ClientResults([StreamStats(0, 1000, 99)])


@pytest.mark.asyncio
async def test_server_message_round_trip():
    sink = _Sink()
    results = ServerResults([StreamStats(None, 10000, 1 << 30, 3, 20)])
    await server_write_message(sink, Welcome())
    await server_write_message(sink, results)
    reader = _reader_with(sink.data)
    assert await client_read_message(reader) == Welcome()
    assert await client_read_message(reader) == results


@pytest.mark.asyncio
async def test_server_error_raised_on_client_side():
    sink = _Sink()
    await server_write_error(sink, ServerError("access denied"))
    with pytest.raises(ServerError, match="access denied"):
        await client_read_message(_reader_with(sink.data))


@pytest.mark.asyncio
async def test_client_error_raised_on_server_side():
    sink = _Sink()
    await client_write_error(sink, ClientError("aborted"))
    with pytest.raises(ClientError, match="aborted"):
        await server_read_message(_reader_with(sink.data))


@pytest.mark.asyncio
async def test_oversized_message_rejected():
    header = struct.pack(">I", MAX_CONTROL_MESSAGE_SIZE + 1)
    with pytest.raises(ControlMessageTooLarge) as info:
        await client_read_message(_reader_with(header))
    assert info.value.size == MAX_CONTROL_MESSAGE_SIZE + 1


@pytest.mark.asyncio
async def test_truncated_payload_raises():
    frame = struct.pack(">I", 50) + b'{"Message"'
    with pytest.raises(asyncio.IncompleteReadError):
        await server_read_message(_reader_with(frame))


@pytest.mark.asyncio
async def test_truncated_header_raises():
    with pytest.raises(asyncio.IncompleteReadError):
        await client_read_message(_reader_with(b"\x00\x00"))


def test_parse_tcp_info_reads_fields_in_order():
    values = list(range(1, 60))
    info = parse_tcp_info(TCP_INFO_STRUCT.pack(*values))
    assert info.state == 1
    assert info.retransmits == 3
    assert info.total_rto_time == 59
    assert parse_tcp_info(TCP_INFO_STRUCT.pack(*values) + b"extra") == info


def test_parse_tcp_info_pads_short_buffers():
    full = TCP_INFO_STRUCT.pack(*range(1, 60))
    info = parse_tcp_info(full[:8])
    assert info.state == 1
    assert info.snd_cwnd == 0
    assert parse_tcp_info(b"") == TcpInfo()


def test_get_tcp_info_fails_on_non_tcp_socket():
    a, b = socket.socketpair()
    with a, b:
        if a.family == socket.AF_INET:
            udp = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            with udp, pytest.raises(CallLibcFailed):
                get_tcp_info(udp)
        else:
            with pytest.raises(CallLibcFailed):
                get_tcp_info(a)