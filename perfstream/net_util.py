"""Framed control-message I/O and TCP statistics."""

from __future__ import annotations

import asyncio
import errno
import logging
import socket
import struct
from dataclasses import dataclass, fields
from typing import Protocol

from perfstream.constants import (
    MAX_CONTROL_MESSAGE_SIZE,
    MESSAGE_LENGTH_SIZE_BYTES,
    U32_MAX,
)
from perfstream.errors import CallLibcFailed, ClientError, ControlMessageTooLarge, ServerError
from perfstream.messages import (
    ClientMessage,
    ServerMessage,
    decode_client_envelope,
    decode_server_envelope,
    encode_client_envelope,
    encode_server_envelope,
)

logger = logging.getLogger(__name__)

_LENGTH = struct.Struct(">I")


class _Writer(Protocol):
    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...


async def _write_control_message(writer: _Writer, payload: bytes) -> None:
    if len(payload) > U32_MAX:
        raise ValueError(f"control message of {len(payload)} bytes cannot be framed")
    frame = _LENGTH.pack(len(payload)) + payload
    logger.debug("Sent: %d bytes", len(frame))
    writer.write(frame)
    await writer.drain()


async def _read_control_message(reader: asyncio.StreamReader) -> bytes:
    (size,) = _LENGTH.unpack(await reader.readexactly(MESSAGE_LENGTH_SIZE_BYTES))
    if size > MAX_CONTROL_MESSAGE_SIZE:
        raise ControlMessageTooLarge(size)
    payload = await reader.readexactly(size)
    logger.debug("Received: %d bytes", len(payload))
    return payload


async def client_write_message(writer: _Writer, message: ClientMessage) -> None:
    """Send a client message on the control channel."""
    await _write_control_message(writer, encode_client_envelope(message))


async def client_write_error(writer: _Writer, error: ClientError) -> None:
    """Send a client error on the control channel."""
    await _write_control_message(writer, encode_client_envelope(error))


async def server_write_message(writer: _Writer, message: ServerMessage) -> None:
    """Send a server message on the control channel."""
    await _write_control_message(writer, encode_server_envelope(message))


async def server_write_error(writer: _Writer, error: ServerError) -> None:
    """Send a server error on the control channel."""
    await _write_control_message(writer, encode_server_envelope(error))


async def client_read_message(reader: asyncio.StreamReader) -> ServerMessage:
    """Read the next server message; a server error is raised as ServerError."""
    return decode_server_envelope(await _read_control_message(reader))


async def server_read_message(reader: asyncio.StreamReader) -> ClientMessage:
    """Read the next client message; a client error is raised as ClientError."""
    return decode_client_envelope(await _read_control_message(reader))


@dataclass
class TcpInfo:
    """Kernel TCP connection statistics (Linux ``struct tcp_info``)."""

    state: int = 0
    ca_state: int = 0
    retransmits: int = 0
    probes: int = 0
    backoff: int = 0
    options: int = 0
    snd_wscale_rcv_wscale: int = 0
    delivery_rate_app_limited_fastopen_client_fail: int = 0
    rto: int = 0
    ato: int = 0
    snd_mss: int = 0
    rcv_mss: int = 0
    unacked: int = 0
    sacked: int = 0
    lost: int = 0
    retrans: int = 0
    fackets: int = 0
    last_data_sent: int = 0
    last_ack_sent: int = 0
    last_data_recv: int = 0
    last_ack_recv: int = 0
    pmtu: int = 0
    rcv_ssthresh: int = 0
    rtt: int = 0
    rttvar: int = 0
    snd_ssthresh: int = 0
    snd_cwnd: int = 0
    advmss: int = 0
    reordering: int = 0
    rcv_rtt: int = 0
    rcv_space: int = 0
    total_retrans: int = 0
    pacing_rate: int = 0
    max_pacing_rate: int = 0
    bytes_acked: int = 0
    bytes_received: int = 0
    segs_out: int = 0
    segs_in: int = 0
    notsent_bytes: int = 0
    min_rtt: int = 0
    data_segs_in: int = 0
    data_segs_out: int = 0
    delivery_rate: int = 0
    busy_time: int = 0
    rwnd_limited: int = 0
    sndbuf_limited: int = 0
    delivered: int = 0
    delivered_ce: int = 0
    bytes_sent: int = 0
    bytes_retrans: int = 0
    dsack_dups: int = 0
    reord_seen: int = 0
    rcv_ooopack: int = 0
    snd_wnd: int = 0
    rcv_wnd: int = 0
    rehash: int = 0
    total_rto: int = 0
    total_rto_recoveries: int = 0
    total_rto_time: int = 0


# Native byte order; the field order leaves no alignment padding.
TCP_INFO_STRUCT = struct.Struct("=8B24I4Q6I4Q2I2Q6I2HI")


def parse_tcp_info(data: bytes) -> TcpInfo:
    """Decode raw ``TCP_INFO`` bytes; fields the kernel did not fill stay zero."""
    raw = bytes(data[: TCP_INFO_STRUCT.size]).ljust(TCP_INFO_STRUCT.size, b"\0")
    values = TCP_INFO_STRUCT.unpack(raw)
    return TcpInfo(**{f.name: v for f, v in zip(fields(TcpInfo), values)})


def get_tcp_info(sock: socket.socket) -> TcpInfo:
    """Query ``TCP_INFO`` for a connected socket; raises CallLibcFailed on failure."""
    option = getattr(socket, "TCP_INFO", None)
    if option is None:
        raise CallLibcFailed(
            OSError(errno.ENOPROTOOPT, "TCP_INFO is not available on this platform")
        )
    try:
        data = sock.getsockopt(socket.IPPROTO_TCP, option, TCP_INFO_STRUCT.size)
    except OSError as exc:
        raise CallLibcFailed(exc) from exc
    return parse_tcp_info(data)