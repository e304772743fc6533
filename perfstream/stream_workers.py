"""Data-stream workers that push or pull test traffic over one TCP connection."""

from __future__ import annotations

import asyncio
import enum
import logging
import socket
import sys
import time
from dataclasses import dataclass

from perfstream.constants import U32_MAX
from perfstream.errors import CallLibcFailed, WorkerTerminated
from perfstream.messages import Parameters, StreamStats
from perfstream.net_util import TcpInfo, get_tcp_info

logger = logging.getLogger(__name__)

_REPORT_INTERVAL = 1.0
_IO_TIMEOUT = 0.1
_ON_LINUX = sys.platform.startswith("linux")


class WorkerMessage(enum.Enum):
    """Control signal broadcast to every stream worker."""

    START_LOAD = "StartLoad"
    TERMINATE = "Terminate"


def _elapsed_ms(since: float) -> int:
    return int((time.monotonic() - since) * 1000)


@dataclass(eq=False)
class StreamWorker:
    """Drives one data stream: waits for the start signal, then sends or receives.

    Interval statistics are put on ``sender``; control signals arrive on ``receiver``.
    """

    id: int
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    params: Parameters
    is_sending: bool
    sender: asyncio.Queue[StreamStats]
    receiver: asyncio.Queue[WorkerMessage]

    async def run_worker(self) -> StreamStats:
        """Run the stream until the test duration elapses, it is told to stop, or the peer closes.

        Raises WorkerTerminated if the first signal received is not START_LOAD.
        """
        buffer = bytes(self.params.block_size)

        self._configure_stream_socket()

        logger.debug(
            "Data stream %d created (%s), waiting for the StartLoad signal!",
            self.id,
            "sending" if self.is_sending else "receiving",
        )

        signal = await self.receiver.get()
        if signal is not WorkerMessage.START_LOAD:
            raise WorkerTerminated()

        start_time = time.monotonic()
        timeout = self.params.duration / 1000
        index = 0

        bytes_transferred = 0
        total_bytes_transferred = 0
        total_retransmits = 0
        total_cwnd = 0

        current_interval_start = time.monotonic()

        while time.monotonic() - start_time <= timeout:
            pending = self._poll_signal()
            if pending is WorkerMessage.TERMINATE:
                break
            if pending is WorkerMessage.START_LOAD:
                logger.warning("Unexpected StartLoad signal received!")

            count = await self._transfer_block(buffer)
            if count is None:
                logger.debug("Stream %d taking longer than 100 ms to produce data", self.id)
            elif count > 0:
                bytes_transferred += count
            else:
                logger.warning("Stream %d's connection has been closed", self.id)
                break

            current_duration = time.monotonic() - current_interval_start
            if current_duration >= _REPORT_INTERVAL:
                stats = StreamStats(
                    index=index,
                    duration=int(current_duration * 1000),
                    bytes_transferred=bytes_transferred,
                )
                if _ON_LINUX:
                    info = self._tcp_info()
                    stats.retransmits = info.retransmits
                    stats.cwnd = info.snd_cwnd
                    total_retransmits += info.retransmits
                    total_cwnd += info.snd_cwnd
                await self.sender.put(stats)
                index += 1

        # A receiving end drains the socket so the sender still writing does not fail.
        if not self.is_sending:
            while await self.reader.read(self.params.block_size):
                pass

        return StreamStats(
            index=None,
            duration=_elapsed_ms(start_time),
            bytes_transferred=total_bytes_transferred,
            retransmits=total_retransmits,
            cwnd=total_cwnd,
        )

    def _poll_signal(self) -> WorkerMessage | None:
        try:
            return self.receiver.get_nowait()
        except asyncio.QueueEmpty:
            return None

    async def _transfer_block(self, buffer: bytes) -> int | None:
        """Move one block; None on a 100 ms timeout, 0 when the connection is closed."""
        if self.is_sending:
            if self.writer.is_closing():
                return 0
            try:
                await asyncio.wait_for(self.writer.drain(), _IO_TIMEOUT)
            except asyncio.TimeoutError:
                return None
            self.writer.write(buffer)
            return len(buffer)
        try:
            data = await asyncio.wait_for(self.reader.read(len(buffer)), _IO_TIMEOUT)
        except asyncio.TimeoutError:
            return None
        return len(data)

    def _socket(self):
        return self.writer.get_extra_info("socket")

    def _tcp_info(self) -> TcpInfo:
        sock = self._socket()
        if sock is None:
            return TcpInfo()
        try:
            return get_tcp_info(sock)
        except CallLibcFailed:
            return TcpInfo()

    def _configure_stream_socket(self) -> None:
        sock = self._socket()
        if sock is None:
            return

        if self.params.no_delay:
            try:
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            except OSError as exc:
                logger.warning("Failed to set no delay: %s", exc)

        if self.params.socket_buffers is not None:
            size = min(self.params.socket_buffers, U32_MAX)
            logger.debug("Setting socket buffer size to %d", size)
            for option, name in ((socket.SO_RCVBUF, "recv"), (socket.SO_SNDBUF, "send")):
                try:
                    sock.setsockopt(socket.SOL_SOCKET, option, size)
                except (OSError, OverflowError) as exc:
                    logger.warning("Failed to set %s socket buffer size: %s", name, exc)