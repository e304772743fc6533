"""Exceptions raised by the control protocol and the stream workers."""

from __future__ import annotations

from perfstream.constants import MAX_CONTROL_MESSAGE_SIZE


class PerfError(Exception):
    """Base class of every error raised by this package."""


class ControlMessageTooLarge(PerfError):
    """A peer announced a control message larger than the allowed maximum."""

    def __init__(self, size: int) -> None:
        self.size = size
        super().__init__(
            f"Control message too large: {size}, max allowed: {MAX_CONTROL_MESSAGE_SIZE}"
        )


class WorkerTerminated(PerfError):
    """A stream worker was told to stop before its load started."""

    def __init__(self) -> None:
        super().__init__("Worker terminated")


class CallLibcFailed(PerfError):
    """A low-level socket query failed."""

    def __init__(self, os_error: OSError) -> None:
        self.os_error = os_error
        super().__init__(f"Call libc failed: {os_error}")


class ClientError(PerfError):
    """An error reported by the client side of a session."""


class ServerError(PerfError):
    """An error reported by the server side of a session."""