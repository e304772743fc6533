"""Control-channel messages and their JSON envelopes."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any, Union

from perfstream.errors import ClientError, ServerError

_U16_MAX = 0xFFFF
_U64_MAX = 0xFFFF_FFFF_FFFF_FFFF


class Role(enum.Enum):
    """Which end of a session this process plays."""

    CLIENT = "Client"
    SERVER = "Server"


class Direction(enum.Enum):
    """Direction in which test data flows."""

    CLIENT_TO_SERVER = "ClientToServer"
    SERVER_TO_CLIENT = "ServerToClient"
    BIDIRECTIONAL = "Bidirectional"


def _uint(obj: dict, key: str, maximum: int = _U64_MAX) -> int:
    try:
        value = obj[key]
    except KeyError:
        raise ValueError(f"missing field `{key}`") from None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field `{key}` must be an unsigned integer, got {value!r}")
    if not 0 <= value <= maximum:
        raise ValueError(f"field `{key}` out of range: {value}")
    return value


def _optional_uint(obj: dict, key: str) -> int | None:
    if obj.get(key) is None:
        return None
    return _uint(obj, key)


def _required(obj: dict, key: str, kind: type) -> Any:
    try:
        value = obj[key]
    except KeyError:
        raise ValueError(f"missing field `{key}`") from None
    if not isinstance(value, kind):
        raise ValueError(f"field `{key}` has the wrong type: {value!r}")
    return value


def _object(data: Any, what: str) -> dict:
    if not isinstance(data, dict):
        raise ValueError(f"{what} must be a JSON object, got {data!r}")
    return data


@dataclass
class Parameters:
    """Settings of a test, sent by the client to the server."""

    direction: Direction
    omit: int
    duration: int
    parallel: int
    client_version: str
    block_size: int
    no_delay: bool
    socket_buffers: int | None = None
    mss: int | None = None

    def to_json(self) -> dict[str, Any]:
        """Return the parameters as a JSON-ready mapping."""
        return {
            "direction": self.direction.value,
            "omit": self.omit,
            "duration": self.duration,
            "parallel": self.parallel,
            "client_version": self.client_version,
            "block_size": self.block_size,
            "no_delay": self.no_delay,
            "socket_buffers": self.socket_buffers,
            "mss": self.mss,
        }


def parameters_from_json(data: Any) -> Parameters:
    """Build Parameters from a decoded JSON object, validating every field."""
    obj = _object(data, "parameters")
    direction = _required(obj, "direction", str)
    return Parameters(
        direction=Direction(direction),
        omit=_uint(obj, "omit"),
        duration=_uint(obj, "duration"),
        parallel=_uint(obj, "parallel", _U16_MAX),
        client_version=_required(obj, "client_version", str),
        block_size=_uint(obj, "block_size"),
        no_delay=_required(obj, "no_delay", bool),
        socket_buffers=_optional_uint(obj, "socket_buffers"),
        mss=_optional_uint(obj, "mss"),
    )


@dataclass
class StreamStats:
    """Traffic measured on one stream, for one interval or the whole test."""

    index: int | None
    duration: int
    bytes_transferred: int
    retransmits: int | None = None
    cwnd: int | None = None

    def to_json(self) -> dict[str, Any]:
        """Return the statistics as a JSON-ready mapping."""
        return {
            "index": self.index,
            "duration": self.duration,
            "bytes_transferred": self.bytes_transferred,
            "retransmits": self.retransmits,
            "cwnd": self.cwnd,
        }


def stream_stats_from_json(data: Any) -> StreamStats:
    """Build StreamStats from a decoded JSON object, validating every field."""
    obj = _object(data, "stream stats")
    return StreamStats(
        index=_optional_uint(obj, "index"),
        duration=_uint(obj, "duration"),
        bytes_transferred=_uint(obj, "bytes_transferred"),
        retransmits=_optional_uint(obj, "retransmits"),
        cwnd=_optional_uint(obj, "cwnd"),
    )


def _stats_list(data: Any) -> list[StreamStats]:
    if not isinstance(data, list):
        raise ValueError(f"results must be a JSON array, got {data!r}")
    return [stream_stats_from_json(item) for item in data]


@dataclass(frozen=True)
class Hello:
    """First client message; the cookie identifies the session."""

    cookie: str


@dataclass
class SendParameters:
    """Client message carrying the test parameters."""

    parameters: Parameters


@dataclass
class ClientResults:
    """Client message carrying its stream results."""

    stats: list[StreamStats] = field(default_factory=list)


@dataclass(frozen=True)
class Welcome:
    """Server reply to a client's Hello."""


@dataclass
class ServerResults:
    """Server message carrying its stream results."""

    stats: list[StreamStats] = field(default_factory=list)


ClientMessage = Union[Hello, SendParameters, ClientResults]
ServerMessage = Union[Welcome, ServerResults]


def _dump(envelope: dict[str, Any]) -> bytes:
    return json.dumps(envelope, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _split_envelope(data: bytes | str) -> tuple[str, Any]:
    envelope = json.loads(data)
    if not isinstance(envelope, dict) or len(envelope) != 1:
        raise ValueError(f"envelope must be an object with one key, got {envelope!r}")
    ((tag, body),) = envelope.items()
    return tag, body


def _split_variant(body: Any) -> tuple[str, Any]:
    if isinstance(body, str):
        return body, None
    if isinstance(body, dict) and len(body) == 1:
        ((tag, value),) = body.items()
        return tag, value
    raise ValueError(f"malformed message: {body!r}")


def encode_client_envelope(message: ClientMessage | ClientError) -> bytes:
    """Serialise a client message or client error to its JSON payload."""
    match message:
        case ClientError():
            return _dump({"Error": str(message)})
        case Hello(cookie=cookie):
            body: Any = {"Hello": {"cookie": cookie}}
        case SendParameters(parameters=parameters):
            body = {"SendParameters": parameters.to_json()}
        case ClientResults(stats=stats):
            body = {"SendResults": [s.to_json() for s in stats]}
        case _:
            raise TypeError(f"not a client message: {message!r}")
    return _dump({"Message": body})


def decode_client_envelope(data: bytes | str) -> ClientMessage:
    """Parse a client payload; an error envelope is raised as ClientError."""
    tag, body = _split_envelope(data)
    if tag == "Error":
        raise ClientError(str(body))
    if tag != "Message":
        raise ValueError(f"unknown envelope variant `{tag}`")
    variant, value = _split_variant(body)
    if variant == "Hello":
        return Hello(cookie=_required(_object(value, "Hello"), "cookie", str))
    if variant == "SendParameters":
        return SendParameters(parameters=parameters_from_json(value))
    if variant == "SendResults":
        return ClientResults(stats=_stats_list(value))
    raise ValueError(f"unknown client message `{variant}`")


def encode_server_envelope(message: ServerMessage | ServerError) -> bytes:
    """Serialise a server message or server error to its JSON payload."""
    match message:
        case ServerError():
            return _dump({"Error": str(message)})
        case Welcome():
            body: Any = "Welcome"
        case ServerResults(stats=stats):
            body = {"SendResults": [s.to_json() for s in stats]}
        case _:
            raise TypeError(f"not a server message: {message!r}")
    return _dump({"Message": body})


def decode_server_envelope(data: bytes | str) -> ServerMessage:
    """Parse a server payload; an error envelope is raised as ServerError."""
    tag, body = _split_envelope(data)
    if tag == "Error":
        raise ServerError(str(body))
    if tag != "Message":
        raise ValueError(f"unknown envelope variant `{tag}`")
    variant, value = _split_variant(body)
    if variant == "Welcome" and value is None:
        return Welcome()
    if variant == "SendResults":
        return ServerResults(stats=_stats_list(value))
    raise ValueError(f"unknown server message `{variant}`")