import json

import pytest

from perfstream.errors import ClientError, ServerError
from perfstream.messages import (
    ClientResults,
    Direction,
    Hello,
    Parameters,
    SendParameters,
    ServerResults,
    StreamStats,
    Welcome,
    decode_client_envelope,
    decode_server_envelope,
    encode_client_envelope,
    encode_server_envelope,
    parameters_from_json,
    stream_stats_from_json,
)


def _params(**overrides):
    values = dict(
        direction=Direction.BIDIRECTIONAL,
        omit=1,
        duration=10_000,
        parallel=4,
        client_version="0.1.0",
        block_size=131072,
        no_delay=True,
        socket_buffers=None,
        mss=1460,
    )
    values.update(overrides)
    return Parameters(**values)


def test_hello_wire_format():
    assert encode_client_envelope(Hello(cookie="abc")) == (
        b'{"Message":{"Hello":{"cookie":"abc"}}}'
    )


def test_welcome_wire_format():
    assert encode_server_envelope(Welcome()) == b'{"Message":"Welcome"}'


def test_hello_round_trip():
    assert decode_client_envelope(encode_client_envelope(Hello("xyz"))) == Hello("xyz")


def test_parameters_round_trip():
    params = _params()
    decoded = decode_client_envelope(encode_client_envelope(SendParameters(params)))
    assert decoded == SendParameters(params)


def test_parameters_json_uses_variant_names_and_nulls():
    data = _params(direction=Direction.SERVER_TO_CLIENT).to_json()
    assert data["direction"] == "ServerToClient"
    assert "socket_buffers" in data and data["socket_buffers"] is None
    assert parameters_from_json(data) == _params(direction=Direction.SERVER_TO_CLIENT)


def test_client_results_round_trip():
    stats = [StreamStats(0, 1000, 5000, 2, 10), StreamStats(None, 3000, 0)]
    decoded = decode_client_envelope(encode_client_envelope(ClientResults(stats)))
    assert decoded == ClientResults(stats)


def test_server_results_round_trip():
    stats = [StreamStats(1, 1001, 42, None, None)]
    decoded = decode_server_envelope(encode_server_envelope(ServerResults(stats)))
    assert decoded == ServerResults(stats)


def test_stream_stats_round_trip_through_json_text():
    stats = StreamStats(3, 999, 123456, 7, 88)
    assert stream_stats_from_json(json.loads(json.dumps(stats.to_json()))) == stats


def test_client_error_envelope_is_raised():
    payload = encode_client_envelope(ClientError("bad cookie"))
    with pytest.raises(ClientError, match="bad cookie"):
        decode_client_envelope(payload)


def test_server_error_envelope_is_raised():
    payload = encode_server_envelope(ServerError("busy"))
    with pytest.raises(ServerError, match="busy"):
        decode_server_envelope(payload)


def test_unknown_client_variant_rejected():
    with pytest.raises(ValueError):
        decode_client_envelope(b'{"Message":{"Goodbye":{}}}')


def test_unknown_envelope_tag_rejected():
    with pytest.raises(ValueError):
        decode_server_envelope(b'{"Other":"Welcome"}')


def test_negative_field_rejected():
    data = _params().to_json()
    data["omit"] = -1
    with pytest.raises(ValueError):
        parameters_from_json(data)


def test_parallel_limited_to_u16():
    data = _params().to_json()
    data["parallel"] = 70000
    with pytest.raises(ValueError):
        parameters_from_json(data)


def test_missing_field_rejected():
    data = _params().to_json()
    del data["block_size"]
    with pytest.raises(ValueError, match="block_size"):
        parameters_from_json(data)


def test_unknown_direction_rejected():
    data = _params().to_json()
    data["direction"] = "Sideways"
    with pytest.raises(ValueError):
        parameters_from_json(data)


def test_encoding_wrong_side_message_rejected():
    with pytest.raises(TypeError):
        encode_client_envelope(Welcome())