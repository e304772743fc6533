# perfstream

perfstream provides the pieces of a TCP throughput tester that runs on
`asyncio`. It has no runtime dependencies.

## Modules

### `perfstream.messages`: control messages

- The client sends `Hello(cookie)`, `SendParameters(parameters)` and
  `ClientResults(stats)`.
- The server sends `Welcome()` and `ServerResults(stats)`.
- `Parameters` carries the test settings:
  - `direction` (a `Direction`: `CLIENT_TO_SERVER`, `SERVER_TO_CLIENT` or
    `BIDIRECTIONAL`)
  - `omit`
  - `duration` (milliseconds)
  - `parallel`
  - `client_version`
  - `block_size`
  - `no_delay`
  - `socket_buffers` (optional)
  - `mss` (optional)
- `StreamStats` carries one measurement: `index`, `duration` in milliseconds,
  `bytes_transferred`, and optionally `retransmits` and `cwnd`.
- `Role` names the two ends of a session: `CLIENT` and `SERVER`.

Conversion to and from JSON:

- `Parameters.to_json()` and `StreamStats.to_json()` return plain mappings.
- `parameters_from_json()` and `stream_stats_from_json()` rebuild the objects.
  They check that every field is present and of the right type, and that each
  integer is in range. A bad field raises `ValueError`.
- `encode_client_envelope()` and `encode_server_envelope()` turn a message or
  an error into its JSON payload.
- `decode_client_envelope()` and `decode_server_envelope()` parse a payload
  back into a message. An error envelope is raised as `ClientError` or
  `ServerError`. A malformed payload raises `ValueError`.

### `perfstream.net_util`: framing and TCP statistics

Every control message is framed as a 4-byte big-endian length followed by the
JSON payload.

- Writing takes an `asyncio.StreamWriter`:
  - `client_write_message` and `client_write_error`
  - `server_write_message` and `server_write_error`
- Reading takes an `asyncio.StreamReader`: `client_read_message` and
  `server_read_message`.
- A frame that announces more than 20 MiB (`MAX_CONTROL_MESSAGE_SIZE`) raises
  `ControlMessageTooLarge`.

TCP statistics:

- `get_tcp_info(sock)` reads the kernel's `TCP_INFO` for a connected socket
  and returns a `TcpInfo`.
- If the platform has no `TCP_INFO` option, or the query fails, it raises
  `CallLibcFailed`.
- `parse_tcp_info(data)` decodes raw `TCP_INFO` bytes. Fields that the data
  does not cover are left at zero.

### `perfstream.stream_workers`: data streams

A `StreamWorker` drives one data connection. You build it from:

- an `id`
- the connection's `reader` and `writer`
- the `Parameters`
- an `is_sending` flag
- two `asyncio.Queue` objects: `sender`, which receives `StreamStats` reports,
  and `receiver`, which carries `WorkerMessage` signals

`run_worker()` runs the stream as follows:

1. It applies `no_delay` and `socket_buffers` to the socket. A failure here is
   logged as a warning and does not stop the worker.
2. It waits for the first signal. If that signal is not
   `WorkerMessage.START_LOAD`, it raises `WorkerTerminated`.
3. It writes or reads blocks of `block_size` bytes. It stops when any of these
   happens:
   - the test duration has passed;
   - a `WorkerMessage.TERMINATE` signal arrives;
   - the peer closes the connection.
4. Once at least a second has passed since the load started, it puts an
   interval `StreamStats` on `sender` after every block. On Linux that report
   also holds the retransmit count and the congestion window from `TCP_INFO`.
5. A receiving worker reads the socket to its end before returning.

The `StreamStats` that `run_worker()` returns has:

- `index` set to `None`;
- `duration` set to the elapsed time;
- `retransmits` and `cwnd` set to totals summed over the interval reports.
  These stay 0 when not on Linux.

Its `bytes_transferred` is always 0. Use the reports on `sender` for the
amount of data moved.

### `perfstream.errors`

Every error derives from `PerfError`. The specific errors are:

- `ControlMessageTooLarge`
- `WorkerTerminated`
- `CallLibcFailed`
- `ClientError`
- `ServerError`

### `perfstream.constants`

This module holds the sizes used above:

- `MB`
- `MESSAGE_LENGTH_SIZE_BYTES`
- `MAX_CONTROL_MESSAGE_SIZE`
- `DEFAULT_BLOCK_SIZE`
- `U32_MAX`

## Example

```python
import asyncio

from perfstream.messages import Hello, Welcome
from perfstream.net_util import (
    client_read_message,
    client_write_message,
    server_read_message,
    server_write_message,
)


async def handle(reader, writer):
    hello = await server_read_message(reader)
    assert isinstance(hello, Hello)
    await server_write_message(writer, Welcome())
    writer.close()
    await writer.wait_closed()


async def main():
    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    await client_write_message(writer, Hello(cookie="placeholder"))
    print(await client_read_message(reader))  # Welcome()
    writer.close()
    await writer.wait_closed()
    server.close()
    await server.wait_closed()


asyncio.run(main())
```

## What it does not do

perfstream is a library only. It has no command-line program and no
ready-made client or server. Nothing in it opens the data connections, starts
the workers for a test, or prints results. You write the session yourself from
the messages, the framing functions and `StreamWorker`. UDP tests are not
supported.

## Running the tests

```
pip install -e ".[test]"
pytest
```