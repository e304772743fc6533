"""Control messages, framing, TCP statistics and stream workers for TCP throughput testing."""

__version__ = "0.1.0"
__all__ = ["constants", "errors", "messages", "net_util", "stream_workers"]