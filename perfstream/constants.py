"""Sizes and limits shared by the control and data channels."""

MB = 1024 * 1024

# Width of the big-endian length prefix in front of every control message.
MESSAGE_LENGTH_SIZE_BYTES = 4

MAX_CONTROL_MESSAGE_SIZE = 20 * MB

DEFAULT_BLOCK_SIZE = 2 * MB

U32_MAX = 0xFFFF_FFFF