from .message import (
    HEADER_SIZE,
    AdbMessage,
    AuthType,
    Command,
    checksum,
    decode_header,
    decode_message,
    encode_message,
    frame_message,
    verify_body,
)

__all__ = [
    "HEADER_SIZE",
    "AdbMessage",
    "AuthType",
    "Command",
    "checksum",
    "decode_header",
    "decode_message",
    "encode_message",
    "frame_message",
    "verify_body",
]
