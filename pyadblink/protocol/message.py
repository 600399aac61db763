from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Tuple, Union

from ..errors import FramingError, IntegrityError

# Six little-endian u32 words
# Reference: adb/protocol.txt
HEADER = struct.Struct("<6I")
HEADER_SIZE = HEADER.size

U32_MASK = 0xFFFFFFFF

BytesLike = Union[bytes, bytearray, memoryview]
# (buffer, length) pair for one bulk OUT transfer, length 0 is a zero-length packet
WriteChunk = Tuple[bytes, int]


class Command(IntEnum):
    """Command tags, four ASCII characters read as a little-endian u32."""
    SYNC = 0x434E5953
    CNXN = 0x4E584E43
    AUTH = 0x48545541
    OPEN = 0x4E45504F
    OKAY = 0x59414B4F
    CLSE = 0x45534C43
    WRTE = 0x45545257


class AuthType(IntEnum):
    TOKEN = 1
    SIGNATURE = 2
    RSAPUBLICKEY = 3


def command_name(command: int) -> str:
    try:
        return Command(command).name
    except ValueError:
        return f"0x{command:08x}"


def checksum(data: BytesLike) -> int:
    """Unsigned byte sum modulo 2**32, the ADB v1 data check (not a CRC)."""
    return sum(data) & U32_MASK


@dataclass(frozen=True)
class AdbMessage:
    command: int
    arg0: int
    arg1: int
    body: bytes = b""

    @property
    def appends_terminator(self) -> bool:
        """
        Whether a trailing NUL is added on the wire.

        Service names, banners and public keys travel as C strings, while
        CNXN, signature AUTH and WRTE bodies are sent as-is.
        """
        if not self.body:
            return False
        if self.command == Command.CNXN:
            return False
        if self.command == Command.AUTH and self.arg0 == AuthType.SIGNATURE:
            return False
        if self.command == Command.WRTE:
            return False
        return True

    def __str__(self) -> str:
        return f"{command_name(self.command)}({self.arg0:#x}, {self.arg1:#x}, {len(self.body)} bytes)"


def encode_message(message: AdbMessage) -> Tuple[bytes, bytes]:
    """
    Serialize a message to its header and (possibly terminated) body.

    The checksum covers the body without the terminator, which is the same
    value since the terminator is a zero byte.
    """
    body = message.body + b"\x00" if message.appends_terminator else message.body
    header = HEADER.pack(
        message.command & U32_MASK,
        message.arg0 & U32_MASK,
        message.arg1 & U32_MASK,
        len(body),
        checksum(message.body),
        (message.command ^ U32_MASK) & U32_MASK,
    )
    return header, body


def frame_message(message: AdbMessage, zero_mask: int = 0) -> List[WriteChunk]:
    """
    Turn a message into the bulk writes that carry it.

    A body whose length is a multiple of the endpoint's max packet size
    (``zero_mask + 1``) is followed by a zero-length packet so the peer sees
    the end of the transfer.
    """
    header, body = encode_message(message)
    chunks: List[WriteChunk] = [(header, HEADER_SIZE)]
    if body:
        chunks.append((body, len(body)))
        if zero_mask and (len(body) & zero_mask) == 0:
            chunks.append((body, 0))
    return chunks


def decode_header(header: BytesLike) -> Tuple[int, int, int, int, int]:
    """
    Parse a 24-byte header.

    Returns (command, arg0, arg1, body_length, body_checksum).
    Raises FramingError on a bad size or a magic mismatch.
    """
    if len(header) != HEADER_SIZE:
        raise FramingError(f"header must be {HEADER_SIZE} bytes, got {len(header)}")
    command, arg0, arg1, body_length, body_checksum, magic = HEADER.unpack(bytes(header))
    if (command ^ U32_MASK) != magic:
        raise FramingError(f"bad magic {magic:#010x} for command {command_name(command)}")
    return command, arg0, arg1, body_length, body_checksum


def verify_body(body: BytesLike, expected_checksum: int) -> None:
    actual = checksum(body)
    if actual != expected_checksum:
        raise IntegrityError(f"checksum mismatch: expected {expected_checksum:#x}, got {actual:#x}")


def decode_message(header: BytesLike, body: BytesLike = b"") -> AdbMessage:
    command, arg0, arg1, body_length, body_checksum = decode_header(header)
    if len(body) != body_length:
        raise FramingError(f"body must be {body_length} bytes, got {len(body)}")
    verify_body(body, body_checksum)
    return AdbMessage(command, arg0, arg1, bytes(body))
