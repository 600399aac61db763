"""Message codec tests

Header layout, checksum, terminator rules and zero-length packet framing.
"""

import struct
import sys
import os
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pyadblink.errors import FramingError, IntegrityError
from pyadblink.protocol import (
    HEADER_SIZE,
    AdbMessage,
    AuthType,
    Command,
    checksum,
    decode_header,
    decode_message,
    encode_message,
    frame_message,
)


class TestCommandTags(unittest.TestCase):
    def test_tags_are_little_endian_ascii(self):
        for command in Command:
            self.assertEqual(command, int.from_bytes(command.name.encode("ascii"), "little"))


class TestEncode(unittest.TestCase):
    def test_header_layout(self):
        header, body = encode_message(AdbMessage(Command.WRTE, 1, 2, b"abc"))

        self.assertEqual(len(header), HEADER_SIZE)
        fields = struct.unpack("<6I", header)
        self.assertEqual(fields, (Command.WRTE, 1, 2, 3, 0x61 + 0x62 + 0x63, Command.WRTE ^ 0xFFFFFFFF))
        self.assertEqual(body, b"abc")

    def test_checksum_is_unsigned_byte_sum(self):
        data = bytes(range(256)) * 3
        self.assertEqual(checksum(data), sum(range(256)) * 3)
        self.assertEqual(checksum(b""), 0)
        self.assertEqual(checksum(b"\xff\xff"), 510)

    def test_open_body_gets_terminator(self):
        header, body = encode_message(AdbMessage(Command.OPEN, 257, 0, b"shell:ls"))
        _, _, _, length, check = decode_header(header)
        self.assertEqual(body, b"shell:ls\x00")
        self.assertEqual(length, 9)
        self.assertEqual(check, checksum(b"shell:ls"))

    def test_public_key_gets_terminator(self):
        _, body = encode_message(AdbMessage(Command.AUTH, AuthType.RSAPUBLICKEY, 0, b"KEY"))
        self.assertEqual(body, b"KEY\x00")

    def test_connect_body_has_no_terminator(self):
        _, body = encode_message(AdbMessage(Command.CNXN, 0x01000000, 4096, b"host::"))
        self.assertEqual(body, b"host::")

    def test_signature_has_no_terminator(self):
        _, body = encode_message(AdbMessage(Command.AUTH, AuthType.SIGNATURE, 0, b"\x01\x02"))
        self.assertEqual(body, b"\x01\x02")

    def test_write_body_never_gets_terminator(self):
        _, body = encode_message(AdbMessage(Command.WRTE, 1, 2, b"text"))
        self.assertEqual(body, b"text")

    def test_empty_body_stays_empty(self):
        header, body = encode_message(AdbMessage(Command.OKAY, 1, 2))
        self.assertEqual(body, b"")
        self.assertEqual(decode_header(header)[3], 0)


class TestDecode(unittest.TestCase):
    def test_roundtrip(self):
        original = AdbMessage(Command.WRTE, 0xDEADBEEF, 7, bytes(range(200)))
        header, body = encode_message(original)
        self.assertEqual(decode_message(header, body), original)

    def test_roundtrip_terminated_body_keeps_terminator(self):
        header, body = encode_message(AdbMessage(Command.OPEN, 300, 0, b"sync:"))
        self.assertEqual(decode_message(header, body).body, b"sync:\x00")

    def test_corrupted_body_byte_raises_integrity_error(self):
        header, body = encode_message(AdbMessage(Command.WRTE, 1, 2, b"payload"))
        for i in range(len(body)):
            corrupted = bytearray(body)
            corrupted[i] ^= 0x01
            with self.assertRaises(IntegrityError):
                decode_message(header, bytes(corrupted))

    def test_flipped_magic_bit_raises_framing_error(self):
        header, _ = encode_message(AdbMessage(Command.OKAY, 1, 2))
        for bit in range(32):
            corrupted = bytearray(header)
            magic = int.from_bytes(corrupted[20:24], "little") ^ (1 << bit)
            corrupted[20:24] = magic.to_bytes(4, "little")
            with self.assertRaises(FramingError):
                decode_header(bytes(corrupted))

    def test_wrong_header_size_raises_framing_error(self):
        header, _ = encode_message(AdbMessage(Command.OKAY, 1, 2))
        with self.assertRaises(FramingError):
            decode_header(header[:-1])

    def test_body_length_mismatch_raises_framing_error(self):
        header, body = encode_message(AdbMessage(Command.WRTE, 1, 2, b"abcd"))
        with self.assertRaises(FramingError):
            decode_message(header, body[:-1])


class TestFraming(unittest.TestCase):
    zero_mask = 511

    def test_full_packet_body_gets_zero_length_packet(self):
        for k in (1, 2, 3):
            body = b"x" * (512 * k)
            chunks = frame_message(AdbMessage(Command.WRTE, 1, 2, body), self.zero_mask)
            self.assertEqual([length for _, length in chunks], [HEADER_SIZE, len(body), 0])
            self.assertIs(chunks[2][0], chunks[1][0])

    def test_short_body_has_no_zero_length_packet(self):
        for k in (1, 2, 3):
            body = b"x" * (512 * k - 1)
            chunks = frame_message(AdbMessage(Command.WRTE, 1, 2, body), self.zero_mask)
            self.assertEqual([length for _, length in chunks], [HEADER_SIZE, len(body)])

    def test_terminator_counts_towards_boundary(self):
        # 511 characters plus the NUL fill exactly one packet
        chunks = frame_message(AdbMessage(Command.OPEN, 257, 0, b"s" * 511), self.zero_mask)
        self.assertEqual([length for _, length in chunks], [HEADER_SIZE, 512, 0])

    def test_unknown_packet_size_never_adds_zero_length_packet(self):
        chunks = frame_message(AdbMessage(Command.WRTE, 1, 2, b"x" * 512), 0)
        self.assertEqual(len(chunks), 2)

    def test_empty_body_is_header_only(self):
        chunks = frame_message(AdbMessage(Command.OKAY, 1, 2), self.zero_mask)
        self.assertEqual(len(chunks), 1)


if __name__ == "__main__":
    unittest.main()
