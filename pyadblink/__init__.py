"""pyadblink - host side of the ADB transport protocol over a USB bulk link.

Frames ADB messages, performs the CNXN/AUTH handshake (RSA signature or
public key), and multiplexes many logical streams over one USB link.

The package is structured into:
- protocol: message codec (header, checksum, magic)
- link: the device object (queue, read loop, handshake, streams)
- transport: bulk-transfer contract, a pyusb backend, a link registry
"""

__all__ = [
    "ADB_VERSION",
    "MAX_PAYLOAD",
    "HOST_BANNER",
    "RESERVED_STREAM_IDS",
]

ADB_VERSION = 0x01000000
MAX_PAYLOAD = 4096
HOST_BANNER = b"host::"
RESERVED_STREAM_IDS = 256
