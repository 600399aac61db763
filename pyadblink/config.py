import os
from dataclasses import dataclass

from . import ADB_VERSION, MAX_PAYLOAD, HOST_BANNER, RESERVED_STREAM_IDS


@dataclass
class LinkConfig:
    version: int = ADB_VERSION
    max_payload: int = MAX_PAYLOAD
    banner: bytes = HOST_BANNER
    # last reserved id; the first stream gets first_stream_id + 1
    first_stream_id: int = RESERVED_STREAM_IDS
    # milliseconds, 0 waits forever
    usb_timeout: int = 0

    @classmethod
    def from_env(cls) -> "LinkConfig":
        """
        Build a config, letting the environment override the tunables.

        - ADB_LINK_MAX_PAYLOAD: max payload advertised in CNXN
        - ADB_LINK_USB_TIMEOUT: bulk transfer timeout in milliseconds
        """
        return cls(
            max_payload=int(os.environ.get("ADB_LINK_MAX_PAYLOAD", str(MAX_PAYLOAD))),
            usb_timeout=int(os.environ.get("ADB_LINK_USB_TIMEOUT", "0")),
        )
