from .device import AdbUsbDevice, LinkState, ReadState
from .stream import AdbStream

__all__ = [
    "AdbUsbDevice",
    "AdbStream",
    "LinkState",
    "ReadState",
]
