from .device import Direction, TransferStatus, UsbCandidate, UsbEndpoints, UsbTransport

__all__ = [
    "Direction",
    "TransferStatus",
    "UsbCandidate",
    "UsbEndpoints",
    "UsbTransport",
]
