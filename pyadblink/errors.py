"""Exception types raised by the USB link."""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .transport.device import TransferStatus


class AdbLinkError(Exception):
    """Base class for all link-level failures."""


class ProtocolError(AdbLinkError):
    """Raised when an inbound message violates the wire format."""


class FramingError(ProtocolError):
    """Header magic does not match the complement of the command."""


class IntegrityError(ProtocolError):
    """Body checksum does not match the checksum declared in the header."""


class TransferError(AdbLinkError):
    """A bulk transfer finished with a non-success status."""

    def __init__(self, message: str, status: Optional["TransferStatus"] = None) -> None:
        super().__init__(message)
        self.status = status


class TransferTimeout(TransferError):
    """A bulk transfer timed out. Reads are reissued, never escalated."""


class StreamClosedError(Exception):
    """Raised when using a stream that was closed or whose link terminated."""
