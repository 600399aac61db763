from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Hashable, Protocol, Tuple, Union

Buffer = Union[bytes, bytearray]
TransferResult = Tuple["TransferStatus", Buffer, int]


class Direction(Enum):
    INBOUND = auto()
    OUTBOUND = auto()


class TransferStatus(Enum):
    COMPLETED = auto()
    ERROR = auto()
    TIMEOUT = auto()
    CANCELLED = auto()
    STALLED = auto()
    DISCONNECTED = auto()
    OVERFLOW = auto()


@dataclass(frozen=True)
class UsbEndpoints:
    interface_number: int
    inbound_address: int
    outbound_address: int
    zero_mask: int = 0  # max packet size - 1, 0 when unknown


@dataclass
class UsbCandidate:
    """A discovered device with an ADB interface, not yet claimed."""
    key: Hashable
    transport: "UsbTransport"
    endpoints: UsbEndpoints
    serial: str = ""


class UsbTransport(Protocol):
    """Bulk-transfer primitive and interface management of one USB device."""

    async def transfer(
        self,
        direction: Direction,
        endpoint: int,
        buffer: Buffer,
        length: int,
        timeout: int,
    ) -> TransferResult:
        """
        Run one bulk transfer.

        For INBOUND, ``buffer`` is filled with up to ``length`` bytes.
        Returns (status, buffer, bytes_transferred) instead of raising.
        """
        ...

    async def claim_interface(self, interface_number: int) -> bool:
        ...

    async def release_interface(self, interface_number: int) -> bool:
        ...

    async def close(self) -> None:
        ...
