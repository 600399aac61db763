from __future__ import annotations

import asyncio
import errno
import logging
from typing import Any, List, Optional

import usb.core
import usb.util

from .device import Buffer, Direction, TransferResult, TransferStatus, UsbCandidate, UsbEndpoints

logger = logging.getLogger(__name__)

# From adb.h
ADB_CLASS = 0xFF
ADB_SUBCLASS = 0x42
ADB_PROTOCOL = 0x01


class PyUsbTransport:
    """UsbTransport over a pyusb device.

    pyusb calls block, so each one runs in a worker thread.
    """

    def __init__(self, device: Any) -> None:
        self._device = device

    async def transfer(
        self,
        direction: Direction,
        endpoint: int,
        buffer: Buffer,
        length: int,
        timeout: int,
    ) -> TransferResult:
        return await asyncio.to_thread(self._transfer_sync, direction, endpoint, buffer, length, timeout)

    def _transfer_sync(self, direction: Direction, endpoint: int, buffer: Buffer, length: int, timeout: int) -> TransferResult:
        try:
            if direction == Direction.OUTBOUND:
                written = self._device.write(endpoint, bytes(buffer[:length]), timeout=timeout)
                return TransferStatus.COMPLETED, buffer, written
            data = self._device.read(endpoint, length, timeout=timeout)
            result = bytearray(buffer)
            result[:len(data)] = bytes(data)
            return TransferStatus.COMPLETED, result, len(data)
        except usb.core.USBTimeoutError:
            return TransferStatus.TIMEOUT, buffer, 0
        except usb.core.USBError as e:
            if getattr(e, "errno", None) == errno.ENODEV:
                return TransferStatus.DISCONNECTED, buffer, 0
            if getattr(e, "errno", None) == errno.EPIPE:
                return TransferStatus.STALLED, buffer, 0
            if getattr(e, "errno", None) == errno.EOVERFLOW:
                return TransferStatus.OVERFLOW, buffer, 0
            logger.debug(f"Bulk transfer on endpoint {endpoint:#04x} failed: {e}")
            return TransferStatus.ERROR, buffer, 0

    async def claim_interface(self, interface_number: int) -> bool:
        return await asyncio.to_thread(self._claim_sync, interface_number)

    def _claim_sync(self, interface_number: int) -> bool:
        try:
            try:
                if self._device.is_kernel_driver_active(interface_number):
                    self._device.detach_kernel_driver(interface_number)
            except NotImplementedError:
                # not supported on every platform
                pass
            usb.util.claim_interface(self._device, interface_number)
            return True
        except usb.core.USBError as e:
            logger.warning(f"Failed to claim interface {interface_number}: {e}")
            return False

    async def release_interface(self, interface_number: int) -> bool:
        return await asyncio.to_thread(self._release_sync, interface_number)

    def _release_sync(self, interface_number: int) -> bool:
        try:
            usb.util.release_interface(self._device, interface_number)
            return True
        except usb.core.USBError as e:
            logger.debug(f"Failed to release interface {interface_number}: {e}")
            return False

    async def close(self) -> None:
        await asyncio.to_thread(usb.util.dispose_resources, self._device)


def _adb_endpoints(device: Any) -> Optional[UsbEndpoints]:
    try:
        config = device.get_active_configuration()
    except usb.core.USBError:
        return None
    for interface in config:
        if (interface.bInterfaceClass, interface.bInterfaceSubClass, interface.bInterfaceProtocol) != (
            ADB_CLASS, ADB_SUBCLASS, ADB_PROTOCOL
        ):
            continue
        if interface.bNumEndpoints != 2:
            continue
        inbound = outbound = 0
        zero_mask = 0
        for endpoint in interface.endpoints():
            if usb.util.endpoint_type(endpoint.bmAttributes) != usb.util.ENDPOINT_TYPE_BULK:
                continue
            if usb.util.endpoint_direction(endpoint.bEndpointAddress) == usb.util.ENDPOINT_IN:
                inbound = endpoint.bEndpointAddress
            else:
                outbound = endpoint.bEndpointAddress
            zero_mask = endpoint.wMaxPacketSize - 1
        if inbound and outbound:
            return UsbEndpoints(interface.bInterfaceNumber, inbound, outbound, zero_mask)
    return None


def find_adb_devices(vendor_id: Optional[int] = None, product_id: Optional[int] = None) -> List[UsbCandidate]:
    """List attached devices that expose an ADB interface."""
    match = {}
    if vendor_id is not None:
        match["idVendor"] = vendor_id
    if product_id is not None:
        match["idProduct"] = product_id
    candidates = []
    for device in usb.core.find(find_all=True, **match):
        endpoints = _adb_endpoints(device)
        if endpoints is None:
            continue
        candidates.append(UsbCandidate(
            key=(device.bus, device.address),
            transport=PyUsbTransport(device),
            endpoints=endpoints,
            serial=f"usb:{device.bus}-{device.address}",
        ))
    return candidates
