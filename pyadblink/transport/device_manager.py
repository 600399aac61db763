from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Hashable, List, Optional, TYPE_CHECKING

from ..config import LinkConfig
from ..link.device import AdbUsbDevice
from .device import UsbCandidate

if TYPE_CHECKING:
    from ..auth import AuthSigner

logger = logging.getLogger(__name__)

Discover = Callable[[], List[UsbCandidate]]


class UsbLinkRegistry:
    """Keeps one link per attached ADB device.

    Owned by whoever enumerates devices; the links themselves never look it
    up. Discovery is injected, e.g. `pyusb_transport.find_adb_devices`.
    """

    def __init__(self, discover: Discover, signer: 'AuthSigner', *, config: Optional[LinkConfig] = None) -> None:
        self._discover = discover
        self._signer = signer
        self._config = config
        self._links: Dict[Hashable, AdbUsbDevice] = {}

    def list_links(self) -> List[AdbUsbDevice]:
        return list(self._links.values())

    async def enumerate(self) -> List[AdbUsbDevice]:
        """
        Refresh the registry and return the live links.

        Links that terminated or whose device is gone are dropped, newly
        attached devices get their interface claimed and a fresh link.
        """
        candidates = {c.key: c for c in await asyncio.to_thread(self._discover)}

        for key, link in list(self._links.items()):
            if key not in candidates or link.is_terminated:
                logger.debug(f"Dropping link {link.serial or key}")
                link.terminate()
                del self._links[key]

        for key, candidate in candidates.items():
            if key in self._links:
                continue
            interface_number = candidate.endpoints.interface_number
            if not await candidate.transport.claim_interface(interface_number):
                logger.warning(f"Could not claim interface {interface_number} of {candidate.serial or key}")
                continue
            self._links[key] = AdbUsbDevice(
                candidate.transport,
                self._signer,
                candidate.endpoints,
                serial=candidate.serial,
                config=self._config,
            )
            logger.info(f"Opened link {candidate.serial or key}")

        return self.list_links()

    async def close(self) -> None:
        links, self._links = list(self._links.values()), {}
        for link in links:
            await link.close()
