from __future__ import annotations

import asyncio
import logging
import weakref
from typing import TYPE_CHECKING

from ..errors import StreamClosedError
from ..protocol.message import AdbMessage, Command

if TYPE_CHECKING:
    from .device import AdbUsbDevice

logger = logging.getLogger(__name__)


class AdbStream:
    """One logical stream multiplexed over a USB link.

    The link owns the stream through its stream table; the stream only keeps
    a weak reference back to the link to submit messages and to dispose
    itself. At most one WRTE is outstanding until the peer acknowledges it.
    """

    def __init__(self, device: 'AdbUsbDevice', local_id: int, destination: str) -> None:
        self._device = weakref.ref(device)
        self.local_id = local_id
        self.remote_id = 0
        self.destination = destination
        self._opened = asyncio.Event()
        self._write_ready = asyncio.Event()
        self._inbound: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._terminated = False

    def __repr__(self) -> str:
        return f"<AdbStream {self.destination!r} {self.local_id}->{self.remote_id}>"

    @property
    def is_open(self) -> bool:
        return self._opened.is_set() and not self._closed

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def is_terminated(self) -> bool:
        return self._terminated

    # Called by the link

    def handle_incoming(self, message: AdbMessage) -> None:
        if message.command == Command.OKAY:
            if self.remote_id == 0:
                self.remote_id = message.arg0
                self._opened.set()
            self._write_ready.set()
        elif message.command == Command.WRTE:
            if self._closed:
                return
            if message.body:
                self._inbound.put_nowait(message.body)
            self._send(Command.OKAY)
        elif message.command == Command.CLSE:
            logger.debug(f"Stream {self.local_id} closed by device")
            self._finish()

    def on_link_terminated(self) -> None:
        if self._terminated:
            return
        self._terminated = True
        self._finish()

    # Caller API

    async def wait_open(self) -> None:
        """Wait for the device to accept the stream."""
        if not self._opened.is_set() and not self._closed:
            await self._opened.wait()
        if self._closed:
            raise StreamClosedError(f"stream to {self.destination!r} is closed")

    async def write(self, data: bytes) -> None:
        await self.wait_open()
        device = self._device()
        if device is None:
            raise StreamClosedError(f"link of stream to {self.destination!r} is gone")
        max_payload = device.max_payload
        view = memoryview(data)
        for offset in range(0, len(view), max_payload):
            if self._closed:
                raise StreamClosedError(f"stream to {self.destination!r} is closed")
            self._write_ready.clear()
            self._send(Command.WRTE, bytes(view[offset:offset + max_payload]))
            await self._write_ready.wait()
        if self._closed:
            raise StreamClosedError(f"stream to {self.destination!r} is closed")

    async def read(self) -> bytes:
        """Return the next chunk written by the device, or b"" at end of stream."""
        chunk = await self._inbound.get()
        if chunk is None:
            # keep the end-of-stream marker for later readers
            self._inbound.put_nowait(None)
            return b""
        return chunk

    async def read_all(self) -> bytes:
        chunks = []
        while True:
            chunk = await self.read()
            if not chunk:
                return b"".join(chunks)
            chunks.append(chunk)

    def close(self) -> None:
        if self._closed:
            return
        if self.remote_id:
            self._send(Command.CLSE)
        self._finish()

    # Internals

    def _send(self, command: Command, body: bytes = b"") -> None:
        device = self._device()
        if device is not None:
            device.send(command, self.local_id, self.remote_id, body)

    def _finish(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._inbound.put_nowait(None)
        # wake up anyone waiting on open or on a write ack
        self._opened.set()
        self._write_ready.set()
        device = self._device()
        if device is not None:
            device.dispose(self.local_id)
