from __future__ import annotations

import asyncio
import logging
from collections import deque
from contextlib import contextmanager
from enum import Enum, auto
from typing import Deque, Dict, List, Optional, Set, Tuple, TYPE_CHECKING

from ..config import LinkConfig
from ..errors import AdbLinkError, TransferError, TransferTimeout
from ..protocol.message import (
    HEADER_SIZE,
    AdbMessage,
    AuthType,
    Command,
    WriteChunk,
    command_name,
    decode_header,
    frame_message,
    verify_body,
)
from ..transport.device import Direction, TransferStatus, UsbEndpoints
from .stream import AdbStream

if TYPE_CHECKING:
    from ..auth import AuthSigner
    from ..transport.device import UsbTransport

logger = logging.getLogger(__name__)


class LinkState(Enum):
    DISCONNECTED = auto()
    AUTH_PENDING = auto()
    CONNECTED = auto()
    TERMINATED = auto()


class ReadState(Enum):
    AWAITING_HEADER = auto()
    AWAITING_BODY = auto()


class AdbUsbDevice:
    """One ADB link over a claimed USB interface.

    Owns the outgoing queue, the inbound read loop, the CNXN/AUTH handshake
    and the stream table. Everything runs on the event loop that created the
    object; only the transport coroutines suspend.

    Must be constructed inside a running event loop: the CNXN message is
    queued and the read loop started immediately.
    """

    def __init__(
        self,
        transport: 'UsbTransport',
        signer: 'AuthSigner',
        endpoints: UsbEndpoints,
        *,
        serial: str = "",
        config: Optional[LinkConfig] = None,
    ) -> None:
        self.serial = serial
        self.enable_log = True
        self._transport = transport
        self._signer = signer
        self._endpoints = endpoints
        self._config = config or LinkConfig()
        self._loop = asyncio.get_running_loop()

        self._state = LinkState.DISCONNECTED
        self._signature_sent = False
        self._terminated = False

        self._outgoing: Deque[WriteChunk] = deque()
        self._write_task: Optional[asyncio.Task] = None
        self._pending: List[AdbMessage] = []

        self._streams: Dict[int, AdbStream] = {}
        self._last_stream_id = self._config.first_stream_id

        self._read_state = ReadState.AWAITING_HEADER
        self._pending_header: Optional[Tuple[int, int, int, int, int]] = None

        self.peer_version: Optional[int] = None
        self.peer_max_payload: Optional[int] = None
        self.peer_banner: bytes = b""

        self._shutdown_task: Optional[asyncio.Task] = None

        self._queue(AdbMessage(Command.CNXN, self._config.version, self._config.max_payload, self._config.banner))
        self._read_task = self._loop.create_task(self._read_loop())

    def __repr__(self) -> str:
        return f"<AdbUsbDevice {self.serial or '?'} {self._state.name}>"

    @property
    def state(self) -> LinkState:
        return self._state

    @property
    def signature_sent(self) -> bool:
        return self._signature_sent

    @property
    def read_state(self) -> ReadState:
        return self._read_state

    @property
    def pending_header(self) -> Optional[Tuple[int, int, int, int, int]]:
        """(command, arg0, arg1, body_length, body_checksum) while awaiting a body."""
        return self._pending_header

    @property
    def is_connected(self) -> bool:
        return self._state == LinkState.CONNECTED

    @property
    def is_terminated(self) -> bool:
        return self._terminated

    @property
    def max_payload(self) -> int:
        """Largest WRTE body both sides accept."""
        if self.peer_max_payload:
            return min(self._config.max_payload, self.peer_max_payload)
        return self._config.max_payload

    @property
    def stream_ids(self) -> List[int]:
        return list(self._streams)

    # Public API

    def send(self, command: int, arg0: int, arg1: int, body: bytes = b"") -> None:
        """
        Submit a message for transmission.

        Buffered until the handshake completes, dropped once terminated.
        """
        if self._terminated:
            return
        message = AdbMessage(command, arg0, arg1, body)
        if self._state != LinkState.CONNECTED:
            self._pending.append(message)
            return
        self._queue(message)

    def create_stream(self, destination: str) -> AdbStream:
        """
        Open a stream to a device service such as ``shell:ls``.

        On a terminated link the returned stream is already terminated.
        """
        self._last_stream_id += 1
        stream_id = self._last_stream_id
        stream = AdbStream(self, stream_id, destination)
        if self._terminated:
            stream.on_link_terminated()
            return stream
        self._streams[stream_id] = stream
        logger.debug(f"Open stream {stream_id} -> {destination}")
        self.send(Command.OPEN, stream_id, 0, destination.encode("utf-8"))
        return stream

    def dispose(self, stream_id: int) -> None:
        """Forget a stream. Sending CLSE is up to the stream."""
        self._streams.pop(stream_id, None)

    def terminate(self) -> None:
        """
        Tear the link down. Safe to call multiple times.

        Every open stream is notified, then the interface is released and the
        USB device closed in the background, see `wait_closed`.
        """
        if self._terminated:
            return
        self._terminated = True
        self._state = LinkState.TERMINATED
        logger.info(f"Link {self.serial or '?'} terminated")

        # streams dispose themselves while being notified
        streams = list(self._streams.values())
        for stream in streams:
            stream.on_link_terminated()
        self._streams.clear()
        self._outgoing.clear()
        self._pending.clear()

        self._shutdown_task = self._loop.create_task(self._shutdown())

    async def wait_closed(self) -> None:
        if self._shutdown_task is not None:
            await self._shutdown_task

    async def close(self) -> None:
        self.terminate()
        await self.wait_closed()

    @contextmanager
    def suppress_log(self):
        old_value = self.enable_log
        self.enable_log = False
        try:
            yield
        finally:
            self.enable_log = old_value

    # Outgoing queue

    def _queue(self, message: AdbMessage) -> None:
        if self.enable_log:
            logger.debug(f"Send: {message}")
        self._outgoing.extend(frame_message(message, self._endpoints.zero_mask))
        self._process_outgoing()

    def _process_outgoing(self) -> None:
        if self._write_task is not None or not self._outgoing or self._terminated:
            return
        buffer, length = self._outgoing.popleft()
        self._write_task = self._loop.create_task(self._write_chunk(buffer, length))

    async def _write_chunk(self, buffer: bytes, length: int) -> None:
        try:
            status, _, _ = await self._transport.transfer(
                Direction.OUTBOUND,
                self._endpoints.outbound_address,
                buffer,
                length,
                self._config.usb_timeout,
            )
        except Exception:
            logger.exception(f"Bulk write of {length} bytes raised")
            self.terminate()
            return
        finally:
            self._write_task = None
        if status != TransferStatus.COMPLETED:
            logger.error(f"Bulk write of {length} bytes failed: {status.name}")
            self.terminate()
            return
        self._process_outgoing()

    # Inbound read loop

    async def _read_loop(self) -> None:
        try:
            while not self._terminated:
                message = await self._read_message()
                self._handle_incoming(message)
        except AdbLinkError as e:
            logger.error(f"Link {self.serial or '?'} failed: {e}")
            self.terminate()
        except Exception:
            logger.exception(f"Unexpected error on link {self.serial or '?'}")
            self.terminate()

    async def _read_message(self) -> AdbMessage:
        self._read_state = ReadState.AWAITING_HEADER
        self._pending_header = None
        header = await self._read_exact(HEADER_SIZE)
        command, arg0, arg1, body_length, body_checksum = decode_header(header)
        if body_length == 0:
            return AdbMessage(command, arg0, arg1)

        self._read_state = ReadState.AWAITING_BODY
        self._pending_header = (command, arg0, arg1, body_length, body_checksum)
        body = await self._read_exact(body_length)
        verify_body(body, body_checksum)
        self._read_state = ReadState.AWAITING_HEADER
        self._pending_header = None
        return AdbMessage(command, arg0, arg1, body)

    async def _read_exact(self, length: int) -> bytes:
        while True:
            try:
                return await self._transfer_in(length)
            except TransferTimeout:
                if self.enable_log:
                    logger.debug(f"Read of {length} bytes timed out, retrying")

    async def _transfer_in(self, length: int) -> bytes:
        status, buffer, transferred = await self._transport.transfer(
            Direction.INBOUND,
            self._endpoints.inbound_address,
            bytearray(length),
            length,
            self._config.usb_timeout,
        )
        if status == TransferStatus.TIMEOUT:
            raise TransferTimeout("bulk read timed out", status)
        if status != TransferStatus.COMPLETED:
            raise TransferError(f"bulk read failed: {status.name}", status)
        if transferred != length:
            raise TransferError(f"short bulk read: expected {length} bytes, got {transferred}", status)
        return bytes(buffer[:transferred])

    # Dispatch

    def _handle_incoming(self, message: AdbMessage) -> None:
        if self.enable_log:
            logger.debug(f"Recv: {message}")

        command = message.command
        if command == Command.AUTH:
            self._handle_auth(message)
        elif command == Command.CNXN:
            self._handle_connect(message)
        elif command in (Command.OKAY, Command.WRTE, Command.CLSE):
            if self._state != LinkState.CONNECTED:
                logger.debug(f"Ignoring {message} before connection")
                return
            stream = self._streams.get(message.arg1)
            if stream is None:
                logger.debug(f"Dropping {message} for unknown stream {message.arg1}")
                return
            stream.handle_incoming(message)
        else:
            logger.debug(f"Ignoring unexpected {command_name(command)}")

    def _handle_auth(self, message: AdbMessage) -> None:
        if message.arg0 != AuthType.TOKEN:
            logger.debug(f"Ignoring AUTH type {message.arg0}")
            return
        if self._state == LinkState.DISCONNECTED:
            self._state = LinkState.AUTH_PENDING

        if self._signature_sent:
            logger.warning("Signature rejected by device, sending public key")
            self._send_public_key()
            return

        signature = self._signer.sign(message.body)
        if signature:
            self._signature_sent = True
            self._queue(AdbMessage(Command.AUTH, AuthType.SIGNATURE, 0, signature))
        else:
            logger.warning("Could not sign auth token, sending public key")
            self._send_public_key()

    def _send_public_key(self) -> None:
        self._queue(AdbMessage(Command.AUTH, AuthType.RSAPUBLICKEY, 0, self._signer.public_key_blob()))

    def _handle_connect(self, message: AdbMessage) -> None:
        self.peer_version = message.arg0
        self.peer_max_payload = message.arg1
        self.peer_banner = message.body.rstrip(b"\x00")
        if self._state != LinkState.CONNECTED:
            logger.info(f"Link {self.serial or '?'} connected: {self.peer_banner.decode('utf-8', errors='replace')}")
        self._state = LinkState.CONNECTED

        pending, self._pending = self._pending, []
        for queued in pending:
            self._queue(queued)

    # Shutdown

    async def _shutdown(self) -> None:
        current = asyncio.current_task()
        tasks: Set[asyncio.Task] = set()
        for task in (self._read_task, self._write_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
                tasks.add(task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        interface_number = self._endpoints.interface_number
        if not await self._transport.release_interface(interface_number):
            logger.warning(f"Failed to release interface {interface_number}")
        await self._transport.close()
