import os
import sys
import logging
import signal
import asyncio
import argparse
import contextlib

from .auth import AdbKeySigner, DEFAULT_KEY_PATH
from .config import LinkConfig
from .errors import StreamClosedError
from .link import AdbUsbDevice
from .transport.pyusb_transport import find_adb_devices

logger = logging.getLogger(__name__)


def _int(value: str) -> int:
    return int(value, 0)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="pyadblink - run an ADB service over USB")
    parser.add_argument("service", help="device service to open, e.g. 'shell:ls /sdcard'")
    parser.add_argument(
        "--key",
        default=os.environ.get("ADB_VENDOR_KEY", DEFAULT_KEY_PATH),
        help="adbkey private key (default: $ADB_VENDOR_KEY or ~/.android/adbkey)",
    )
    parser.add_argument("--vendor-id", type=_int, default=None, help="only use devices with this USB vendor id")
    parser.add_argument("--product-id", type=_int, default=None, help="only use devices with this USB product id")
    parser.add_argument("-v", "--verbose", action="store_true", help="log protocol traffic")
    return parser.parse_args()


async def _run_service(args: argparse.Namespace) -> int:
    signer = AdbKeySigner.from_files(args.key)
    candidates = await asyncio.to_thread(find_adb_devices, args.vendor_id, args.product_id)
    if not candidates:
        logger.error("no ADB device found")
        return 1
    candidate = candidates[0]
    if not await candidate.transport.claim_interface(candidate.endpoints.interface_number):
        logger.error(f"cannot claim ADB interface of {candidate.serial}")
        return 1

    device = AdbUsbDevice(
        candidate.transport,
        signer,
        candidate.endpoints,
        serial=candidate.serial,
        config=LinkConfig.from_env(),
    )

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, device.terminate)
    except RuntimeError:
        pass

    stream = device.create_stream(args.service)
    try:
        logger.info("Waiting for device, accept the debugging prompt if shown")
        await stream.wait_open()
        while True:
            chunk = await stream.read()
            if not chunk:
                break
            sys.stdout.buffer.write(chunk)
            sys.stdout.buffer.flush()
    except StreamClosedError as e:
        logger.error(f"{e}")
        return 1
    finally:
        stream.close()
        await device.close()
    return 0


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='[%(asctime)s][%(levelname)s] %(message)s',
    )
    sys.exit(asyncio.run(_run_service(args)))


if __name__ == "__main__":
    main()
