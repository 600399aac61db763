import asyncio
from pyadblink.auth import AdbKeySigner
from pyadblink.transport.device_manager import UsbLinkRegistry
from pyadblink.transport.pyusb_transport import find_adb_devices

# Uses the key the adb command line tool generated
signer = AdbKeySigner.from_files()
registry = UsbLinkRegistry(find_adb_devices, signer)

async def main():
    links = await registry.enumerate()
    if not links:
        print("No device attached")
        return
    link = links[0]

    # Streams opened before the handshake finishes are sent once it does
    stream = link.create_stream("shell:getprop ro.product.model")
    await stream.wait_open()
    print(f"{link.serial}: {(await stream.read_all()).decode().strip()}")

    await registry.close()

asyncio.run(main())
