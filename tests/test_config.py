import os
import sys
import unittest
from unittest import mock

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from pyadblink.config import LinkConfig


class TestLinkConfig(unittest.TestCase):
    def test_defaults(self):
        config = LinkConfig()
        self.assertEqual(config.version, 0x01000000)
        self.assertEqual(config.max_payload, 4096)
        self.assertEqual(config.banner, b"host::")
        self.assertEqual(config.first_stream_id, 256)
        self.assertEqual(config.usb_timeout, 0)

    def test_environment_overrides(self):
        with mock.patch.dict(os.environ, {"ADB_LINK_MAX_PAYLOAD": "1024", "ADB_LINK_USB_TIMEOUT": "500"}):
            config = LinkConfig.from_env()
        self.assertEqual(config.max_payload, 1024)
        self.assertEqual(config.usb_timeout, 500)


if __name__ == "__main__":
    unittest.main()
