from __future__ import annotations

import logging
import os
from typing import Optional, Protocol

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa, utils

logger = logging.getLogger(__name__)

DEFAULT_KEY_PATH = os.path.join(os.path.expanduser("~"), ".android", "adbkey")


class AuthSigner(Protocol):
    def sign(self, token: bytes) -> bytes:
        """Sign an AUTH token. Returns b"" when signing is not possible."""
        ...

    def public_key_blob(self) -> bytes:
        """The public key in the device's ``adbkey.pub`` text format."""
        ...


class AdbKeySigner:
    """Signer backed by the standard ``adbkey`` / ``adbkey.pub`` pair.

    The token the device sends is already a SHA-1 sized digest, so it is
    signed as a pre-hashed value with PKCS#1 v1.5 padding.
    """

    def __init__(self, private_key: rsa.RSAPrivateKey, public_key_blob: bytes) -> None:
        self._private_key = private_key
        self._public_key_blob = public_key_blob

    @classmethod
    def from_files(cls, private_key_path: str = DEFAULT_KEY_PATH, public_key_path: Optional[str] = None) -> "AdbKeySigner":
        public_key_path = public_key_path or private_key_path + ".pub"
        with open(private_key_path, "rb") as f:
            private_key = serialization.load_pem_private_key(f.read(), password=None)
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise ValueError(f"{private_key_path} is not an RSA private key")
        with open(public_key_path, "rb") as f:
            public_key_blob = f.read().strip()
        return cls(private_key, public_key_blob)

    def sign(self, token: bytes) -> bytes:
        try:
            return self._private_key.sign(token, padding.PKCS1v15(), utils.Prehashed(hashes.SHA1()))
        except ValueError as e:
            logger.warning(f"Failed to sign {len(token)}-byte token: {e}")
            return b""

    def public_key_blob(self) -> bytes:
        return self._public_key_blob
