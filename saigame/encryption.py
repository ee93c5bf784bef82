"""
encryption.py — At-rest encryption for the remembered password.

AesCipher: AES-256-CBC with PKCS7 padding (pycryptodome). The key is random
per install, created on first use and stored in its own file (mode 0600) next
to the local store; there is no key embedded in the SDK. A fresh random IV is
prepended to every ciphertext; the stored form is base64(iv + ciphertext).

Decryption failures (tampered value, key file replaced) are logged and give
"" so a broken remembered password degrades to "not remembered".
"""
from __future__ import annotations

import base64
import binascii
import logging
import os
from pathlib import Path
from typing import Protocol

from Crypto.Cipher import AES
from Crypto.Random import get_random_bytes
from Crypto.Util.Padding import pad, unpad

logger = logging.getLogger(__name__)

KEY_SIZE = 32


class Cipher(Protocol):
    def encrypt(self, plain_text: str) -> str: ...

    def decrypt(self, encrypted_text: str) -> str: ...


def load_or_create_key(key_path: Path) -> bytes:
    """Read the install key, generating and persisting a new one if absent or malformed."""
    key_path = Path(key_path)
    if key_path.exists():
        key = key_path.read_bytes()
        if len(key) == KEY_SIZE:
            return key
        logger.warning("Key file %s has unexpected length, regenerating", key_path)

    key = get_random_bytes(KEY_SIZE)
    key_path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(key)
    logger.info("Generated new credential key at %s", key_path)
    return key


class AesCipher:
    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_SIZE:
            raise ValueError(f"AES key must be {KEY_SIZE} bytes, got {len(key)}")
        self._key = key

    @classmethod
    def from_key_file(cls, key_path: Path) -> "AesCipher":
        return cls(load_or_create_key(key_path))

    def encrypt(self, plain_text: str) -> str:
        if not plain_text:
            return ""
        iv = get_random_bytes(AES.block_size)
        cipher = AES.new(self._key, AES.MODE_CBC, iv)
        encrypted = cipher.encrypt(pad(plain_text.encode("utf-8"), AES.block_size))
        return base64.b64encode(iv + encrypted).decode("ascii")

    def decrypt(self, encrypted_text: str) -> str:
        if not encrypted_text:
            return ""
        try:
            raw = base64.b64decode(encrypted_text, validate=True)
            iv, encrypted = raw[:AES.block_size], raw[AES.block_size:]
            cipher = AES.new(self._key, AES.MODE_CBC, iv)
            return unpad(cipher.decrypt(encrypted), AES.block_size).decode("utf-8")
        except (ValueError, binascii.Error, UnicodeDecodeError) as exc:
            logger.warning("Decryption failed: %s", exc)
            return ""
