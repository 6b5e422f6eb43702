"""AES-ECB codec for lamp command frames."""

from __future__ import annotations

from Crypto.Cipher import AES

from sunlamp.lib.commands import FRAME_SIZE

LAMP_KEY = bytes(
    [0x34, 0x52, 0x2A, 0x5B, 0x7A, 0x6E, 0x49, 0x2C, 0x08, 0x09, 0x0A, 0x9D, 0x8D, 0x2A, 0x23, 0xF8]
)


class CipherCodec:
    """Encrypts single 16-byte frames with a fixed key, no IV and no padding."""

    def __init__(self, key: bytes = LAMP_KEY) -> None:
        if len(key) != 16:
            raise ValueError(f"AES-128 key must be 16 bytes, got {len(key)}")
        self._key = bytes(key)

    def encrypt(self, frame: bytes) -> bytes:
        if len(frame) != FRAME_SIZE:
            raise ValueError(f"Frame must be {FRAME_SIZE} bytes, got {len(frame)}")
        return AES.new(self._key, AES.MODE_ECB).encrypt(bytes(frame))

    def decrypt(self, block: bytes) -> bytes:
        if len(block) != FRAME_SIZE:
            raise ValueError(f"Block must be {FRAME_SIZE} bytes, got {len(block)}")
        return AES.new(self._key, AES.MODE_ECB).decrypt(bytes(block))
