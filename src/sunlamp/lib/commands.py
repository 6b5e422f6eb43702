"""Plaintext command frames for the sunset lamp protocol.

Every frame is exactly 16 bytes and is encrypted as a single AES block before
it is written to the lamp.
"""

from __future__ import annotations

from sunlamp.lib.color import round_half_up

FRAME_SIZE = 16
COLOR_HEADER = bytes([84, 82, 0, 87, 2, 1, 0])
COLOR_TRAILER = bytes([100, 100, 0, 0, 0, 0])
BRIGHTNESS_HEADER = bytes([84, 82, 0, 87, 7, 1])


def clamp_byte(value: float, upper: int = 255) -> int:
    """Clamp a numeric value into [0, upper] and round it to an integer byte."""
    return max(0, min(upper, round_half_up(value)))


def build_color_frame(red: int, green: int, blue: int) -> bytes:
    return COLOR_HEADER + bytes([red, green, blue]) + COLOR_TRAILER


def build_brightness_frame(brightness: int) -> bytes:
    return BRIGHTNESS_HEADER + bytes([brightness]) + bytes(9)


def build_off_frame() -> bytes:
    return build_color_frame(0, 0, 0)


def hex_to_frame(value: str) -> bytes:
    """Parse a hex string such as '54 52 00 57 ...' into a 16-byte frame."""
    cleaned = value.lower().replace("0x", "").replace(" ", "").replace("\n", "")
    if len(cleaned) % 2:
        raise ValueError("Hex payload must have an even number of characters.")
    try:
        frame = bytes.fromhex(cleaned)
    except ValueError as exc:
        raise ValueError(f"Invalid hex payload: {value}.") from exc
    if len(frame) != FRAME_SIZE:
        raise ValueError(f"Frame must be {FRAME_SIZE} bytes, got {len(frame)}.")
    return frame


def frame_to_hex(data: bytes) -> str:
    return " ".join(f"{b:02x}" for b in data)
