"""Logical lamp state and its translation into encrypted command frames."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict
from typing import Any, TypeVar

from sunlamp.lib.cipher import CipherCodec
from sunlamp.lib.color import hsv2rgb
from sunlamp.lib.commands import (
    build_brightness_frame,
    build_color_frame,
    build_off_frame,
    clamp_byte,
)
from sunlamp.lib.models import DEFAULT_LAMP_NAME, AccessoryInfo, LampState, SendOutcome
from sunlamp.lib.session import DeviceSession

SetCallback = Callable[[Exception | None], None]
GetCallback = Callable[[Exception | None, Any], None]
T = TypeVar("T")

log = logging.getLogger("sunlamp")


def _clamp(value: float, upper: float) -> float:
    return max(0.0, min(upper, float(value)))


class LampController:
    """Holds the lamp's logical state and pushes every change to the session.

    Setters report success to their callback as soon as the frames are handed to
    the session; the logical state is authoritative even when the write was
    skipped because the lamp is not connected.
    """

    def __init__(
        self,
        session: DeviceSession,
        *,
        name: str = DEFAULT_LAMP_NAME,
        codec: CipherCodec | None = None,
    ) -> None:
        self.session = session
        self.name = name
        self.codec = codec or CipherCodec()
        self.state = LampState()

    def accessory_info(self) -> AccessoryInfo:
        return AccessoryInfo(name=self.name, serial_number=self.session.address)

    def snapshot(self) -> dict[str, Any]:
        return {**asdict(self.state), "session": str(self.session.state)}

    def build_frames(self) -> list[bytes]:
        """Plaintext frames for the current state, in the order they must be written."""
        if not self.state.power:
            return [build_off_frame()]

        brightness = _clamp(self.state.brightness, 100)
        rgb = hsv2rgb(self.state.hue, _clamp(self.state.saturation, 100), brightness)
        return [
            build_color_frame(rgb.red, rgb.green, rgb.blue),
            build_brightness_frame(clamp_byte(brightness, 100)),
        ]

    def write_to_lamp(self) -> SendOutcome:
        frames = [self.codec.encrypt(frame) for frame in self.build_frames()]
        outcome = self.session.send(frames)
        log.debug("Lamp state=%s outcome=%s", self.state, outcome)
        return outcome

    def set_power(self, value: bool, callback: SetCallback | None = None) -> SendOutcome:
        self.state.power = bool(value)
        return self._apply(callback)

    def set_brightness(self, value: float, callback: SetCallback | None = None) -> SendOutcome:
        self.state.brightness = value
        return self._apply(callback)

    def set_hue(self, value: float, callback: SetCallback | None = None) -> SendOutcome:
        self.state.hue = value
        return self._apply(callback)

    def set_saturation(self, value: float, callback: SetCallback | None = None) -> SendOutcome:
        self.state.saturation = value
        return self._apply(callback)

    def get_power(self, callback: GetCallback | None = None) -> bool:
        return self._report(self.state.power, callback)

    def get_brightness(self, callback: GetCallback | None = None) -> float:
        return self._report(self.state.brightness, callback)

    def get_hue(self, callback: GetCallback | None = None) -> float:
        return self._report(self.state.hue, callback)

    def get_saturation(self, callback: GetCallback | None = None) -> float:
        return self._report(self.state.saturation, callback)

    def _apply(self, callback: SetCallback | None) -> SendOutcome:
        outcome = self.write_to_lamp()
        if callback is not None:
            callback(None)
        return outcome

    @staticmethod
    def _report(value: T, callback: GetCallback | None) -> T:
        if callback is not None:
            callback(None, value)
        return value
