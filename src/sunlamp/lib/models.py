"""Data models for the sunset lamp controller and its BLE session."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from enum import StrEnum

DEFAULT_LAMP_NAME = "Sunset Lamp"


@dataclass(frozen=True)
class Config:
    address: str
    name: str = DEFAULT_LAMP_NAME
    timeout: float = 15.0
    rescan_on_failure: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", normalize_address(self.address))


def normalize_address(address: str | None) -> str:
    return (address or "").strip().lower()


class SessionState(StrEnum):
    idle = enum.auto()
    scanning = enum.auto()
    connecting = enum.auto()
    resolving = enum.auto()
    ready = enum.auto()
    disconnected = enum.auto()


class AdapterState(StrEnum):
    """Adapter power states, named after the values BLE stacks report."""

    unknown = "unknown"
    resetting = "resetting"
    unsupported = "unsupported"
    unauthorized = "unauthorized"
    powered_off = "poweredOff"
    powered_on = "poweredOn"


class SendOutcome(StrEnum):
    sent = enum.auto()
    skipped = enum.auto()


@dataclass
class LampState:
    power: bool = False
    hue: float = 0
    saturation: float = 0
    brightness: float = 0


@dataclass(frozen=True)
class RGB:
    red: int
    green: int
    blue: int


@dataclass(frozen=True)
class AccessoryInfo:
    name: str
    serial_number: str
