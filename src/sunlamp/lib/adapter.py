"""BLE adapter capability consumed by the device session, and its bleak implementation."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData

log = logging.getLogger("sunlamp")

DiscoveryCallback = Callable[[Any], None]
DisconnectCallback = Callable[[Any], None]


class BleAdapter(Protocol):
    """What the session needs from a BLE stack.

    Peripherals handed to the discovery callback must expose an ``address``.
    Links returned by ``connect`` are passed back to the disconnect callback when
    the link drops.
    """

    async def start_scanning(self, on_discovered: DiscoveryCallback) -> None: ...

    async def stop_scanning(self) -> None: ...

    async def connect(self, peripheral: Any, on_disconnect: DisconnectCallback) -> Any: ...

    async def resolve_characteristic(
        self,
        link: Any,
        service_uuid: str,
        characteristic_uuid: str,
    ) -> Any | None: ...

    async def write(self, link: Any, characteristic: Any, data: bytes) -> None: ...

    async def disconnect(self, link: Any) -> None: ...


class BleakAdapter:
    """Adapter backed by bleak's scanner and client."""

    def __init__(self, *, connect_timeout: float = 10.0) -> None:
        self.connect_timeout = connect_timeout
        self._scanner: BleakScanner | None = None

    async def start_scanning(self, on_discovered: DiscoveryCallback) -> None:
        def _detection(device: BLEDevice, _: AdvertisementData) -> None:
            on_discovered(device)

        self._scanner = BleakScanner(detection_callback=_detection)
        log.debug("Starting BLE scan")
        await self._scanner.start()

    async def stop_scanning(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        await scanner.stop()

    async def connect(self, peripheral: BLEDevice, on_disconnect: DisconnectCallback) -> BleakClient:
        client = BleakClient(
            peripheral,
            disconnected_callback=on_disconnect,
            timeout=self.connect_timeout,
        )
        await client.connect()
        log.debug("Connected=%s address=%s", client.is_connected, client.address)
        return client

    async def resolve_characteristic(
        self,
        link: BleakClient,
        service_uuid: str,
        characteristic_uuid: str,
    ) -> Any | None:
        service = link.services.get_service(service_uuid)
        if service is None:
            log.debug("Service %s not offered by %s", service_uuid, link.address)
            return None
        return service.get_characteristic(characteristic_uuid)

    async def write(self, link: BleakClient, characteristic: Any, data: bytes) -> None:
        await link.write_gatt_char(characteristic, data, response=False)

    async def disconnect(self, link: BleakClient) -> None:
        await link.disconnect()


async def discover_peripherals(timeout: float) -> list[BLEDevice]:
    return await BleakScanner.discover(timeout=timeout)
