"""BLE connection lifecycle for a single sunset lamp.

The session is an explicit state machine driven by adapter events:

    idle -> scanning -> connecting -> resolving -> ready
                ^            |             |         |
                +------------+-------------+---------+  (failure / disconnect)

Event handlers apply their transition synchronously and run transport work
(scan, connect, characteristic lookup, writes) as tasks on the running loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine, Sequence
from typing import Any

from sunlamp.lib.adapter import BleAdapter
from sunlamp.lib.models import AdapterState, SendOutcome, SessionState, normalize_address

LAMP_SERVICE_UUID = "0000ac50-1212-efde-1523-785fedbeda25"
LAMP_WRITE_CHAR_UUID = "0000ac52-1212-efde-1523-785fedbeda25"
CONNECTED_STATES = frozenset(
    {SessionState.connecting, SessionState.resolving, SessionState.ready}
)

log = logging.getLogger("sunlamp")


class SessionError(RuntimeError):
    """Base error for the lamp BLE session."""


class ConnectFailure(SessionError):
    """Raised when connecting to the lamp fails."""


class DiscoveryFailure(SessionError):
    """Raised when the lamp's write characteristic cannot be resolved."""


class DeviceSession:
    def __init__(
        self,
        adapter: BleAdapter,
        address: str,
        *,
        rescan_on_failure: bool = True,
    ) -> None:
        self._adapter = adapter
        self.address = normalize_address(address)
        self.rescan_on_failure = rescan_on_failure
        self.last_error: Exception | None = None

        self._state = SessionState.idle
        self._adapter_state = AdapterState.unknown
        self._scanning = False
        self._peripheral: Any | None = None
        self._link: Any | None = None
        self._characteristic: Any | None = None
        self._ready = asyncio.Event()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def adapter_state(self) -> AdapterState:
        return self._adapter_state

    @property
    def peripheral(self) -> Any | None:
        return self._peripheral

    @property
    def characteristic(self) -> Any | None:
        return self._characteristic

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    async def start(self) -> None:
        # bleak has no power-state events; an unusable adapter fails scanner start instead.
        self.handle_adapter_state(AdapterState.powered_on)
        await self.settle()

    async def stop(self) -> None:
        link = self._link
        self._clear_peripheral()
        self._transition(SessionState.idle)
        await self._stop_scanning()
        if link is not None:
            await self._drop_link(link)
        await self.settle()

    async def settle(self) -> None:
        """Wait until every transport task started by the session has finished."""
        while pending := [task for task in self._tasks if not task.done()]:
            await asyncio.gather(*pending, return_exceptions=True)

    async def wait_ready(self, timeout: float | None = None) -> bool:
        if self._ready.is_set():
            return True
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except TimeoutError:
            return False
        return True

    def send(self, frames: Sequence[bytes]) -> SendOutcome:
        """Write encrypted frames in order without waiting for them to complete."""
        if self._state is not SessionState.ready or self._characteristic is None:
            log.warning("No characteristic yet, skipping write (state=%s)", self._state)
            return SendOutcome.skipped

        self._spawn(self._write_frames(self._link, self._characteristic, tuple(frames)))
        return SendOutcome.sent

    # Adapter events

    def handle_adapter_state(self, state: AdapterState | str) -> None:
        state = AdapterState(state)
        self._adapter_state = state
        if state is AdapterState.powered_on:
            log.debug("BLE poweredOn, starting scan")
            if self._state in (SessionState.idle, SessionState.disconnected):
                self._begin_scanning()
            return

        log.debug("BLE state %s, stopping scan", state)
        if self._state is SessionState.scanning:
            self._transition(SessionState.idle)
        self._spawn(self._stop_scanning())

    def handle_discovered(self, peripheral: Any) -> None:
        if normalize_address(getattr(peripheral, "address", None)) != self.address:
            return
        if self._peripheral is not None or self._state is not SessionState.scanning:
            return

        log.info("Found lamp %s, connecting...", self.address)
        self._peripheral = peripheral
        self._transition(SessionState.connecting)
        self._spawn(self._connect(peripheral))

    def handle_scan_stopped(self) -> None:
        log.debug("BLE scan stopped")

    def handle_disconnected(self, link: Any) -> None:
        if link is None or link is not self._link:
            log.debug("Ignoring disconnect of a link the session no longer holds")
            return

        log.debug("Disconnected, clearing and rescanning")
        self._clear_peripheral()
        self._transition(SessionState.disconnected)
        if self._adapter_state is AdapterState.powered_on:
            self._begin_scanning()
        else:
            self._transition(SessionState.idle)

    # Transport results

    def _on_connect_result(
        self,
        peripheral: Any,
        link: Any | None,
        error: ConnectFailure | None,
    ) -> None:
        if peripheral is not self._peripheral:
            log.debug("Connect finished after the session moved on, dropping link")
            if link is not None:
                self._spawn(self._drop_link(link))
            return

        if error is not None:
            log.error("Connect failed: %s", error)
            self.last_error = error
            self._clear_peripheral()
            self._transition(SessionState.disconnected)
            self._rescan_after_failure()
            return

        log.debug("Connected, discovering services and characteristics")
        self._link = link
        self._transition(SessionState.resolving)
        self._spawn(self._resolve(link))

    def _on_resolve_result(
        self,
        link: Any,
        characteristic: Any | None,
        error: DiscoveryFailure | None,
    ) -> None:
        if link is not self._link:
            return

        if error is not None:
            log.error("Discovery failed: %s", error)
            self.last_error = error
            self._clear_peripheral()
            self._transition(SessionState.disconnected)
            self._spawn(self._drop_link(link))
            self._rescan_after_failure()
            return

        self._characteristic = characteristic
        self.last_error = None
        self._transition(SessionState.ready)
        log.info("Lamp %s ready", self.address)

    # Internals

    def _transition(self, new: SessionState) -> None:
        if new is self._state:
            return
        log.debug("Session %s -> %s", self._state, new)
        self._state = new
        if new is SessionState.ready:
            self._ready.set()
        else:
            self._ready.clear()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _clear_peripheral(self) -> None:
        self._peripheral = None
        self._link = None
        self._characteristic = None

    def _begin_scanning(self) -> None:
        self._transition(SessionState.scanning)
        self._spawn(self._start_scanning())

    def _rescan_after_failure(self) -> None:
        if self.rescan_on_failure and self._adapter_state is AdapterState.powered_on:
            self._begin_scanning()

    async def _start_scanning(self) -> None:
        if self._scanning:
            return
        self._scanning = True
        try:
            await self._adapter.start_scanning(self.handle_discovered)
        except Exception as exc:
            self._scanning = False
            self.last_error = exc
            log.warning("BLE adapter unavailable, scanning withheld: %s", exc)
            if self._state is SessionState.scanning:
                self._transition(SessionState.idle)

    async def _stop_scanning(self) -> None:
        if not self._scanning:
            return
        self._scanning = False
        try:
            await self._adapter.stop_scanning()
        except Exception as exc:
            log.warning("Stopping BLE scan failed: %s", exc)
            return
        self.handle_scan_stopped()

    async def _connect(self, peripheral: Any) -> None:
        await self._stop_scanning()
        try:
            link = await self._adapter.connect(peripheral, self.handle_disconnected)
        except Exception as exc:
            failure = ConnectFailure(f"Connecting to {self.address} failed: {exc}")
            self._on_connect_result(peripheral, None, failure)
            return
        self._on_connect_result(peripheral, link, None)

    async def _resolve(self, link: Any) -> None:
        try:
            characteristic = await self._adapter.resolve_characteristic(
                link, LAMP_SERVICE_UUID, LAMP_WRITE_CHAR_UUID
            )
        except Exception as exc:
            self._on_resolve_result(link, None, DiscoveryFailure(f"Discovery failed: {exc!r}"))
            return

        if characteristic is None:
            failure = DiscoveryFailure(f"Characteristic {LAMP_WRITE_CHAR_UUID} not found")
            self._on_resolve_result(link, None, failure)
            return
        self._on_resolve_result(link, characteristic, None)

    async def _drop_link(self, link: Any) -> None:
        try:
            await self._adapter.disconnect(link)
        except Exception as exc:
            log.warning("Disconnecting from %s failed: %s", self.address, exc)

    async def _write_frames(self, link: Any, characteristic: Any, frames: tuple[bytes, ...]) -> None:
        for frame in frames:
            log.debug("WRITE uuid=%s response=False data=0x%s", LAMP_WRITE_CHAR_UUID, frame.hex())
            try:
                await self._adapter.write(link, characteristic, frame)
            except Exception:
                log.exception("BLE write failed")
                return
