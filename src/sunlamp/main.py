"""BLE controller for the sunset colour lamp."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from collections.abc import Callable
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any
from urllib.parse import parse_qs, urlparse

from sunlamp.lib.adapter import BleakAdapter, discover_peripherals
from sunlamp.lib.cipher import CipherCodec
from sunlamp.lib.commands import frame_to_hex, hex_to_frame
from sunlamp.lib.lamp import LampController
from sunlamp.lib.models import DEFAULT_LAMP_NAME, Config, SendOutcome
from sunlamp.lib.session import DeviceSession

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
ADDRESS_ENV = "SUNLAMP_ADDRESS"
DEFAULT_PORT = 8000
log = logging.getLogger("sunlamp")


def configure_logging(debug: bool) -> None:
    logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT, force=True)
    project_level = logging.DEBUG if debug else logging.INFO
    log.setLevel(project_level)


def print_error(message: str) -> None:
    print(message, file=sys.stderr)


def parse_level(value: str, upper: float) -> float:
    try:
        level = float(value)
    except ValueError as exc:
        raise ValueError(f"Not a number: {value!r}.") from exc
    if not 0 <= level <= upper:
        raise ValueError(f"Value must be between 0 and {upper:g}, got {value}.")
    return level


def level_arg(upper: float) -> Callable[[str], float]:
    """argparse type that applies the same range check as the HTTP endpoints."""

    def _parse(value: str) -> float:
        try:
            return parse_level(value, upper)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(str(exc)) from exc

    return _parse


def build_args() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Control a sunset lamp over BLE.")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging for BLE events, writes, and session transitions.",
    )
    parser.add_argument(
        "-a",
        "--address",
        default=os.environ.get(ADDRESS_ENV),
        help=f"BLE address of the lamp. Defaults to ${ADDRESS_ENV}.",
    )
    parser.add_argument(
        "-n",
        "--name",
        default=DEFAULT_LAMP_NAME,
        help=f"Display name of the lamp. Default is {DEFAULT_LAMP_NAME}",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=15.0,
        help="Seconds to wait for the lamp (or scan duration for 'dev scan').",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser(
        "serve",
        help="Keep the lamp connected and control it over a local HTTP server.",
    )
    serve.add_argument("--port", type=int, default=DEFAULT_PORT, help="HTTP port.")

    power = subparsers.add_parser("power", help="Turn the lamp on or off.")
    power.add_argument("state", choices=["on", "off"], help="Power state.")

    color = subparsers.add_parser("color", help="Turn the lamp on with a colour.")
    color.add_argument("--hue", type=level_arg(360), required=True, help="Hue, 0-360.")
    color.add_argument(
        "--saturation", type=level_arg(100), default=100.0, help="Saturation, 0-100."
    )
    color.add_argument(
        "--brightness", type=level_arg(100), default=100.0, help="Brightness, 0-100."
    )

    dev = subparsers.add_parser("dev", help="Developer utilities.")
    dev_subparsers = dev.add_subparsers(dest="dev_command", required=True)

    dev_subparsers.add_parser("scan", help="List nearby BLE peripherals.")

    dev_encrypt = dev_subparsers.add_parser(
        "encrypt",
        help="Print the encrypted form of a 16-byte plaintext frame.",
    )
    dev_encrypt.add_argument("--data", required=True, help="Hex frame (e.g. '54 52 00 57 ...').")

    dev_send = dev_subparsers.add_parser(
        "send",
        help="Encrypt a raw 16-byte plaintext frame and write it to the lamp.",
    )
    dev_send.add_argument("--data", required=True, help="Hex frame (e.g. '54 52 00 57 ...').")

    return parser


async def run_server(lamp: LampController, port: int) -> None:
    """Serve the lamp setters over HTTP while the BLE session keeps running."""

    loop = asyncio.get_running_loop()

    def call_on_loop(func: Callable[..., Any], *args: Any) -> Any:
        async def _call() -> Any:
            return func(*args)

        return asyncio.run_coroutine_threadsafe(_call(), loop).result()

    setters: dict[str, tuple[Callable[[float], SendOutcome], float]] = {
        "/brightness": (lamp.set_brightness, 100),
        "/hue": (lamp.set_hue, 360),
        "/saturation": (lamp.set_saturation, 100),
    }

    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):  # noqa: N802
            parsed = urlparse(self.path)
            qs = parse_qs(parsed.query)
            log.debug("http request path=%s query=%s", parsed.path, parsed.query)

            if parsed.path == "/state":
                body = json.dumps(call_on_loop(lamp.snapshot)).encode()
                self.reply(200, body, content_type="application/json")
                return

            if parsed.path == "/power":
                state = qs.get("state", [""])[0]
                if state not in ("on", "off"):
                    self.reply(400, b"Bad state")
                    return
                outcome = call_on_loop(lamp.set_power, state == "on")
                self.reply(200, str(outcome).encode())
                return

            if parsed.path in setters:
                setter, upper = setters[parsed.path]
                try:
                    value = parse_level(qs.get("value", [""])[0], upper)
                except ValueError as exc:
                    self.reply(400, str(exc).encode())
                    return
                outcome = call_on_loop(setter, value)
                self.reply(200, str(outcome).encode())
                return

            self.reply(404, b"Not found")

        def reply(self, status: int, body: bytes, content_type: str = "text/plain") -> None:
            self.send_response(status)
            self.send_header("Content-type", content_type)
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
            log.debug("http %s", format % args)

    server = HTTPServer(("localhost", port), Handler)
    log.info("Serving %s on http://localhost:%d", lamp.name, port)
    try:
        await asyncio.to_thread(server.serve_forever)
    finally:
        server.shutdown()
        server.server_close()


async def require_ready(session: DeviceSession, timeout: float) -> None:
    if not await session.wait_ready(timeout):
        reason = f" ({session.last_error})" if session.last_error else ""
        raise SystemExit(f"Lamp {session.address} not ready after {timeout:g}s{reason}.")


async def run(args: argparse.Namespace, config: Config) -> None:
    if args.command == "dev" and args.dev_command in {"scan", "encrypt"}:
        await handle_offline(args, config)
        return

    if not config.address:
        raise SystemExit(f"No lamp address given. Use --address or set ${ADDRESS_ENV}.")

    session = DeviceSession(
        BleakAdapter(connect_timeout=config.timeout),
        config.address,
        rescan_on_failure=config.rescan_on_failure,
    )
    lamp = LampController(session, name=config.name)
    await session.start()
    try:
        await handle_command(args, lamp, config)
    finally:
        await session.stop()


async def handle_command(args: argparse.Namespace, lamp: LampController, config: Config) -> None:
    log.debug(
        "Handling command=%s dev_command=%s",
        args.command,
        getattr(args, "dev_command", None),
    )

    if args.command == "serve":
        await run_server(lamp, args.port)
        return

    await require_ready(lamp.session, config.timeout)

    if args.command == "power":
        lamp.set_power(args.state == "on")

    if args.command == "color":
        lamp.state.hue = args.hue
        lamp.state.saturation = args.saturation
        lamp.state.brightness = args.brightness
        lamp.set_power(True)

    if args.command == "dev" and args.dev_command == "send":
        try:
            frame = hex_to_frame(args.data)
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc
        lamp.session.send([lamp.codec.encrypt(frame)])

    await lamp.session.settle()


async def handle_offline(args: argparse.Namespace, config: Config) -> None:
    if args.dev_command == "encrypt":
        try:
            frame = hex_to_frame(args.data)
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc
        print(frame_to_hex(CipherCodec().encrypt(frame)))
        return

    if args.dev_command == "scan":
        devices = await discover_peripherals(config.timeout)
        for device in sorted(devices, key=lambda d: d.address):
            marker = "*" if device.address.lower() == config.address else " "
            print(f"{marker} {device.address}  {device.name or '?'}")


def main() -> None:
    parser = build_args()
    args = parser.parse_args()
    configure_logging(args.debug)
    log.debug("CLI args: %s", args)

    config = Config(address=args.address, name=args.name, timeout=args.timeout)
    log.debug("Using config=%s", config)

    try:
        asyncio.run(run(args, config))
    except KeyboardInterrupt:
        raise SystemExit(130) from None
    except SystemExit as exc:
        if isinstance(exc.code, str) and exc.code:
            print_error(exc.code)
            raise SystemExit(1) from None
        raise
    except Exception as exc:
        log.debug("Operation failed with config=%s", config, exc_info=True)
        print_error(f"Operation failed: {exc}")
        raise SystemExit(1) from None


if __name__ == "__main__":
    main()
