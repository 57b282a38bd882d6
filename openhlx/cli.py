"""
hlxc - command-line HLX client.

Performs one operation against one entity and prints the result:

    hlxc --zone 3 --set-volume -20 192.168.1.48
    hlxc --group 1 --get-mute 192.168.1.48:23
    hlxc --save localhost
    hlxc --zone 3 --get-volume      (server from the [client] configuration)

Exit status is 0 on success, 1 when the server cannot be reached or the
operation fails.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any, Awaitable, Callable

from openhlx import __version__
from openhlx.__main__ import setup_logging
from openhlx.client import HlxClient
from openhlx.config import ClientConfig, get_config
from openhlx.core import HlxError

logger = logging.getLogger(__name__)

TARGETS = ("zone", "group", "source", "equalizer_preset", "favorite")

# option name -> (argument metavar or None, targets it applies to)
OPERATIONS: dict[str, tuple[str | None, tuple[str, ...]]] = {
    "get-volume": (None, ("zone", "group")),
    "get-mute": (None, ("zone", "group")),
    "get-source": (None, ("zone", "group")),
    "get-name": (None, TARGETS),
    "get-balance": (None, ("zone",)),
    "get-bass": (None, ("zone",)),
    "get-treble": (None, ("zone",)),
    "get-sound-mode": (None, ("zone",)),
    "set-volume": ("LEVEL", ("zone", "group")),
    "set-mute": ("0|1", ("zone", "group")),
    "set-source": ("SOURCE", ("zone", "group")),
    "set-name": ("NAME", TARGETS),
    "set-balance": ("BALANCE", ("zone",)),
    "set-bass": ("LEVEL", ("zone",)),
    "set-treble": ("LEVEL", ("zone",)),
    "set-sound-mode": ("MODE", ("zone",)),
    "set-volume-locked": ("0|1", ("zone",)),
    "set-equalizer-preset": ("PRESET", ("zone",)),
    "set-highpass-crossover": ("HZ", ("zone",)),
    "set-lowpass-crossover": ("HZ", ("zone",)),
    "increase-volume": (None, ("zone", "group")),
    "decrease-volume": (None, ("zone", "group")),
    "increase-bass": (None, ("zone",)),
    "decrease-bass": (None, ("zone",)),
    "increase-treble": (None, ("zone",)),
    "decrease-treble": (None, ("zone",)),
    "increase-balance-left": (None, ("zone",)),
    "increase-balance-right": (None, ("zone",)),
    "toggle-mute": (None, ("zone", "group")),
    "add-zone": ("ZONE", ("group",)),
    "remove-zone": ("ZONE", ("group",)),
    "save": (None, ()),
    "load": (None, ()),
    "reset": (None, ()),
}


def parse_address(address: str, default_port: int) -> tuple[str, int]:
    """``host[:port]`` -> (host, port)."""
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        return address, default_port
    return host, int(port)


def server_address(address: str | None, config: ClientConfig) -> tuple[str, int]:
    """The command-line address, else the configured server."""
    return parse_address(address or config.host, config.port)


def _flag(value: str) -> bool:
    if value not in ("0", "1"):
        raise argparse.ArgumentTypeError("expected 0 or 1")
    return value == "1"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="hlxc", description="Command-line client for HLX audio matrices")

    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose (debug) logging")
    parser.add_argument("--timeout", type=float, default=None, help="Seconds to wait for each response")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    targets = parser.add_mutually_exclusive_group()
    for target in TARGETS:
        targets.add_argument(f"--{target.replace('_', '-')}", type=int, metavar="N", dest=target)

    operations = parser.add_mutually_exclusive_group(required=True)
    for name, (metavar, _) in OPERATIONS.items():
        dest = name.replace("-", "_")
        if metavar is None:
            operations.add_argument(f"--{name}", action="store_true", default=None, dest=dest)
        elif metavar == "0|1":
            operations.add_argument(f"--{name}", type=_flag, metavar=metavar, dest=dest)
        elif metavar == "NAME":
            operations.add_argument(f"--{name}", type=str, metavar=metavar, dest=dest)
        else:
            operations.add_argument(f"--{name}", type=int, metavar=metavar, dest=dest)

    parser.add_argument(
        "address",
        nargs="?",
        default=None,
        help="host[:port] of the HLX server (default: [client] host and port from the configuration)",
    )

    args = parser.parse_args(argv)

    for name, (metavar, allowed) in OPERATIONS.items():
        value = getattr(args, name.replace("-", "_"))
        if value is None:
            continue
        args.operation = name
        args.value = None if metavar is None else value
        args.target = next((t for t in TARGETS if getattr(args, t) is not None), None)
        if allowed and args.target not in allowed:
            choices = " or ".join(f"--{t.replace('_', '-')}" for t in allowed)
            parser.error(f"--{name} requires {choices}")
        if not allowed and args.target is not None:
            parser.error(f"--{name} does not take a target")
        break

    return args


async def _name(client: HlxClient, target: str, identifier: int) -> str | None:
    if target == "zone":
        return (await client.zones.query(identifier)).name
    if target == "group":
        return (await client.groups.query(identifier)).name
    if target == "equalizer_preset":
        return (await client.equalizer_presets.query(identifier)).name
    if target == "favorite":
        return (await client.favorites.query(identifier)).name
    # Sources have no query of their own
    await client.refresh()
    source = client.repository.sources.get(identifier)
    return source.name if source else None


async def _set_name(client: HlxClient, target: str, identifier: int, name: str) -> str:
    controllers: dict[str, Any] = {
        "zone": client.zones,
        "group": client.groups,
        "source": client.sources,
        "equalizer_preset": client.equalizer_presets,
        "favorite": client.favorites,
    }
    return await controllers[target].set_name(identifier, name)


async def _zone_field(client: HlxClient, zone: int, read: Callable[[Any], Any]) -> Any:
    await client.refresh()
    return read(client.zones.zone(zone))


async def perform(client: HlxClient, args: argparse.Namespace) -> Any:
    """Run the selected operation and return what should be printed."""
    operation: str = args.operation
    target: str | None = args.target
    n: int = getattr(args, target) if target else 0
    value = args.value
    is_group = target == "group"
    entity = client.groups if is_group else client.zones

    simple: dict[str, Callable[[], Awaitable[Any]]] = {
        "get-name": lambda: _name(client, target or "", n),
        "get-balance": lambda: _zone_field(client, n, lambda z: z.balance.balance),
        "get-bass": lambda: _zone_field(client, n, lambda z: z.tone.bass),
        "get-treble": lambda: _zone_field(client, n, lambda z: z.tone.treble),
        "get-sound-mode": lambda: _zone_field(client, n, lambda z: int(z.sound_mode) if z.sound_mode is not None else None),
        "set-volume": lambda: entity.set_volume(n, value),
        "set-mute": lambda: entity.set_mute(n, value),
        "set-source": lambda: entity.set_source(n, value),
        "set-name": lambda: _set_name(client, target or "", n, value),
        "set-balance": lambda: client.zones.set_balance(n, value),
        "set-sound-mode": lambda: client.zones.set_sound_mode(n, value),
        "set-volume-locked": lambda: client.zones.set_volume_locked(n, value),
        "set-equalizer-preset": lambda: client.zones.set_equalizer_preset(n, value),
        "set-highpass-crossover": lambda: client.zones.set_highpass(n, value),
        "set-lowpass-crossover": lambda: client.zones.set_lowpass(n, value),
        "increase-volume": lambda: entity.increase_volume(n),
        "decrease-volume": lambda: entity.decrease_volume(n),
        "increase-bass": lambda: client.zones.increase_bass(n),
        "decrease-bass": lambda: client.zones.decrease_bass(n),
        "increase-treble": lambda: client.zones.increase_treble(n),
        "decrease-treble": lambda: client.zones.decrease_treble(n),
        "increase-balance-left": lambda: client.zones.increase_balance_left(n),
        "increase-balance-right": lambda: client.zones.increase_balance_right(n),
        "toggle-mute": lambda: entity.toggle_mute(n),
        "add-zone": lambda: client.groups.add_zone(n, value),
        "remove-zone": lambda: client.groups.remove_zone(n, value),
        "save": client.configuration.save,
        "load": client.configuration.load,
        "reset": client.configuration.reset,
    }

    if operation in simple:
        return await simple[operation]()

    if operation in ("set-bass", "set-treble"):
        # The wire only carries bass and treble together
        await client.zones.query(n)
        if client.zones.zone(n).tone.bass is None:
            await client.refresh()
        if operation == "set-bass":
            return await client.zones.set_bass(n, value)
        return await client.zones.set_treble(n, value)

    if is_group:
        group = await client.groups.query(n)
        if operation == "get-volume":
            return group.volume.level
        if operation == "get-mute":
            return group.volume.muted
        return ",".join(str(source) for source in group.sources) or None

    if operation == "get-volume":
        return await client.zones.query_volume(n)
    if operation == "get-mute":
        return await client.zones.query_mute(n)
    return await client.zones.query_source(n)


def _format(result: Any) -> str | None:
    if result is None:
        return None
    if isinstance(result, bool):
        return "1" if result else "0"
    if isinstance(result, tuple):
        return " ".join(str(item) for item in result)
    return str(result)


async def run_client(args: argparse.Namespace) -> int:
    config = get_config().client
    host, port = server_address(args.address, config)
    timeout = args.timeout if args.timeout is not None else config.request_timeout

    client = HlxClient(request_timeout=timeout, handshake_timeout=config.handshake_timeout)
    try:
        await client.connect(host, port)
        result = await perform(client, args)
    except HlxError as e:
        print(f"hlxc: {args.operation} failed: {e}", file=sys.stderr)
        return 1
    finally:
        await client.disconnect()

    output = _format(result)
    if output is not None:
        print(output)
    return 0


def main() -> int:
    args = parse_args()
    setup_logging(verbose=args.verbose)
    if not args.verbose:
        # Only problems on stderr; results go to stdout
        logging.getLogger("openhlx").setLevel(logging.WARNING)

    try:
        return asyncio.run(run_client(args))
    except KeyboardInterrupt:
        return 1


if __name__ == "__main__":
    sys.exit(main())
