"""
Tests for the hlxc command line and the simulator entry point.
"""

from pathlib import Path

import pytest

from openhlx import __main__ as simulator_main
from openhlx.cli import _format, parse_address, parse_args, perform, server_address
from openhlx.client import HlxClient
from openhlx.config import ClientConfig
from openhlx.core.events import event_bus
from openhlx.simulator import HlxSimulator


class TestParseAddress:
    def test_host_only(self) -> None:
        assert parse_address("192.168.1.48", 23) == ("192.168.1.48", 23)

    def test_host_and_port(self) -> None:
        assert parse_address("localhost:2323", 23) == ("localhost", 2323)

    def test_bad_port_is_part_of_host(self) -> None:
        assert parse_address("localhost:telnet", 23) == ("localhost:telnet", 23)

    def test_configured_server_is_the_default(self) -> None:
        config = ClientConfig(host="10.0.0.5", port=2323)
        assert server_address(None, config) == ("10.0.0.5", 2323)
        assert server_address("192.168.1.48", config) == ("192.168.1.48", 2323)
        assert server_address("192.168.1.48:23", config) == ("192.168.1.48", 23)


class TestParseArgs:
    def test_set_volume(self) -> None:
        args = parse_args(["--zone", "3", "--set-volume", "-20", "192.168.1.48"])
        assert args.operation == "set-volume"
        assert args.target == "zone"
        assert args.zone == 3
        assert args.value == -20

    def test_flag_value(self) -> None:
        args = parse_args(["--group", "1", "--set-mute", "0", "localhost"])
        assert args.operation == "set-mute"
        assert args.value is False

    def test_operation_without_value(self) -> None:
        args = parse_args(["--zone", "2", "--toggle-mute", "localhost"])
        assert args.operation == "toggle-mute"
        assert args.value is None

    def test_name(self) -> None:
        args = parse_args(["--favorite", "4", "--set-name", "Jazz", "localhost"])
        assert args.target == "favorite"
        assert args.value == "Jazz"

    def test_configuration_operation(self) -> None:
        args = parse_args(["--save", "localhost"])
        assert args.operation == "save"
        assert args.target is None

    def test_address_is_optional(self) -> None:
        args = parse_args(["--zone", "3", "--get-volume"])
        assert args.address is None
        assert args.operation == "get-volume"

    @pytest.mark.parametrize(
        "argv",
        [
            ["--group", "1", "--set-bass", "2", "localhost"],
            ["--zone", "1", "--save", "localhost"],
            ["--set-volume", "-20", "localhost"],
            ["--zone", "1", "--set-mute", "2", "localhost"],
            ["--zone", "1", "localhost"],
        ],
    )
    def test_invalid(self, argv: list[str]) -> None:
        with pytest.raises(SystemExit):
            parse_args(argv)


class TestFormat:
    @pytest.mark.parametrize(
        ("result", "expected"),
        [(None, None), (True, "1"), (False, "0"), (-20, "-20"), ((2, -3), "2 -3"), ("Den", "Den")],
    )
    def test_format(self, result: object, expected: str | None) -> None:
        assert _format(result) == expected


class TestPerform:
    @pytest.fixture
    async def client(self, tmp_path: Path):
        await event_bus.clear()
        sim = HlxSimulator(host="127.0.0.1", port=0, backup_path=tmp_path / "cli.db", autosave_interval=0)
        await sim.start()
        hlx = HlxClient(request_timeout=2.0, handshake_timeout=2.0)
        await hlx.connect("127.0.0.1", sim.port)
        yield hlx
        await hlx.disconnect()
        await sim.stop()
        await event_bus.clear()

    async def test_set_then_get(self, client: HlxClient) -> None:
        await perform(client, parse_args(["--zone", "3", "--set-volume", "-20", "x"]))
        assert await perform(client, parse_args(["--zone", "3", "--get-volume", "x"])) == -20
        assert await perform(client, parse_args(["--zone", "3", "--get-mute", "x"])) is False

    async def test_set_bass_keeps_treble(self, client: HlxClient) -> None:
        await perform(client, parse_args(["--zone", "2", "--set-treble", "4", "x"]))
        await perform(client, parse_args(["--zone", "2", "--set-bass", "-2", "x"]))
        assert await perform(client, parse_args(["--zone", "2", "--get-treble", "x"])) == 4
        assert await perform(client, parse_args(["--zone", "2", "--get-bass", "x"])) == -2

    async def test_source_name(self, client: HlxClient) -> None:
        await perform(client, parse_args(["--source", "2", "--set-name", "Tuner", "x"]))
        assert await perform(client, parse_args(["--source", "2", "--get-name", "x"])) == "Tuner"


class TestSimulatorArgs:
    def test_defaults(self) -> None:
        args = simulator_main.parse_args([])
        assert args.port is None
        assert args.verbose is False

    def test_overrides(self) -> None:
        args = simulator_main.parse_args(["-p", "2323", "--host", "127.0.0.1", "-b", "/tmp/x.db", "-v"])
        assert args.port == 2323
        assert args.host == "127.0.0.1"
        assert args.verbose is True
