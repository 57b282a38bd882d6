"""
Tests for the HLX wire protocol: framing, telnet filter, dispatch table,
command codec, connection identifiers and the greeting.
"""

import pytest

from openhlx.core import InvalidArgumentError, NotFoundError
from openhlx.protocol import commands
from openhlx.protocol.connection import format_greeting, parse_greeting
from openhlx.protocol.dispatch import CommandPattern, DispatchTable
from openhlx.protocol.framing import (
    DO,
    IAC,
    WILL,
    WONT,
    DONT,
    SB,
    SE,
    Framer,
    Role,
    TelnetFilter,
    encode_request,
    encode_response,
)
from openhlx.protocol.identifiers import SchemeIdentifierManager

# -----------------------------------------------------------------------------
# Framing
# -----------------------------------------------------------------------------


class TestFraming:
    def test_encode(self) -> None:
        assert encode_request("VO3U") == b"[VO3U]\r\n"
        assert encode_response("VO3R-9") == b"(VO3R-9)\r\n"

    def test_single_frame(self) -> None:
        frames = Framer().feed(b"[QO3]\r\n")
        assert len(frames) == 1
        assert frames[0].role is Role.REQUEST
        assert frames[0].payload == "QO3"

    def test_several_frames_in_one_read(self) -> None:
        frames = Framer().feed(b"(VUMO3)\r\n(VO3R-9)\r\n")
        assert [(f.role, f.payload) for f in frames] == [
            (Role.RESPONSE, "VUMO3"),
            (Role.RESPONSE, "VO3R-9"),
        ]

    def test_frame_split_across_reads(self) -> None:
        framer = Framer()
        assert framer.feed(b"[VO3") == []
        assert framer.pending == "[VO3"
        frames = framer.feed(b"R-20]\r\n")
        assert [f.payload for f in frames] == ["VO3R-20"]

    def test_noise_between_frames_is_discarded(self) -> None:
        frames = Framer().feed(b"garbage\r\n\r\n[QE]junk")
        assert [f.payload for f in frames] == ["QE"]

    def test_delimiter_inside_quoted_name(self) -> None:
        frames = Framer().feed(b'[NO1"Den (back)"]\r\n')
        assert [f.payload for f in frames] == ['NO1"Den (back)"']

    def test_unbalanced_quotes_end_at_line_terminator(self) -> None:
        framer = Framer()
        frames = framer.feed(b'[NO1"a"b"]\r\n[QVO1]\r\n')
        assert [f.payload for f in frames] == ['NO1"a"b"', "QVO1"]
        assert framer.pending == ""

    def test_unbalanced_quotes_in_response(self) -> None:
        frames = Framer().feed(b'(NO1"aaaaaaaaaaaaaaa"")\r\n(VO2R-80)\r\n')
        assert [f.payload for f in frames] == ['NO1"aaaaaaaaaaaaaaa""', "VO2R-80"]

    def test_unbalanced_quote_waits_for_terminator(self) -> None:
        framer = Framer()
        assert framer.feed(b'[NO1"a]') == []
        frames = framer.feed(b"\r\n[QX]\r\n")
        assert [f.payload for f in frames] == ['NO1"a', "QX"]

    def test_frame_without_end_delimiter_is_dropped(self) -> None:
        frames = Framer().feed(b"[QO1\r\n[QO2]\r\n")
        assert [f.payload for f in frames] == ["QO2"]


class TestTelnetFilter:
    def test_plain_data_passes(self) -> None:
        clean, replies = TelnetFilter().feed(b"[QX]\r\n")
        assert clean == b"[QX]\r\n"
        assert replies == b""

    def test_refuses_options(self) -> None:
        data = bytes((IAC, DO, 1, IAC, WILL, 3)) + b"[QX]"
        clean, replies = TelnetFilter().feed(data)
        assert clean == b"[QX]"
        assert replies == bytes((IAC, WONT, 1, IAC, DONT, 3))

    def test_sequence_split_across_reads(self) -> None:
        telnet = TelnetFilter()
        assert telnet.feed(bytes((IAC,))) == (b"", b"")
        clean, replies = telnet.feed(bytes((DO, 24)) + b"x")
        assert clean == b"x"
        assert replies == bytes((IAC, WONT, 24))

    def test_subnegotiation_is_dropped(self) -> None:
        data = b"a" + bytes((IAC, SB, 24, 1, 2, IAC, SE)) + b"b"
        assert TelnetFilter().feed(data) == (b"ab", b"")

    def test_escaped_iac(self) -> None:
        assert TelnetFilter().feed(bytes((IAC, IAC))) == (bytes((IAC,)), b"")


# -----------------------------------------------------------------------------
# Dispatch
# -----------------------------------------------------------------------------


class TestCommandPattern:
    def test_match_count_is_checked(self) -> None:
        with pytest.raises(InvalidArgumentError):
            CommandPattern("bad", r"VO(\d+)", 3)

    def test_full_match_only(self) -> None:
        pattern = CommandPattern("query", r"QO(\d+)", 2)
        assert pattern.match("QO3") is not None
        assert pattern.match("QO3X") is None
        assert pattern.match("XQO3") is None


class TestDispatchTable:
    def test_first_registration_wins(self) -> None:
        table: DispatchTable[str] = DispatchTable()
        table.register(CommandPattern("specific", r"VO1R(-?\d+)", 2), "specific")
        table.register(CommandPattern("general", r"VO(\d+)R(-?\d+)", 3), "general")

        found = table.lookup("VO1R-5")
        assert found is not None
        registration, match = found
        assert registration.handler == "specific"
        assert match.group(1) == "-5"

    def test_duplicate_rejected(self) -> None:
        table: DispatchTable[str] = DispatchTable()
        table.register(commands.ZONE_QUERY, "a")
        with pytest.raises(InvalidArgumentError):
            table.register(commands.ZONE_QUERY, "b")

    def test_no_match(self) -> None:
        table: DispatchTable[str] = DispatchTable()
        table.register(commands.ZONE_QUERY, "a")
        assert table.lookup("QG1") is None

    def test_unregister(self) -> None:
        table: DispatchTable[str] = DispatchTable()
        table.register(commands.ZONE_QUERY, "a")
        assert commands.ZONE_QUERY in table
        assert table.unregister(commands.ZONE_QUERY) is True
        assert len(table) == 0
        assert table.unregister(commands.ZONE_QUERY) is False


# -----------------------------------------------------------------------------
# Command codec
# -----------------------------------------------------------------------------


class TestCommandCodec:
    @pytest.mark.parametrize(
        ("payload", "pattern"),
        [
            (commands.zone_volume(3, -9), commands.ZONE_VOLUME),
            (commands.zone_volume_up(3), commands.ZONE_VOLUME_UP),
            (commands.zone_mute(3, True), commands.ZONE_MUTE),
            (commands.zone_mute(3, False), commands.ZONE_MUTE),
            (commands.zone_toggle_mute(3), commands.ZONE_TOGGLE_MUTE),
            (commands.zone_volume_locked(3, True), commands.ZONE_VOLUME_LOCKED),
            (commands.zone_name(3, "Den"), commands.ZONE_NAME),
            (commands.zone_balance(3, -10), commands.ZONE_BALANCE),
            (commands.zone_balance(3, 0), commands.ZONE_BALANCE),
            (commands.zone_balance_adjust(3, "R"), commands.ZONE_BALANCE_ADJUST),
            (commands.zone_tone(3, -2, 4), commands.ZONE_TONE),
            (commands.zone_equalizer_band(3, 10, -1), commands.ZONE_EQUALIZER_BAND),
            (commands.zone_sound_mode(3, 2), commands.ZONE_SOUND_MODE),
            (commands.zone_highpass(3, 80), commands.ZONE_HIGHPASS),
            (commands.group_mute(2, False), commands.GROUP_MUTE),
            (commands.group_add_zone(2, 11), commands.GROUP_ADD_ZONE),
            (commands.group_clear_all(), commands.GROUP_CLEAR_ALL),
            (commands.equalizer_preset_band(1, 2, 3), commands.EQUALIZER_PRESET_BAND),
            (commands.network_mac("00-50-C2-D8-20-01"), commands.NETWORK_MAC),
            (commands.configuration_will("LOAD"), commands.CONFIGURATION_LOADING),
            (commands.configuration_progress("SAVE", 1, 2), commands.CONFIGURATION_SAVING_PROGRESS),
        ],
    )
    def test_composed_payload_matches_its_pattern(self, payload: str, pattern: CommandPattern) -> None:
        assert pattern.match(payload) is not None

    def test_concrete_forms(self) -> None:
        assert commands.zone_volume(3, -9) == "VO3R-9"
        assert commands.zone_mute(3, True) == "VMO3"
        assert commands.zone_mute(3, False) == "VUMO3"
        assert commands.zone_source(1, 4) == "CO1I4"
        assert commands.group_volume(2, -40) == "VG2R-40"
        assert commands.configuration_will("SAVE") == "SAVING..."

    def test_unmute_and_volume_up_are_distinct(self) -> None:
        assert commands.ZONE_MUTE.match("VUMO3") is not None
        assert commands.ZONE_VOLUME_UP.match("VUMO3") is None
        assert commands.ZONE_MUTE.match("VO3U") is None

    def test_name_may_not_contain_quotes(self) -> None:
        assert commands.ZONE_NAME.match('NO1"Den"') is not None
        assert commands.ZONE_NAME.match('NO1"aaa""b"') is None

    def test_name_is_quoted_and_truncated(self) -> None:
        assert commands.zone_name(1, "Living Room Upstairs") == 'NO1"Living Room Upst"'

    @pytest.mark.parametrize(("balance", "wire"), [(-80, "L80"), (-1, "L1"), (0, "C"), (15, "R15")])
    def test_balance_wire(self, balance: int, wire: str) -> None:
        assert commands.balance_to_wire(balance) == wire
        assert commands.balance_from_wire(wire) == balance

    def test_balance_zero_offsets_mean_centre(self) -> None:
        assert commands.balance_from_wire("L0") == 0
        assert commands.balance_from_wire("R0") == 0

    def test_malformed_balance(self) -> None:
        with pytest.raises(InvalidArgumentError):
            commands.balance_from_wire("X3")

    @pytest.mark.parametrize(("numerator", "denominator", "expected"), [(0, 2, 0), (1, 2, 50), (1, 3, 33), (2, 2, 100)])
    def test_percent_truncates(self, numerator: int, denominator: int, expected: int) -> None:
        assert commands.percent(numerator, denominator) == expected

    def test_percent_rejects_zero_denominator(self) -> None:
        with pytest.raises(InvalidArgumentError):
            commands.percent(1, 0)


# -----------------------------------------------------------------------------
# Connection identifiers and greeting
# -----------------------------------------------------------------------------


class TestSchemeIdentifierManager:
    def test_lowest_free_identifier_is_reused(self) -> None:
        identifiers = SchemeIdentifierManager()
        assert identifiers.claim("telnet") == 1
        assert identifiers.claim("telnet") == 2
        identifiers.release("telnet", 1)
        assert identifiers.claim("telnet") == 1
        assert identifiers.claim("telnet") == 3

    def test_schemes_are_independent(self) -> None:
        identifiers = SchemeIdentifierManager()
        identifiers.claim("telnet")
        assert identifiers.claim("tcp") == 1

    def test_release_unclaimed(self) -> None:
        with pytest.raises(NotFoundError):
            SchemeIdentifierManager().release("telnet", 4)

    def test_empty_scheme(self) -> None:
        with pytest.raises(InvalidArgumentError):
            SchemeIdentifierManager().claim("")


class TestGreeting:
    def test_format(self) -> None:
        assert format_greeting("telnet", 1) == b"telnet_client_1: connected\r\n"

    def test_parse(self) -> None:
        assert parse_greeting(b"telnet_client_12: connected\r\n") == ("telnet", 12)

    def test_parse_rejects_other_lines(self) -> None:
        assert parse_greeting(b"(VO3R-9)\r\n") is None
