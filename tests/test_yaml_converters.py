from datetime import timedelta

import pytest

from mqmgate.exceptions import ConfigurationException
from mqmgate.yaml_converters import (
    RtuRtsMode,
    RtuSerialMode,
    parse_duration,
    parse_number_list,
    parse_rtu_rts_mode,
    parse_rtu_serial_mode,
    parse_string_list,
)


def test_serial_modes():
    assert parse_rtu_serial_mode("rs232") is RtuSerialMode.RS232
    assert parse_rtu_serial_mode("rs485") is RtuSerialMode.RS485
    with pytest.raises(ConfigurationException):
        parse_rtu_serial_mode("rs422")


def test_rts_modes():
    assert parse_rtu_rts_mode("up") is RtuRtsMode.UP
    assert parse_rtu_rts_mode("down") is RtuRtsMode.DOWN
    with pytest.raises(ConfigurationException):
        parse_rtu_rts_mode("sideways")


@pytest.mark.parametrize(
    "text, expected",
    [
        ("5ms", timedelta(milliseconds=5)),
        ("100ms", timedelta(milliseconds=100)),
        ("1s", timedelta(seconds=1)),
        ("2min", timedelta(minutes=2)),
    ],
)
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["10", "1h", "ms", "-5ms", " 5ms", "5 ms"])
def test_parse_duration_invalid(text):
    with pytest.raises(ConfigurationException, match="Invalid time specification"):
        parse_duration(text)


def test_slave_set_with_range():
    assert parse_number_list("1, 2-3") == [(1, 1), (2, 3)]


def test_slave_set_with_duplicate_is_parsed():
    assert parse_number_list("1-3,3") == [(1, 3), (3, 3)]


def test_reversed_range_is_parsed_as_is():
    assert parse_number_list("5-1") == [(5, 1)]


def test_single_number_and_int_input():
    assert parse_number_list(1) == [(1, 1)]
    assert parse_number_list("1-2") == [(1, 2)]


def test_empty_tokens_are_skipped():
    assert parse_number_list(" 1,,2 ") == [(1, 1), (2, 2)]


def test_invalid_number():
    with pytest.raises(ConfigurationException, match=r"failed for \[abc\]"):
        parse_number_list("abc")


def test_trailing_garbage():
    with pytest.raises(ConfigurationException, match="unknown char at 1 position"):
        parse_number_list("1x")


def test_out_of_range_number():
    with pytest.raises(ConfigurationException, match="out of range"):
        parse_number_list("99999999999")


def test_network_set():
    assert parse_string_list("local, other") == ["local", "other"]


def test_string_list_single():
    assert parse_string_list("tcptest") == ["tcptest"]