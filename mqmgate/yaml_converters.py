"""Parsers for scalar configuration values."""

from __future__ import annotations

import enum
import re
from datetime import timedelta

from .exceptions import ConfigurationException

_INT32_MIN, _INT32_MAX = -(2**31), 2**31 - 1
_DURATION_RE = re.compile(r"([0-9]+)(ms|s|min)")
_RANGE_RE = re.compile(r"\s*([0-9]+)-([0-9]+)\s*")
_NUMBER_RE = re.compile(r"[ \t\n\x0b\x0c\r]*[+-]?[0-9]+")


class RtuSerialMode(enum.Enum):
    RS232 = "rs232"
    RS485 = "rs485"


class RtuRtsMode(enum.Enum):
    DOWN = "down"
    UP = "up"


def parse_rtu_serial_mode(text) -> RtuSerialMode:
    try:
        return RtuSerialMode(str(text))
    except ValueError:
        raise ConfigurationException(f"Invalid serial mode {text}") from None


def parse_rtu_rts_mode(text) -> RtuRtsMode:
    try:
        return RtuRtsMode(str(text))
    except ValueError:
        raise ConfigurationException(f"Invalid RTS mode {text}") from None


def _check_int32(value: int) -> int:
    if not _INT32_MIN <= value <= _INT32_MAX:
        raise ConfigurationException(
            "Conversion to number or number list contains number that is out of range"
        )
    return value


def parse_duration(text) -> timedelta:
    """Parse a duration such as ``100ms``, ``5s`` or ``2min``."""
    match = _DURATION_RE.fullmatch(str(text))
    if match is None:
        raise ConfigurationException("Invalid time specification")
    value = int(match.group(1))
    if value > _INT32_MAX:
        raise ConfigurationException("Invalid time specification")
    unit = match.group(2)
    if unit == "s":
        value *= 1000
    elif unit == "min":
        value *= 1000 * 60
    return timedelta(milliseconds=value)


def _to_number(text: str) -> int:
    match = _NUMBER_RE.match(text)
    if match is None:
        raise ConfigurationException(
            f"Conversion to number or number list failed for [{text}]"
        )
    value = _check_int32(int(match.group(0)))
    if match.end() != len(text):
        raise ConfigurationException(
            f"Conversion to number failed, unknown char at {match.end()} position in {text}"
        )
    return value


def _tokens(text) -> list[str]:
    return [token for token in str(text).strip().split(",") if token]


def parse_number_list(text) -> list[tuple[int, int]]:
    """Parse ``1,2,3-5`` into ``(first, last)`` pairs; a single number gives equal ends."""
    result = []
    for token in _tokens(text):
        match = _RANGE_RE.fullmatch(token)
        if match is not None:
            result.append((_to_number(match.group(1)), _to_number(match.group(2))))
        else:
            number = _to_number(token)
            result.append((number, number))
    return result


def parse_string_list(text) -> list[str]:
    """Parse a comma separated list of names, trimming each one."""
    return [token.strip() for token in _tokens(text)]