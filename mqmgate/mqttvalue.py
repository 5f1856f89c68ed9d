"""A value published to or received from MQTT."""

from __future__ import annotations

import enum
import math
import re
import struct

from .exceptions import ConvException

NO_PRECISION = -1

_INT32_MIN, _INT32_MAX = -(2**31), 2**31 - 1
_INT64_MIN, _INT64_MAX = -(2**63), 2**63 - 1

_WS = "[ \t\n\x0b\x0c\r]"

_FLOAT_RE = re.compile(
    _WS
    + r"*(?P<num>[+-]?(?:"
    r"0[xX](?:[0-9a-fA-F]+\.?[0-9a-fA-F]*|\.[0-9a-fA-F]+)(?:[pP][+-]?[0-9]+)?"
    r"|(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?"
    r"|inf(?:inity)?"
    r"|nan(?:\([0-9A-Za-z_]*\))?"
    r"))",
    re.IGNORECASE,
)

_INT_AUTO_RE = re.compile(
    _WS
    + r"*(?P<sign>[+-]?)(?:0[xX](?P<hex>[0-9a-fA-F]+)|(?P<oct>0[0-7]*)|(?P<dec>[1-9][0-9]*))"
)

_INT10_RE = re.compile(_WS + r"*(?P<num>[+-]?[0-9]+)")


class SourceType(enum.IntEnum):
    """Kind of data an MqttValue holds."""

    INT = 0
    DOUBLE = 1
    BINARY = 2
    INT64 = 3


def _wrap(value: int, bits: int) -> int:
    mask = (1 << bits) - 1
    value &= mask
    if value >> (bits - 1):
        value -= 1 << bits
    return value


def _clamp64(value: int) -> int:
    return max(_INT64_MIN, min(_INT64_MAX, value))


def _scan_double(text: str) -> tuple[float, int] | None:
    """Parse the longest leading floating point number; return it with its end index."""
    match = _FLOAT_RE.match(text)
    if match is None:
        return None
    num = match.group("num")
    lowered = num.lower()
    if "x" in lowered:
        try:
            value = float.fromhex(num)
        except OverflowError:
            value = -math.inf if num.startswith("-") else math.inf
    elif "nan" in lowered:
        value = math.copysign(math.nan, -1.0 if num.startswith("-") else 1.0)
    else:
        value = float(num)
    return value, match.end()


class MqttValue:
    """A number or binary payload with conversions between representations."""

    __slots__ = ("_type", "_number", "_data", "_precision")

    def __init__(self, value=0, precision: int = NO_PRECISION) -> None:
        self._type = SourceType.INT
        self._number: int | float = 0
        self._data = b""
        self._precision = NO_PRECISION
        if isinstance(value, MqttValue):
            self._type = value._type
            self._number = value._number
            self._data = value._data
            self._precision = value._precision
        elif isinstance(value, int):
            if _INT32_MIN <= value <= _INT32_MAX:
                self.set_int(value)
            else:
                self.set_int64(value)
        elif isinstance(value, float):
            self.set_double(value, precision)
        elif isinstance(value, str):
            self.set_string(value)
        elif isinstance(value, (bytes, bytearray, memoryview)):
            self.set_binary(value)
        else:
            raise TypeError(f"Unsupported value type {type(value).__name__}")

    @classmethod
    def from_int(cls, value: int) -> MqttValue:
        ret = cls()
        ret.set_int(value)
        return ret

    @classmethod
    def from_int64(cls, value: int) -> MqttValue:
        ret = cls()
        ret.set_int64(value)
        return ret

    @classmethod
    def from_double(cls, value: float, precision: int = NO_PRECISION) -> MqttValue:
        ret = cls()
        ret.set_double(value, precision)
        return ret

    @classmethod
    def from_binary(cls, data) -> MqttValue:
        ret = cls()
        ret.set_binary(data)
        return ret

    @classmethod
    def from_string(cls, text: str) -> MqttValue:
        ret = cls()
        ret.set_string(text)
        return ret

    def set_int(self, value: int) -> None:
        self._number = _wrap(int(value), 32)
        self._type = SourceType.INT

    def set_int64(self, value: int) -> None:
        self._number = _wrap(int(value), 64)
        self._type = SourceType.INT64

    def set_double(self, value: float, precision: int = NO_PRECISION) -> None:
        self._number = float(value)
        self._precision = precision
        self._type = SourceType.DOUBLE

    def set_string(self, text: str) -> None:
        self._data = text.encode("utf-8", errors="surrogateescape")
        self._type = SourceType.BINARY

    def set_binary(self, data) -> None:
        self._data = bytes(data)
        self._type = SourceType.BINARY

    @property
    def source_type(self) -> SourceType:
        return self._type

    @property
    def precision(self) -> int:
        return self._precision

    def as_string(self) -> str:
        if self._type is SourceType.BINARY:
            return self._data.decode("utf-8", errors="surrogateescape")
        if self._type is SourceType.DOUBLE:
            return self._format_double()
        return str(self._number)

    def as_double(self) -> float:
        if self._type is SourceType.BINARY:
            text = self.as_string()
            if text == "":
                return 0.0
            scanned = _scan_double(text)
            if scanned is None or scanned[1] != len(text):
                raise ConvException(f"Cannot convert {text} to double")
            return scanned[0]
        return float(self._number)

    def as_int(self) -> int:
        if self._type is SourceType.BINARY:
            text = self.as_string()
            if text == "":
                return 0
            match = _INT_AUTO_RE.fullmatch(text)
            if match is None:
                raise ConvException(f"Cannot convert {text} to int")
            if match.group("hex") is not None:
                value = int(match.group("hex"), 16)
            elif match.group("oct") is not None:
                value = int(match.group("oct"), 8)
            else:
                value = int(match.group("dec"))
            if match.group("sign") == "-":
                value = -value
            return _wrap(_clamp64(value), 32)
        if self._type is SourceType.DOUBLE:
            if not math.isfinite(self._number):
                raise ConvException(f"Cannot convert {self._number} to int")
            return _wrap(int(self._number), 32)
        return _wrap(int(self._number), 32)

    def as_uint16(self) -> int:
        value = self.as_int()
        if not 0 <= value <= 0xFFFF:
            raise ConvException(f"Conversion failed, value {value} out of range")
        return value

    def as_int64(self) -> int:
        if self._type is SourceType.BINARY:
            text = self.as_string()
            if text == "":
                return 0
            match = _INT10_RE.fullmatch(text)
            if match is None:
                raise ConvException(f"Cannot convert {text} to int64")
            return _clamp64(int(match.group("num")))
        if self._type is SourceType.DOUBLE:
            if not math.isfinite(self._number):
                raise ConvException(f"Cannot convert {self._number} to int64")
            return _wrap(int(self._number), 64)
        return int(self._number)

    def as_bytes(self) -> bytes:
        """Return the raw payload; numbers are packed in native byte order."""
        if self._type is SourceType.BINARY:
            return bytes(self._data)
        if self._type is SourceType.INT:
            return struct.pack("=i", self._number)
        if self._type is SourceType.INT64:
            return struct.pack("=q", self._number)
        return struct.pack("=d", self._number)

    def _format_double(self) -> str:
        value = self._number
        if self._precision == NO_PRECISION and math.isfinite(value) and value.is_integer():
            return str(int(value))
        digits = 6 if self._precision < 0 else self._precision
        return f"{value:.{digits}f}"

    def _key(self):
        if self._type is SourceType.BINARY:
            return (self._type, self._data)
        if self._type is SourceType.DOUBLE:
            return (self._type, self._number, self._precision)
        return (self._type, self._number)

    def __eq__(self, other) -> bool:
        if not isinstance(other, MqttValue):
            return NotImplemented
        return self._key() == other._key()

    __hash__ = None

    def __repr__(self) -> str:
        return f"MqttValue({self._type.name}, {self.as_string()!r})"