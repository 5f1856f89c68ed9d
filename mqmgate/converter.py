"""Register conversion helpers and the converter interfaces."""

from __future__ import annotations

import abc
import re
import struct
import sys
from collections.abc import Iterable

from .mqttvalue import MqttValue, _scan_double

_C_SPACE = " \t\n\x0b\x0c\r"
_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
_INT32_MIN, _INT32_MAX = -(2**31), 2**31 - 1


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


def _to_uint16(value: int) -> int:
    return int(value) & 0xFFFF


def to_double(arg: str) -> float:
    """Parse the leading floating point number in ``arg``."""
    scanned = _scan_double(arg)
    if scanned is None:
        raise ValueError(f"Cannot convert {arg!r} to double")
    return scanned[0]


def to_int(arg: str, base: int = 10) -> int:
    """Parse the leading integer in ``arg`` written in ``base``."""
    if not 2 <= base <= 36:
        raise ValueError("base must be between 2 and 36")
    prefix = "(?:0[xX])?" if base == 16 else ""
    pattern = rf"[{_C_SPACE}]*([+-]?){prefix}([{_DIGITS[:base]}]+)"
    match = re.match(pattern, arg, re.IGNORECASE)
    if match is None:
        raise ValueError(f"Cannot convert {arg!r} to int")
    value = int(match.group(2), base)
    if match.group(1) == "-":
        value = -value
    if not _INT32_MIN <= value <= _INT32_MAX:
        raise ValueError(f"Value {arg!r} is out of int range")
    return value


def get_arg(index: int, args) -> str:
    """Return the converter argument at ``index``."""
    if 0 <= index < len(args):
        return args[index]
    raise IndexError("Not enough arguments for converter")


def get_int_arg(index: int, args) -> int:
    return to_int(get_arg(index, args))


def get_double_arg(index: int, args) -> float:
    return to_double(get_arg(index, args))


def get_hex16_arg(index: int, args) -> int:
    """Return the converter argument at ``index`` as a 16-bit hex mask."""
    value = to_int(get_arg(index, args), 16)
    if not 0 <= value <= 0xFFFF:
        raise ValueError("value out of range")
    return value


def registers_to_int32(data: Iterable[int], low_first: bool) -> int:
    """Combine one or two registers into a signed 32-bit number."""
    registers = list(data)
    if not registers:
        raise ValueError("No registers to convert")
    high, low = (1, 0) if low_first and len(registers) > 1 else (0, 1)
    value = registers[high]
    if len(registers) > 1:
        value = (value << 16) + registers[low]
    return _to_int32(value)


def int32_to_registers(value: int, low_first: bool, register_count: int) -> list[int]:
    """Split a 32-bit number into one or two registers."""
    registers = [value & 0xFFFF]
    if register_count == 2:
        high = (value >> 16) & 0xFFFF
        if low_first:
            registers.append(high)
        else:
            registers.insert(0, high)
    return registers


def swap_byte_order(value: int) -> int:
    """Swap the two bytes of a register."""
    return ((value & 0x00FF) << 8) | ((value & 0xFF00) >> 8)


def swap_registers_byte_order(registers: Iterable[int]) -> list[int]:
    return [swap_byte_order(register) for register in registers]


def to_network_byte_order(registers: Iterable[int]) -> list[int]:
    """Return registers whose in-memory bytes are in network order."""
    if sys.byteorder == "little":
        return swap_registers_byte_order(registers)
    return [_to_uint16(register) for register in registers]


def to_float(high_register: int, low_register: int, swap_bytes: bool = False) -> float:
    """Interpret two registers, high word first, as an IEEE 754 single."""
    registers = [high_register, low_register]
    if swap_bytes:
        registers = swap_registers_byte_order(registers)
    raw = registers_to_int32(registers, False) & 0xFFFFFFFF
    return struct.unpack(">f", struct.pack(">I", raw))[0]


def ltrim(text: str) -> str:
    return text.lstrip(_C_SPACE)


def rtrim(text: str) -> str:
    return text.rstrip(_C_SPACE)


def trim(text: str) -> str:
    return text.strip(_C_SPACE)


class ModbusRegisters:
    """An ordered list of 16-bit register values."""

    __slots__ = ("_registers",)

    def __init__(self, values: int | Iterable[int] = ()) -> None:
        if isinstance(values, int):
            values = (values,)
        self._registers = [_to_uint16(value) for value in values]

    def __len__(self) -> int:
        return len(self._registers)

    def __getitem__(self, index: int) -> int:
        return self._registers[index]

    def __setitem__(self, index: int, value: int) -> None:
        self._registers[index] = _to_uint16(value)

    def __iter__(self):
        return iter(self._registers)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ModbusRegisters):
            return NotImplemented
        return self._registers == other._registers

    __hash__ = None

    def __repr__(self) -> str:
        return f"ModbusRegisters({self._registers!r})"

    def append(self, value: int) -> None:
        self._registers.append(_to_uint16(value))

    def prepend(self, value: int) -> None:
        self._registers.insert(0, _to_uint16(value))

    def values(self) -> list[int]:
        return list(self._registers)


class DataConverter:
    """Converts between register values and MQTT values.

    Converters support one direction or both; a direction a converter
    does not override raises ``TypeError``.
    """

    args: list[str] = []

    def set_args(self, args) -> None:
        """Remember the converter arguments."""
        self.args = [str(arg) for arg in args]

    def to_mqtt(self, data: ModbusRegisters) -> MqttValue:
        raise TypeError(
            f"{type(self).__name__} cannot convert {len(data)} register value(s) "
            "to an mqtt value"
        )

    def to_modbus(self, value: MqttValue, register_count: int) -> ModbusRegisters:
        raise TypeError(
            f"{type(self).__name__} cannot convert an mqtt value "
            f"to {register_count} modbus register value(s)"
        )


class ConverterPlugin(abc.ABC):
    """A named collection of converters."""

    @abc.abstractmethod
    def name(self) -> str:
        """Return the plugin name."""

    @abc.abstractmethod
    def get_converter(self, name: str) -> DataConverter | None:
        """Return a new converter called ``name``."""