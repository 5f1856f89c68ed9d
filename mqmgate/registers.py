"""Modbus register ranges, poll and write commands, and MQTT commands."""

from __future__ import annotations

import abc
import enum
import time
from datetime import timedelta

from .converter import DataConverter, ModbusRegisters


class RegisterType(enum.Enum):
    """Kind of modbus register."""

    COIL = "coil"
    BIT = "bit"
    HOLDING = "holding"
    INPUT = "input"


class PublishMode(enum.IntEnum):
    """When object state is published to MQTT."""

    ON_CHANGE = 1
    EVERY_POLL = 2


def _as_duration(value) -> timedelta:
    if isinstance(value, timedelta):
        return value
    return timedelta(milliseconds=value)


class ModbusAddressRange:
    """A run of consecutive registers of one type."""

    def __init__(self, register: int, register_type: RegisterType, count: int = 1) -> None:
        self.register = register
        self.register_type = register_type
        self.count = count

    def last_register(self) -> int:
        return self.register + self.count - 1

    def overlaps(self, other: ModbusAddressRange) -> bool:
        """Return True if both ranges share at least one register of the same type."""
        if self.register_type != other.register_type:
            return False
        return self.register <= other.last_register() and other.register <= self.last_register()

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(register={self.register}, "
            f"register_type={self.register_type.name}, count={self.count})"
        )


class ModbusSlaveAddressRange(ModbusAddressRange):
    """A register range on a specific slave."""

    def __init__(
        self, slave_id: int, register: int, register_type: RegisterType, count: int = 1
    ) -> None:
        super().__init__(register, register_type, count)
        self.slave_id = slave_id

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(slave_id={self.slave_id}, register={self.register}, "
            f"register_type={self.register_type.name}, count={self.count})"
        )


class MsgRegisterValues(ModbusSlaveAddressRange):
    """Register values read from or to be written to a slave."""

    def __init__(
        self,
        slave_id: int,
        register_type: RegisterType,
        register: int,
        registers,
        command_id: int | None = None,
        creation_time: float | None = None,
    ) -> None:
        regs = registers if isinstance(registers, ModbusRegisters) else ModbusRegisters(registers)
        super().__init__(slave_id, register, register_type, len(regs))
        self.registers = regs
        self.command_id = command_id
        self.creation_time = time.monotonic() if creation_time is None else creation_time

    @property
    def has_command_id(self) -> bool:
        return self.command_id is not None


class RegisterCommand(ModbusAddressRange, abc.ABC):
    """A read or write operation on a slave's registers."""

    def __init__(
        self, slave_id: int, register: int, register_type: RegisterType, count: int
    ) -> None:
        super().__init__(register, register_type, count)
        self.slave_id = slave_id
        self.max_read_retry_count = 0
        self.max_write_retry_count = 0
        self.delay_before_first_command = timedelta(0)
        self.delay_before_command = timedelta(0)

    @property
    @abc.abstractmethod
    def values(self) -> list[int]:
        """Register values of this command."""

    @property
    @abc.abstractmethod
    def executed_ok(self) -> bool:
        """Whether the last execution succeeded."""

    @property
    def has_delay_before_first_command(self) -> bool:
        return self.delay_before_first_command != timedelta(0)

    @property
    def has_delay_before_command(self) -> bool:
        return self.delay_before_command != timedelta(0)

    def has_delay(self) -> bool:
        return self.has_delay_before_command or self.has_delay_before_first_command

    def set_max_retry_counts(self, max_read: int, max_write: int, force: bool = False) -> None:
        """Set retry limits; zero values are ignored unless ``force`` is set."""
        if max_read != 0 or force:
            self.max_read_retry_count = max_read
        if max_write != 0 or force:
            self.max_write_retry_count = max_write


class RegisterPoll(RegisterCommand):
    """Registers read periodically from a slave."""

    DURATION_BETWEEN_LOG_ERROR = timedelta(minutes=5)
    DEFAULT_READ_ERROR_COUNT = 3

    def __init__(
        self,
        slave_id: int,
        register: int,
        register_type: RegisterType,
        count: int,
        refresh,
        publish_mode: PublishMode = PublishMode.ON_CHANGE,
    ) -> None:
        super().__init__(slave_id, register, register_type, count)
        self.publish_mode = publish_mode
        self.refresh = _as_duration(refresh)
        now = time.monotonic()
        self.last_read = now - timedelta(hours=24).total_seconds()
        self.last_read_ok = False
        self.read_errors = 0
        self.first_error_time = now
        self._last_values = [0] * count

    @property
    def values(self) -> list[int]:
        return list(self._last_values)

    @property
    def executed_ok(self) -> bool:
        return self.last_read_ok

    def update(self, values) -> None:
        self._last_values = list(values)
        self.count = len(self._last_values)


class RegisterWrite(RegisterCommand):
    """Registers to be written to a slave."""

    def __init__(
        self,
        slave_id: int,
        register: int,
        register_type: RegisterType,
        values,
    ) -> None:
        regs = values if isinstance(values, ModbusRegisters) else ModbusRegisters(values)
        super().__init__(slave_id, register, register_type, len(regs))
        self.registers = regs
        self.creation_time = time.monotonic()
        self.last_write_ok = False
        self.return_message: MsgRegisterValues | None = None

    @classmethod
    def from_message(cls, message: MsgRegisterValues) -> RegisterWrite:
        write = cls(
            message.slave_id,
            message.register,
            message.register_type,
            ModbusRegisters(message.registers.values()),
        )
        write.creation_time = message.creation_time
        return write

    @property
    def values(self) -> list[int]:
        return self.registers.values()

    @property
    def executed_ok(self) -> bool:
        return self.last_write_ok


class MqttObjectCommand(ModbusSlaveAddressRange):
    """A command topic that writes its payload to modbus registers."""

    class PayloadType(enum.IntEnum):
        STRING = 1

    def __init__(
        self,
        command_id: int,
        topic: str,
        payload_type: MqttObjectCommand.PayloadType,
        network_name: str,
        slave_id: int,
        register_type: RegisterType,
        register: int,
        count: int = 1,
    ) -> None:
        super().__init__(slave_id, register, register_type, count)
        self.command_id = command_id
        self.topic = topic
        self.payload_type = payload_type
        self.network_name = network_name
        self.converter: DataConverter | None = None

    def has_converter(self) -> bool:
        return self.converter is not None