"""MQTT objects built from modbus register values."""

from __future__ import annotations

import enum
import functools
import time
from dataclasses import dataclass, field
from datetime import timedelta

from .converter import DataConverter, ModbusRegisters
from .exceptions import ModMqttProgramException
from .mqttvalue import MqttValue
from .registers import (
    ModbusAddressRange,
    ModbusSlaveAddressRange,
    MsgRegisterValues,
    PublishMode,
    RegisterType,
)


class AvailableFlag(enum.IntEnum):
    """Availability of an MQTT object."""

    NOT_SET = -1
    FALSE = 0
    TRUE = 1


@functools.total_ordering
@dataclass(frozen=True)
class MqttObjectRegisterIdent:
    """Identifies a single register on a slave in a named modbus network."""

    network_name: str
    slave_id: int
    register_type: RegisterType
    register: int

    @classmethod
    def from_range(
        cls, network_name: str, address_range: ModbusSlaveAddressRange
    ) -> MqttObjectRegisterIdent:
        return cls(
            network_name,
            address_range.slave_id,
            address_range.register_type,
            address_range.register,
        )

    def as_address_range(self) -> ModbusAddressRange:
        return ModbusAddressRange(self.register, self.register_type, 1)

    def _sort_key(self):
        return (self.network_name, self.slave_id, self.register, self.register_type.value)

    def __lt__(self, other) -> bool:
        if not isinstance(other, MqttObjectRegisterIdent):
            return NotImplemented
        return self._sort_key() < other._sort_key()


class MqttObjectRegisterValue:
    """Last known value of one register and whether it is being read."""

    __slots__ = ("value", "has_value", "read_ok")

    def __init__(self) -> None:
        self.value = 0
        self.has_value = False
        self.read_ok = True

    @property
    def is_polling(self) -> bool:
        return self.read_ok

    def set_value(self, value: int) -> bool:
        """Store a value; return True if it changed or is the first one."""
        had_value = self.has_value
        self.has_value = True
        if self.value != value:
            self.value = value
            return True
        return not had_value

    def clear_value(self) -> None:
        self.has_value = False

    def set_read_error(self, flag: bool) -> None:
        self.read_ok = not flag


class MqttObjectDataNodeList(list):
    """A list of data nodes that remembers whether it must be output as a list."""

    def __init__(self, iterable=()) -> None:
        super().__init__(iterable)
        self.output_as_list = False


@dataclass(eq=False)
class MqttObjectDataNode:
    """A scalar register value or a composite of child nodes."""

    name: str = ""
    converter: DataConverter | None = None
    ident: MqttObjectRegisterIdent | None = None
    child_nodes: MqttObjectDataNodeList = field(default_factory=MqttObjectDataNodeList)
    value: MqttObjectRegisterValue = field(default_factory=MqttObjectRegisterValue)

    def is_unnamed(self) -> bool:
        return not self.name

    def is_scalar(self) -> bool:
        return len(self.child_nodes) == 0

    def _matches(self, network_name: str, address_range: ModbusSlaveAddressRange) -> bool:
        ident = self._require_ident()
        return (
            address_range.slave_id == ident.slave_id
            and address_range.register_type == ident.register_type
            and network_name == ident.network_name
        )

    def _require_ident(self) -> MqttObjectRegisterIdent:
        if self.ident is None:
            raise ModMqttProgramException("Scalar data node has no register set")
        return self.ident

    def update_register_values(self, network_name: str, message: MsgRegisterValues) -> bool:
        if not self.is_scalar():
            results = [
                node.update_register_values(network_name, message) for node in self.child_nodes
            ]
            return any(results)
        if not self._matches(network_name, message):
            return False
        register = self.ident.register
        if message.register <= register <= message.last_register():
            changed = self.value.set_value(message.registers[register - message.register])
            self.value.set_read_error(False)
            return changed
        return False

    def update_registers_read_failed(
        self, network_name: str, address_range: ModbusSlaveAddressRange
    ) -> bool:
        if not self.is_scalar():
            results = [
                node.update_registers_read_failed(network_name, address_range)
                for node in self.child_nodes
            ]
            return any(results)
        if not self._matches(network_name, address_range):
            return False
        if abs(self.ident.register - address_range.register) < address_range.count:
            self.value.set_read_error(True)
            return True
        return False

    def set_modbus_network_state(self, network_name: str, is_up: bool) -> bool:
        if not self.is_scalar():
            results = [
                node.set_modbus_network_state(network_name, is_up) for node in self.child_nodes
            ]
            return any(results)
        if network_name == self._require_ident().network_name and self.value.is_polling != is_up:
            self.value.set_read_error(not is_up)
            return True
        return False

    def has_register_in(self, network_name: str, address_range: ModbusSlaveAddressRange) -> bool:
        if not self.is_scalar():
            return any(
                node.has_register_in(network_name, address_range) for node in self.child_nodes
            )
        ident = self._require_ident()
        return (
            ident.slave_id == address_range.slave_id
            and address_range.overlaps(ident.as_address_range())
            and ident.network_name == network_name
        )

    def has_all_values(self) -> bool:
        if self.is_scalar():
            self._require_ident()
            return self.value.has_value
        return all(node.has_all_values() for node in self.child_nodes)

    def is_polling(self) -> bool:
        if self.is_scalar():
            return self.value.is_polling
        return all(node.is_polling() for node in self.child_nodes)

    def add_child_data_node(self, node: MqttObjectDataNode, force_list: bool = False) -> None:
        self.child_nodes.append(node)
        self.child_nodes.output_as_list = force_list or len(self.child_nodes) > 1

    def set_scalar_node(self, ident: MqttObjectRegisterIdent) -> None:
        self.ident = ident

    def converted_value(self) -> MqttValue:
        """Return the node value, passed through the converter if there is one."""
        if self.converter is None:
            return MqttValue(self.value.value)
        if self.is_scalar():
            data = ModbusRegisters([self.raw_value()])
        else:
            data = ModbusRegisters(node.raw_value() for node in self.child_nodes)
        return self.converter.to_mqtt(data)

    def raw_value(self) -> int:
        if not self.is_scalar():
            raise ModMqttProgramException("Composite data node has no raw value")
        return self.value.value


class MqttObjectState:
    """The data nodes that make up an object's state."""

    def __init__(self) -> None:
        self.nodes = MqttObjectDataNodeList()

    def has_register_in(self, network_name: str, address_range: ModbusSlaveAddressRange) -> bool:
        return any(node.has_register_in(network_name, address_range) for node in self.nodes)

    def update_register_values(self, network_name: str, message: MsgRegisterValues) -> bool:
        results = [node.update_register_values(network_name, message) for node in self.nodes]
        return any(results)

    def update_registers_read_failed(
        self, network_name: str, address_range: ModbusSlaveAddressRange
    ) -> bool:
        results = [
            node.update_registers_read_failed(network_name, address_range) for node in self.nodes
        ]
        return any(results)

    def set_modbus_network_state(self, network_name: str, is_up: bool) -> bool:
        results = [node.set_modbus_network_state(network_name, is_up) for node in self.nodes]
        return any(results)

    def has_all_values(self) -> bool:
        return all(node.has_all_values() for node in self.nodes)

    def is_polling(self) -> bool:
        return all(node.is_polling() for node in self.nodes)

    def add_data_node(self, node: MqttObjectDataNode, force_list: bool = False) -> None:
        self.nodes.append(node)
        self.nodes.output_as_list = force_list or len(self.nodes) > 1


class MqttObjectAvailability(MqttObjectState):
    """Data nodes whose value tells whether an object is available."""

    def __init__(self) -> None:
        super().__init__()
        self.available_value = MqttValue(1)

    def available_flag(self) -> AvailableFlag:
        if not self.nodes:
            return AvailableFlag.TRUE
        if not self.has_all_values() or not self.is_polling():
            return AvailableFlag.NOT_SET
        if self.nodes[0].converted_value().as_int() != self.available_value.as_int():
            return AvailableFlag.FALSE
        return AvailableFlag.TRUE


class MqttObject:
    """An MQTT topic whose state and availability come from modbus registers."""

    def __init__(self, topic: str) -> None:
        self.topic = topic
        self.state_topic = f"{topic}/state"
        self.availability_topic = f"{topic}/availability"
        self.state = MqttObjectState()
        self.availability = MqttObjectAvailability()
        self.retain = True
        self.publish_mode = PublishMode.ON_CHANGE
        self.last_published_payload = ""
        self._available = AvailableFlag.NOT_SET
        self._last_publish_time: float | None = None
        self._every_poll_period = timedelta(0)

    @property
    def available_flag(self) -> AvailableFlag:
        return self._available

    def has_register_in(self, network_name: str, address_range: ModbusSlaveAddressRange) -> bool:
        return self.state.has_register_in(
            network_name, address_range
        ) or self.availability.has_register_in(network_name, address_range)

    def update_register_values(self, network_name: str, message: MsgRegisterValues) -> None:
        state_changed = self.state.update_register_values(network_name, message)
        avail_changed = self.availability.update_register_values(network_name, message)
        if state_changed or avail_changed or self._available == AvailableFlag.FALSE:
            self._update_available_flag()

    def update_registers_read_failed(
        self, network_name: str, address_range: ModbusSlaveAddressRange
    ) -> None:
        state_changed = self.state.update_registers_read_failed(network_name, address_range)
        avail_changed = self.availability.update_registers_read_failed(
            network_name, address_range
        )
        if state_changed or avail_changed:
            self._update_available_flag()

    def set_modbus_network_state(self, network_name: str, is_up: bool) -> bool:
        state_changed = self.state.set_modbus_network_state(network_name, is_up)
        avail_changed = self.availability.set_modbus_network_state(network_name, is_up)
        if state_changed or avail_changed:
            self._update_available_flag()
            return True
        return False

    def add_availability_data_node(self, node: MqttObjectDataNode) -> None:
        self.availability.add_data_node(node)

    def set_available_value(self, value: MqttValue) -> None:
        self.availability.available_value = value

    def set_last_published_payload(self, payload: str) -> None:
        self.last_published_payload = payload
        self._last_publish_time = time.monotonic()

    def set_publish_mode(self, mode: PublishMode, every_poll_refresh) -> None:
        self.publish_mode = mode
        if not isinstance(every_poll_refresh, timedelta):
            every_poll_refresh = timedelta(milliseconds=every_poll_refresh)
        self._every_poll_period = every_poll_refresh

    def need_state_republish(self) -> bool:
        """In every-poll mode, tell whether the refresh period has passed since the last publish."""
        if self.publish_mode == PublishMode.ON_CHANGE:
            return False
        if self._last_publish_time is None:
            return True
        next_publish = self._last_publish_time + self._every_poll_period.total_seconds()
        return next_publish <= time.monotonic()

    def _update_available_flag(self) -> None:
        if not self.availability.is_polling() or not self.state.is_polling():
            self._available = AvailableFlag.FALSE
        elif not self.availability.has_all_values() or not self.state.has_all_values():
            self._available = AvailableFlag.NOT_SET
        else:
            self._available = self.availability.available_flag()

    def __repr__(self) -> str:
        return f"MqttObject({self.topic!r})"