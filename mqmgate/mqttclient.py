"""Publishes modbus register data as MQTT objects and forwards MQTT commands."""

from __future__ import annotations

import enum
import logging
from typing import Callable

from . import mqttpayload
from .converter import DataConverter, ModbusRegisters
from .exceptions import (
    ConvException,
    ModMqttProgramException,
    MosquittoException,
    MqttPayloadConversionException,
    ObjectCommandNotFoundException,
)
from .mosquitto import BrokerConfig, Mosquitto, MqttImpl
from .mqttobject import AvailableFlag, MqttObject, MqttObjectRegisterIdent
from .mqttvalue import MqttValue
from .registers import (
    ModbusSlaveAddressRange,
    MqttObjectCommand,
    MsgRegisterValues,
    PublishMode,
)

log = logging.getLogger(__name__)


class State(enum.Enum):
    """Connection state of the MQTT client."""

    DISCONNECTED = 0
    CONNECTING = 1
    CONNECTED = 2
    DISCONNECTING = 3


def create_mqtt_value(command: MqttObjectCommand, payload) -> MqttValue:
    """Wrap a received command payload in an MqttValue."""
    if command.payload_type == MqttObjectCommand.PayloadType.STRING:
        if isinstance(payload, str):
            return MqttValue.from_string(payload)
        return MqttValue.from_binary(b"" if payload is None else payload)
    raise MqttPayloadConversionException(
        f"Conversion failed, unknown payload type{int(command.payload_type)}"
    )


class MqttClient:
    """Keeps MQTT objects in sync with modbus data and routes commands to modbus clients."""

    def __init__(
        self,
        impl: MqttImpl | None = None,
        default_converter: DataConverter | None = None,
        on_disconnected: Callable[[], None] | None = None,
    ) -> None:
        self._impl = impl if impl is not None else Mosquitto()
        self._default_converter = default_converter
        self._on_disconnected = on_disconnected
        self._broker_config = BrokerConfig()
        self._modbus_clients: list = []
        self._state = State.DISCONNECTED
        self._is_started = False
        self._objects: dict[MqttObjectRegisterIdent, list[MqttObject]] = {}
        self._command_objects: dict[int, list[MqttObject]] = {}
        self._commands: dict[str, MqttObjectCommand] = {}

    @property
    def is_started(self) -> bool:
        return self._is_started

    @property
    def is_connected(self) -> bool:
        return self._state is State.CONNECTED

    @property
    def connection_state(self) -> State:
        return self._state

    @property
    def broker_config(self) -> BrokerConfig:
        return self._broker_config

    @property
    def commands(self) -> dict[str, MqttObjectCommand]:
        return dict(self._commands)

    def set_client_id(self, client_id: str) -> None:
        if self._is_started:
            raise MosquittoException("Cannot change client id when started")
        self._impl.init(self, client_id)

    def set_broker_config(self, config: BrokerConfig) -> None:
        if not self._broker_config.is_same_as(config):
            self._broker_config = config

    def set_modbus_clients(self, clients) -> None:
        self._modbus_clients = list(clients)

    def start(self) -> None:
        # guards against re-entry from the main loop
        if self._state is State.CONNECTED:
            return
        self._is_started = True
        self._state = State.CONNECTING
        self._impl.connect(self._broker_config)

    def shutdown(self) -> None:
        # modbus clients are already stopped; do not queue anything for them
        self._modbus_clients = []
        if self._state is State.CONNECTED:
            log.info("Disconnecting from mqtt broker")
            self._state = State.DISCONNECTING
            self._impl.disconnect()
        elif self._state is State.CONNECTING:
            log.info("Cancelling connection request")
            self._is_started = False
        elif self._state is State.DISCONNECTING:
            log.info("Shutdown already in progress, waiting for clean disconnect")
        else:
            self._is_started = False
            self._state = State.DISCONNECTED

    def reconnect(self) -> None:
        self._impl.reconnect()

    def set_objects(self, objects) -> None:
        self._objects = {ident: list(objs) for ident, objs in dict(objects).items()}

    def set_command_objects(self, command_objects) -> None:
        self._command_objects = {cid: list(objs) for cid, objs in dict(command_objects).items()}

    def add_command(self, command: MqttObjectCommand) -> None:
        self._commands.setdefault(command.topic, command)

    def _sorted_object_lists(self):
        return (self._objects[ident] for ident in sorted(self._objects))

    def publish_all(self) -> None:
        """Publish state and availability of every object once."""
        published: set[int] = set()
        for objects in self._sorted_object_lists():
            for obj in objects:
                if id(obj) in published:
                    continue
                if obj.available_flag == AvailableFlag.TRUE:
                    self.publish_state(obj, True)
                self.publish_availability_change(obj)
                published.add(id(obj))

    def publish_state(self, obj: MqttObject, force: bool = False) -> None:
        if obj.available_flag != AvailableFlag.TRUE:
            return
        payload = mqttpayload.generate(obj)
        if payload != obj.last_published_payload or force:
            log.debug("Publish on topic %s: %s", obj.state_topic, payload)
            self._impl.publish(obj.state_topic, payload.encode("utf-8"), obj.retain)
            obj.set_last_published_payload(payload)

    def publish_availability_change(self, obj: MqttObject) -> None:
        flag = obj.available_flag
        if flag == AvailableFlag.NOT_SET:
            return
        self._impl.publish(
            obj.availability_topic, b"1" if flag == AvailableFlag.TRUE else b"0", True
        )

    def process_register_values(self, network_name: str, message: MsgRegisterValues) -> None:
        if not self.is_connected:
            # retained messages keep the last known value on the broker
            log.debug("Mqtt broker not connected, dropping register values")
            return

        if message.has_command_id:
            affected = self._command_objects.get(message.command_id)
        else:
            ident = MqttObjectRegisterIdent.from_range(network_name, message)
            affected = self._objects.get(ident)
            if affected is None:
                raise ModMqttProgramException(f"No objects registered for {ident}")

        if affected is None:
            log.debug("No affected objects for received register values")
            return

        for obj in affected:
            old_avail = obj.available_flag
            obj.update_register_values(network_name, message)
            new_avail = obj.available_flag

            if old_avail != new_avail:
                if new_avail == AvailableFlag.TRUE:
                    if obj.retain:
                        self.publish_state(obj, True)
                    else:
                        if old_avail == AvailableFlag.NOT_SET:
                            # delete the retained message left on the broker
                            self._impl.publish(obj.state_topic, None, True)
                            obj.set_last_published_payload(mqttpayload.generate(obj))
                        if obj.publish_mode == PublishMode.EVERY_POLL:
                            self.publish_state(obj, True)
                self.publish_availability_change(obj)
            else:
                self.publish_state(obj, obj.need_state_republish())

    def process_registers_operation_failed(
        self, network_name: str, address_range: ModbusSlaveAddressRange
    ) -> None:
        ident = MqttObjectRegisterIdent.from_range(network_name, address_range)
        objects = self._objects.get(ident)
        # failed writes may not relate to any polled object
        if objects is None:
            return
        for obj in objects:
            old_avail = obj.available_flag
            obj.update_registers_read_failed(network_name, address_range)
            new_avail = obj.available_flag
            self.publish_state(obj)
            if old_avail != new_avail:
                self.publish_availability_change(obj)

    def process_modbus_network_state(self, network_name: str, is_up: bool) -> None:
        processed: set[int] = set()
        for ident in sorted(self._objects):
            if ident.network_name != network_name:
                continue
            for obj in self._objects[ident]:
                if id(obj) in processed:
                    continue
                old_avail = obj.available_flag
                obj.set_modbus_network_state(network_name, is_up)
                if old_avail != obj.available_flag:
                    self.publish_availability_change(obj)
                processed.add(id(obj))

    def on_disconnect(self) -> None:
        for client in self._modbus_clients:
            client.send_mqtt_network_is_up(False)
        if self._state in (State.CONNECTED, State.CONNECTING):
            log.info("reconnecting to mqtt broker")
            self._impl.reconnect()
        elif self._state is State.DISCONNECTING:
            log.info("Stopping mqtt message loop")
            self._state = State.DISCONNECTED
            self._impl.stop()
            self._is_started = False
            if self._on_disconnected is not None:
                self._on_disconnected()

    def on_connect(self) -> None:
        log.info("Mqtt connected, sending subscriptions")
        for command in self._commands.values():
            self._impl.subscribe(command.topic)
        self._state = State.CONNECTED
        # a restarted broker has lost everything published before
        self.publish_all()
        for client in self._modbus_clients:
            client.send_mqtt_network_is_up(True)
        log.info("Mqtt ready to process messages")

    def _find_command(self, topic: str) -> MqttObjectCommand:
        try:
            return self._commands[topic]
        except KeyError:
            raise ObjectCommandNotFoundException(topic) from None

    def on_message(self, topic: str, payload) -> None:
        try:
            command = self._find_command(topic)
            network = command.network_name
            client = next(
                (c for c in self._modbus_clients if c.network_name == network), None
            )
            if client is None:
                log.error(
                    "Modbus network %s not found for command %s, dropping message",
                    network,
                    topic,
                )
                return
            value = create_mqtt_value(command, payload)
            converter = command.converter if command.has_converter() else self._default_converter
            if converter is None:
                raise MqttPayloadConversionException("Conversion failed, no converter available")
            registers = converter.to_modbus(value, command.count)
            if not isinstance(registers, ModbusRegisters):
                registers = ModbusRegisters(registers)
            if len(registers) != command.count:
                raise MqttPayloadConversionException(
                    f"Conversion failed, expecting {command.count} register values, "
                    f"got {len(registers)}"
                )
            client.send_command(command, registers)
        except ConvException as exc:
            log.error("Converter error for %s:%s", topic, exc)
        except MqttPayloadConversionException as exc:
            log.error("Value error for %s:%s", topic, exc)
        except ObjectCommandNotFoundException:
            log.error("No command for topic %s, dropping message", topic)