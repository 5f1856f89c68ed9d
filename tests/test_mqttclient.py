import pytest

from mqmgate.converter import DataConverter, ModbusRegisters
from mqmgate.exceptions import MosquittoException, MqttPayloadConversionException
from mqmgate.mosquitto import BrokerConfig, MqttImpl
from mqmgate.mqttclient import MqttClient, State, create_mqtt_value
from mqmgate.mqttobject import (
    AvailableFlag,
    MqttObject,
    MqttObjectDataNode,
    MqttObjectRegisterIdent,
)
from mqmgate.registers import (
    ModbusSlaveAddressRange,
    MqttObjectCommand,
    MsgRegisterValues,
    PublishMode,
    RegisterType,
)

NET = "tcptest"


class FakeImpl(MqttImpl):
    def __init__(self):
        self.calls = []
        self.published = []
        self.subscribed = []

    def init(self, owner, client_id):
        self.calls.append(("init", client_id))

    def connect(self, config):
        self.calls.append(("connect", config))

    def reconnect(self):
        self.calls.append(("reconnect",))

    def disconnect(self):
        self.calls.append(("disconnect",))

    def stop(self):
        self.calls.append(("stop",))

    def subscribe(self, topic):
        self.subscribed.append(topic)

    def publish(self, topic, payload, retain):
        self.published.append((topic, payload, retain))

    def payloads(self, topic):
        return [p for t, p, _ in self.published if t == topic]


class FakeModbusClient:
    def __init__(self, network_name):
        self.network_name = network_name
        self.commands = []
        self.network_states = []

    def send_mqtt_network_is_up(self, flag):
        self.network_states.append(flag)

    def send_command(self, command, registers):
        self.commands.append((command, registers.values()))


class IntConverter(DataConverter):
    def to_modbus(self, value, register_count):
        return ModbusRegisters([value.as_uint16()] * register_count)


class WrongCountConverter(DataConverter):
    def to_modbus(self, value, register_count):
        return ModbusRegisters([1, 2, 3])


def make_object(topic, register, retain=True):
    obj = MqttObject(topic)
    node = MqttObjectDataNode()
    node.set_scalar_node(MqttObjectRegisterIdent(NET, 1, RegisterType.HOLDING, register))
    obj.state.add_data_node(node)
    obj.retain = retain
    return obj


def ident(register):
    return MqttObjectRegisterIdent(NET, 1, RegisterType.HOLDING, register)


def msg(register, values, command_id=None):
    return MsgRegisterValues(1, RegisterType.HOLDING, register, values, command_id=command_id)


def connected_client(objects):
    impl = FakeImpl()
    client = MqttClient(impl, IntConverter())
    client.set_objects(objects)
    client.on_connect()
    return client, impl


def test_single_register_publishes_state_then_availability():
    obj = make_object("test_switch", 1)
    client, impl = connected_client({ident(1): [obj]})
    client.process_register_values(NET, msg(1, [0]))
    assert impl.published == [
        ("test_switch/state", b"0", True),
        ("test_switch/availability", b"1", True),
    ]


def test_read_failure_unsets_availability():
    obj = make_object("test_switch", 1)
    client, impl = connected_client({ident(1): [obj]})
    client.process_register_values(NET, msg(1, [0]))
    client.process_registers_operation_failed(
        NET, ModbusSlaveAddressRange(1, 1, RegisterType.HOLDING, 1)
    )
    assert impl.payloads("test_switch/availability") == [b"1", b"0"]


def test_availability_restored_after_reconnect():
    obj = make_object("test_switch", 1)
    client, impl = connected_client({ident(1): [obj]})
    client.process_register_values(NET, msg(1, [0]))
    client.process_modbus_network_state(NET, False)
    client.process_modbus_network_state(NET, True)
    client.process_register_values(NET, msg(1, [0]))
    assert impl.payloads("test_switch/availability") == [b"1", b"0", b"1"]


def test_network_down_unsets_availability():
    obj = make_object("test_switch", 1)
    client, impl = connected_client({ident(1): [obj]})
    client.process_register_values(NET, msg(1, [0]))
    client.process_modbus_network_state(NET, False)
    assert impl.payloads("test_switch/availability")[-1] == b"0"
    assert obj.available_flag == AvailableFlag.FALSE


def test_retain_false_publishes_null_then_changes():
    obj = make_object("test_sensor", 2, retain=False)
    client, impl = connected_client({ident(2): [obj]})
    client.process_register_values(NET, msg(2, [1]))
    assert impl.payloads("test_sensor/state") == [None]
    client.process_register_values(NET, msg(2, [2]))
    assert impl.payloads("test_sensor/state") == [None, b"2"]


def test_retain_false_every_poll_publishes_each_poll():
    obj = make_object("test_sensor", 2, retain=False)
    obj.set_publish_mode(PublishMode.EVERY_POLL, 0)
    client, impl = connected_client({ident(2): [obj]})
    client.process_register_values(NET, msg(2, [2]))
    client.process_register_values(NET, msg(2, [2]))
    assert impl.payloads("test_sensor/state") == [None, b"2", b"2"]


def test_retain_false_availability_change_does_not_publish_old_value():
    obj = make_object("test_sensor", 2, retain=False)
    client, impl = connected_client({ident(2): [obj]})
    client.process_register_values(NET, msg(2, [1]))
    client.process_registers_operation_failed(
        NET, ModbusSlaveAddressRange(1, 2, RegisterType.HOLDING, 1)
    )
    assert impl.payloads("test_sensor/availability") == [b"1", b"0"]
    client.process_register_values(NET, msg(2, [2]))
    client.process_register_values(NET, msg(2, [3]))
    assert impl.payloads("test_sensor/state") == [None, b"3"]


def test_retain_false_in_poll_group_ignores_unchanged_register():
    test_sensor = make_object("test_sensor", 2, retain=False)
    other = make_object("other_sensor", 3)
    client, impl = connected_client({ident(2): [test_sensor, other]})
    client.process_register_values(NET, msg(2, [2, 3]))
    client.process_register_values(NET, msg(2, [2, 33]))
    assert impl.payloads("other_sensor/state") == [b"3", b"33"]
    assert len(impl.payloads("test_sensor/state")) == 1


def test_values_dropped_when_not_connected():
    impl = FakeImpl()
    client = MqttClient(impl, IntConverter())
    obj = make_object("s", 1)
    client.set_objects({ident(1): [obj]})
    client.process_register_values(NET, msg(1, [5]))
    assert impl.published == []
    assert obj.available_flag == AvailableFlag.NOT_SET


def test_command_id_without_objects_publishes_nothing():
    obj = make_object("s", 1)
    client, impl = connected_client({ident(1): [obj]})
    client.process_register_values(NET, msg(1, [5], command_id=7))
    assert impl.published == []


def test_command_id_updates_command_objects():
    obj = make_object("s", 1)
    client, impl = connected_client({ident(1): [obj]})
    client.set_command_objects({7: [obj]})
    client.process_register_values(NET, msg(1, [5], command_id=7))
    assert impl.payloads("s/state") == [b"5"]


def make_command(topic="test_switch/set1", count=1, register=2):
    return MqttObjectCommand(
        1, topic, MqttObjectCommand.PayloadType.STRING, NET, 1,
        RegisterType.HOLDING, register, count,
    )


def test_write_command_sent_to_modbus_client():
    impl = FakeImpl()
    client = MqttClient(impl, IntConverter())
    modbus = FakeModbusClient(NET)
    client.set_modbus_clients([modbus])
    command = make_command()
    client.add_command(command)
    client.on_connect()
    assert impl.subscribed == ["test_switch/set1"]
    assert modbus.network_states == [True]
    client.on_message("test_switch/set1", b"7")
    assert modbus.commands == [(command, [7])]


def test_command_converter_overrides_default():
    client = MqttClient(FakeImpl(), WrongCountConverter())
    modbus = FakeModbusClient(NET)
    client.set_modbus_clients([modbus])
    command = make_command()
    command.converter = IntConverter()
    client.add_command(command)
    client.on_message("test_switch/set1", "8")
    assert modbus.commands == [(command, [8])]


def test_wrong_register_count_is_dropped():
    client = MqttClient(FakeImpl(), WrongCountConverter())
    modbus = FakeModbusClient(NET)
    client.set_modbus_clients([modbus])
    client.add_command(make_command(count=2))
    client.on_message("test_switch/set1", b"7")
    assert modbus.commands == []


def test_unknown_topic_and_bad_value_are_dropped():
    client = MqttClient(FakeImpl(), IntConverter())
    modbus = FakeModbusClient(NET)
    client.set_modbus_clients([modbus])
    client.add_command(make_command())
    client.on_message("unknown/topic", b"7")
    client.on_message("test_switch/set1", b"abc")
    client.on_message("test_switch/set1", b"70000")
    assert modbus.commands == []


def test_missing_network_drops_message():
    client = MqttClient(FakeImpl(), IntConverter())
    modbus = FakeModbusClient("other")
    client.set_modbus_clients([modbus])
    client.add_command(make_command())
    client.on_message("test_switch/set1", b"7")
    assert modbus.commands == []


def test_add_command_keeps_first_for_topic():
    client = MqttClient(FakeImpl(), IntConverter())
    first = make_command(register=2)
    client.add_command(first)
    client.add_command(make_command(register=9))
    assert client.commands["test_switch/set1"] is first


def test_create_mqtt_value_from_string_payload():
    assert create_mqtt_value(make_command(), b"42").as_int() == 42


def test_create_mqtt_value_unknown_payload_type():
    command = make_command()
    command.payload_type = 99
    with pytest.raises(MqttPayloadConversionException):
        create_mqtt_value(command, b"1")


def test_start_and_client_id_guard():
    impl = FakeImpl()
    client = MqttClient(impl, IntConverter())
    client.set_client_id("mqtt_test")
    client.start()
    assert client.connection_state is State.CONNECTING
    assert impl.calls[-1][0] == "connect"
    with pytest.raises(MosquittoException):
        client.set_client_id("other")


def test_broker_config_replaced_when_different():
    client = MqttClient(FakeImpl(), IntConverter())
    config = BrokerConfig(host="broker.example.com")
    client.set_broker_config(config)
    assert client.broker_config.host == "broker.example.com"


def test_shutdown_when_connected_waits_for_disconnect():
    notified = []
    impl = FakeImpl()
    client = MqttClient(impl, IntConverter(), on_disconnected=lambda: notified.append(True))
    client.start()
    client.on_connect()
    client.shutdown()
    assert client.connection_state is State.DISCONNECTING
    assert ("disconnect",) in impl.calls
    client.on_disconnect()
    assert client.connection_state is State.DISCONNECTED
    assert ("stop",) in impl.calls
    assert not client.is_started
    assert notified == [True]


def test_shutdown_while_connecting_cancels():
    client = MqttClient(FakeImpl(), IntConverter())
    client.start()
    client.shutdown()
    assert not client.is_started
    assert client.connection_state is State.CONNECTING


def test_disconnect_while_connected_reconnects():
    impl = FakeImpl()
    client = MqttClient(impl, IntConverter())
    modbus = FakeModbusClient(NET)
    client.set_modbus_clients([modbus])
    client.on_connect()
    client.on_disconnect()
    assert impl.calls[-1] == ("reconnect",)
    assert modbus.network_states == [True, False]


def test_publish_all_publishes_each_object_once():
    obj = make_object("s", 1)
    client, impl = connected_client({ident(1): [obj], ident(5): [obj]})
    client.process_register_values(NET, msg(1, [4]))
    impl.published.clear()
    client.publish_all()
    assert impl.published == [("s/state", b"4", True), ("s/availability", b"1", True)]