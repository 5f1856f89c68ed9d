# mqmgate

mqmgate is the core of a Modbus-to-MQTT gateway. It keeps the state of MQTT
objects built from Modbus registers, renders their state payloads as plain
values or JSON lists and maps, tracks their availability, and turns MQTT
command payloads into register values for writing back to Modbus devices.

## Installation

```
pip install mqmgate
```

## Building blocks

- `mqmgate.mqttvalue.MqttValue` holds a value published to or received from
  MQTT: a 32-bit int, a 64-bit int, a double with an optional precision, or
  raw bytes. It converts between them with `as_string()`, `as_int()`,
  `as_int64()`, `as_uint16()`, `as_double()` and `as_bytes()`, raising
  `ConvException` when a payload cannot be read as a number.
- `mqmgate.converter` provides `ModbusRegisters` (a list of 16-bit values),
  the `DataConverter` base class for converters between registers and MQTT
  values, the `ConverterPlugin` interface, and helpers such as
  `registers_to_int32`, `int32_to_registers`, `swap_byte_order`,
  `swap_registers_byte_order`, `to_network_byte_order`, `to_float`,
  `get_int_arg`, `get_double_arg`, `get_hex16_arg` and `trim`.
- `mqmgate.registers` describes register types and ranges, register value
  messages (`MsgRegisterValues`), polls and writes (`RegisterPoll`,
  `RegisterWrite`) and command topics (`MqttObjectCommand`).
- `mqmgate.mqttobject` models an MQTT object (`MqttObject`) whose state and
  availability are trees of `MqttObjectDataNode`s fed from register reads,
  read failures and network up/down notifications.
- `mqmgate.mqttpayload.generate` renders an object's state payload: a plain
  value for a single unnamed scalar, JSON otherwise.
- `mqmgate.mosquitto` connects to a broker through paho-mqtt (`Mosquitto`,
  configured by `BrokerConfig`, which defaults to port 1883, or 8883 with
  TLS). `return_code_to_str` and `throw_on_critical_error` interpret client
  return codes.
- `mqmgate.mqttclient.MqttClient` ties everything together: it tracks the
  connection state, publishes state and availability changes, republishes
  everything after a reconnect and dispatches incoming command messages.
- `mqmgate.yaml_converters` parses configuration values such as durations
  (`parse_duration("5s")`), slave lists (`parse_number_list("1,2-3")`),
  name lists and serial/RTS modes, raising `ConfigurationException` on bad
  input.
- `mqmgate.queue_item.QueueItem` wraps one value passed between threads so
  that it can be taken out once, with its type checked.

## Example

```python
from mqmgate import mqttpayload
from mqmgate.mqttobject import MqttObject, MqttObjectDataNode, MqttObjectRegisterIdent
from mqmgate.registers import MsgRegisterValues, RegisterType

node = MqttObjectDataNode()
node.set_scalar_node(MqttObjectRegisterIdent("tcptest", 1, RegisterType.HOLDING, 2))

obj = MqttObject("test_sensor")
obj.state.add_data_node(node)

obj.update_register_values("tcptest", MsgRegisterValues(1, RegisterType.HOLDING, 2, [32456]))
print(obj.available_flag)         # AvailableFlag.TRUE
print(mqttpayload.generate(obj))  # 32456
```

## Using MqttClient

`MqttClient(impl=None, default_converter=None, on_disconnected=None)` uses a
`Mosquitto` transport unless another `MqttImpl` is given. Commands added
with `add_command` are subscribed to on connect; an incoming payload is
converted by the command's converter, or by `default_converter`, and handed
to the Modbus client whose `network_name` matches, through its
`send_command(command, registers)`. Modbus clients must also provide
`send_mqtt_network_is_up(flag)`. `on_disconnected` is called once a clean
shutdown has finished.

## What this package does not do

- It has no command-line program and does not load a configuration file;
  objects, commands and broker settings are built in code.
- It does not talk to Modbus devices; Modbus clients are supplied by the
  caller.
- It ships no ready-made data converters; `DataConverter` is a base class to
  subclass, and `MqttClient` needs a `default_converter` to handle commands
  that have no converter of their own.

## Running the tests

```
pip install -e .[test]
pytest
```