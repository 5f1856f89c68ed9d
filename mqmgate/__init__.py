"""Core of a gateway between Modbus registers and MQTT topics: values, converters, objects, payloads and the MQTT client."""

__version__ = "0.1.0"