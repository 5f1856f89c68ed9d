"""Rendering of MQTT object state as a message payload."""

from __future__ import annotations

import json
import math
from decimal import Decimal

from .exceptions import ModMqttProgramException, MqttPayloadConversionException
from .mqttobject import MqttObject, MqttObjectDataNode, MqttObjectDataNodeList
from .mqttvalue import NO_PRECISION, MqttValue, SourceType

_DEFAULT_MAX_DECIMAL_PLACES = 324


def _json_string(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def _truncated_fraction(fraction: str, max_decimal_places: int) -> str:
    # keep at least one fractional digit, drop trailing zeros after truncation
    return fraction[:1] + fraction[1:max_decimal_places].rstrip("0")


def _format_double(value: float, max_decimal_places: int) -> str:
    if not math.isfinite(value):
        raise MqttPayloadConversionException(f"Cannot write {value} as a JSON number")
    if value == 0:
        return "-0.0" if math.copysign(1.0, value) < 0 else "0.0"
    sign = "-" if value < 0 else ""
    _, digit_tuple, k = Decimal(repr(abs(value))).as_tuple()
    digits = "".join(map(str, digit_tuple))
    while len(digits) > 1 and digits.endswith("0"):
        digits = digits[:-1]
        k += 1
    length = len(digits)
    kk = length + k

    if 0 <= k and kk <= 21:
        body = digits + "0" * (kk - length) + ".0"
    elif 0 < kk <= 21:
        fraction = digits[kk:]
        if k + max_decimal_places < 0:
            fraction = _truncated_fraction(fraction, max_decimal_places)
        body = f"{digits[:kk]}.{fraction}"
    elif -6 < kk <= 0:
        fraction = "0" * (-kk) + digits
        if length - kk > max_decimal_places:
            fraction = _truncated_fraction(fraction, max_decimal_places)
        body = f"0.{fraction}"
    elif kk < -max_decimal_places:
        body = "0.0"
    elif length == 1:
        body = f"{digits}e{kk - 1}"
    else:
        body = f"{digits[0]}.{digits[1:]}e{kk - 1}"
    return sign + body


class _JsonWriter:
    """Writes MQTT values as JSON; a value's precision sticks for later doubles."""

    def __init__(self) -> None:
        self._max_decimal_places = _DEFAULT_MAX_DECIMAL_PLACES

    def value(self, value: MqttValue) -> str:
        source = value.source_type
        if source is SourceType.INT:
            return str(value.as_int())
        if source is SourceType.INT64:
            return str(value.as_int64())
        if source is SourceType.DOUBLE:
            if value.precision != NO_PRECISION:
                self._max_decimal_places = value.precision
            return _format_double(value.as_double(), self._max_decimal_places)
        return _json_string(value.as_string())


def _node_json(writer: _JsonWriter, node: MqttObjectDataNode) -> str:
    if node.is_scalar() or node.converter is not None:
        return writer.value(node.converted_value())
    return _nodes_json(writer, node.child_nodes)


def _nodes_json(writer: _JsonWriter, nodes: MqttObjectDataNodeList) -> str:
    first = nodes[0]
    if not first.is_unnamed():
        items = [f"{_json_string(node.name)}:{_node_json(writer, node)}" for node in nodes]
        return "{" + ",".join(items) + "}"
    if nodes.output_as_list or len(nodes) > 1:
        return "[" + ",".join(_node_json(writer, node) for node in nodes) + "]"
    return writer.value(first.converted_value())


def generate(obj: MqttObject) -> str:
    """Return the state payload: a plain value for a single scalar, JSON otherwise."""
    nodes = obj.state.nodes
    if not nodes:
        raise ModMqttProgramException(f"Object {obj.topic} has no state data")
    if not nodes.output_as_list:
        single = nodes[0]
        if single.is_unnamed() and (single.is_scalar() or single.converter is not None):
            return single.converted_value().as_string()
    return _nodes_json(_JsonWriter(), nodes)