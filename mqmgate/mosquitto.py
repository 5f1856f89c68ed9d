"""MQTT broker connection backed by paho-mqtt."""

from __future__ import annotations

import abc
import enum
import logging
from dataclasses import dataclass
from typing import Callable, Protocol

import paho.mqtt.client as mqtt

from .exceptions import MosquittoException

log = logging.getLogger(__name__)

DEFAULT_PORT = 1883
DEFAULT_TLS_PORT = 8883

LOG_INFO = 0x01
LOG_NOTICE = 0x02
LOG_WARNING = 0x04
LOG_ERR = 0x08
LOG_DEBUG = 0x10


class ErrorCode(enum.IntEnum):
    """Return codes of the MQTT client library."""

    CONN_PENDING = -1
    SUCCESS = 0
    NOMEM = 1
    PROTOCOL = 2
    INVAL = 3
    NO_CONN = 4
    CONN_REFUSED = 5
    NOT_FOUND = 6
    CONN_LOST = 7
    TLS = 8
    PAYLOAD_SIZE = 9
    NOT_SUPPORTED = 10
    AUTH = 11
    ACL_DENIED = 12
    UNKNOWN = 13
    ERRNO = 14
    EAI = 15
    PROXY = 16


_MESSAGES = {
    ErrorCode.CONN_PENDING: "Connection pending.",
    ErrorCode.SUCCESS: "No error.",
    ErrorCode.NOMEM: "Out of memory.",
    ErrorCode.PROTOCOL: "A network protocol error occurred when communicating with the broker.",
    ErrorCode.INVAL: "Invalid function arguments provided.",
    ErrorCode.NO_CONN: "The client is not currently connected.",
    ErrorCode.CONN_REFUSED: "The connection was refused.",
    ErrorCode.NOT_FOUND: "Message not found (internal error).",
    ErrorCode.CONN_LOST: "The connection was lost.",
    ErrorCode.TLS: "A TLS error occurred.",
    ErrorCode.PAYLOAD_SIZE: "Payload too large.",
    ErrorCode.NOT_SUPPORTED: "This feature is not supported.",
    ErrorCode.AUTH: "Authorisation failed.",
    ErrorCode.ACL_DENIED: "Access denied by ACL.",
    ErrorCode.UNKNOWN: "Unknown error.",
    ErrorCode.ERRNO: "A system call returned an error.",
    ErrorCode.EAI: "Lookup error.",
    ErrorCode.PROXY: "Proxy error.",
}

_CRITICAL = frozenset(
    {
        ErrorCode.NOMEM,
        ErrorCode.PROTOCOL,
        ErrorCode.INVAL,
        ErrorCode.NOT_FOUND,
        ErrorCode.TLS,
        ErrorCode.PAYLOAD_SIZE,
        ErrorCode.NOT_SUPPORTED,
        ErrorCode.AUTH,
        ErrorCode.ACL_DENIED,
        ErrorCode.UNKNOWN,
        ErrorCode.EAI,
        ErrorCode.PROXY,
    }
)

_LOG_LEVELS = {
    LOG_INFO: logging.INFO,
    LOG_NOTICE: logging.INFO,
    LOG_WARNING: logging.WARNING,
    LOG_ERR: logging.ERROR,
    LOG_DEBUG: logging.DEBUG,
}


def _as_code(rc) -> int:
    value = getattr(rc, "value", rc)
    try:
        return int(value)
    except (TypeError, ValueError):
        return int(ErrorCode.UNKNOWN)


def return_code_to_str(code) -> str:
    """Return a readable description of a client library return code."""
    try:
        return _MESSAGES[ErrorCode(_as_code(code))]
    except ValueError:
        return "Unknown error."


def throw_on_critical_error(code) -> None:
    """Raise MosquittoException if ``code`` is an unrecoverable error."""
    try:
        error = ErrorCode(_as_code(code))
    except ValueError:
        return
    if error in _CRITICAL:
        raise MosquittoException(return_code_to_str(error))


@dataclass
class BrokerConfig:
    """Connection settings of an MQTT broker."""

    host: str = "localhost"
    port: int | None = None
    keepalive: int = 60
    username: str = ""
    password: str = ""
    tls: bool = False
    cafile: str = ""

    def __post_init__(self) -> None:
        if self.port is None:
            self.port = DEFAULT_TLS_PORT if self.tls else DEFAULT_PORT

    def is_same_as(self, other: BrokerConfig) -> bool:
        return self == other


class _Owner(Protocol):
    def on_connect(self) -> None: ...

    def on_disconnect(self) -> None: ...

    def on_message(self, topic: str, payload: bytes) -> None: ...


class MqttImpl(abc.ABC):
    """Transport used by the MQTT client to talk to a broker."""

    @abc.abstractmethod
    def init(self, owner, client_id: str) -> None:
        """Bind to ``owner`` and set the client id."""

    @abc.abstractmethod
    def connect(self, config: BrokerConfig) -> None:
        """Start connecting to the broker."""

    @abc.abstractmethod
    def reconnect(self) -> None:
        """Reconnect after a lost connection."""

    @abc.abstractmethod
    def disconnect(self) -> None:
        """Send a disconnect request to the broker."""

    @abc.abstractmethod
    def stop(self) -> None:
        """Stop the network loop."""

    @abc.abstractmethod
    def subscribe(self, topic: str) -> None:
        """Subscribe to ``topic``."""

    @abc.abstractmethod
    def publish(self, topic: str, payload: bytes | None, retain: bool) -> None:
        """Publish ``payload`` on ``topic``; None sends an empty message."""


def _default_client(client_id: str):
    api = getattr(mqtt, "CallbackAPIVersion", None)
    if api is not None:
        return mqtt.Client(api.VERSION2, client_id=client_id, clean_session=True)
    return mqtt.Client(client_id=client_id, clean_session=True)


class Mosquitto(MqttImpl):
    """MqttImpl running a paho-mqtt client in its own network thread."""

    def __init__(self, client_factory: Callable[[str], object] | None = None) -> None:
        self._factory = client_factory or _default_client
        self._client = self._factory("")
        self._owner: _Owner | None = None

    @property
    def client(self):
        return self._client

    def init(self, owner, client_id: str) -> None:
        self._owner = owner
        self._client = self._factory(client_id)

    def connect(self, config: BrokerConfig) -> None:
        log.info("Connecting to %s:%s", config.host, config.port)
        client = self._client
        try:
            if config.username:
                client.username_pw_set(config.username, config.password)
            if config.tls:
                if config.cafile:
                    client.tls_set(ca_certs=config.cafile)
                else:
                    client.tls_set()
            client.connect_async(config.host, config.port, config.keepalive)
        except (ValueError, OSError) as exc:
            raise MosquittoException(str(exc)) from exc

        client.reconnect_delay_set(min_delay=3, max_delay=60)
        client.on_connect = self._handle_connect
        client.on_disconnect = self._handle_disconnect
        client.on_message = self._handle_message
        client.on_log = self._handle_log

        log.debug("Waiting for connection event")
        rc = client.loop_start()
        if rc is not None and _as_code(rc) != ErrorCode.SUCCESS:
            log.error("Error processing network traffic: %s", return_code_to_str(rc))

    def reconnect(self) -> None:
        try:
            self._client.reconnect()
        except (OSError, ValueError) as exc:
            log.error("Reconnect to mqtt broker failed: %s", exc)

    def disconnect(self) -> None:
        self._client.disconnect()

    def stop(self) -> None:
        self._client.loop_stop()

    def subscribe(self, topic: str) -> None:
        self._client.subscribe(topic, 0)

    def publish(self, topic: str, payload: bytes | None, retain: bool) -> None:
        self._client.publish(topic, payload, qos=0, retain=retain)

    def on_connect(self, rc) -> None:
        log.info("Connection established")
        if self._owner is not None:
            self._owner.on_connect()

    def on_disconnect(self, rc) -> None:
        log.info("Disconnected from mqtt broker, code:%s", return_code_to_str(rc))
        if self._owner is not None:
            self._owner.on_disconnect()

    def on_log(self, level: int, message: str) -> None:
        python_level = _LOG_LEVELS.get(_as_code(level))
        if python_level is not None:
            log.log(python_level, "%s", message)

    def on_message(self, topic: str, payload: bytes) -> None:
        if self._owner is not None:
            self._owner.on_message(topic, payload)

    # paho callbacks; the reason code sits at the same place in both callback APIs
    def _handle_connect(self, client, userdata, flags, rc, *rest) -> None:
        self.on_connect(rc)

    def _handle_disconnect(self, client, userdata, *args) -> None:
        rc = args[1] if len(args) >= 3 else (args[0] if args else ErrorCode.UNKNOWN)
        self.on_disconnect(rc)

    def _handle_message(self, client, userdata, message) -> None:
        self.on_message(message.topic, message.payload)

    def _handle_log(self, client, userdata, level, buf) -> None:
        self.on_log(level, buf)