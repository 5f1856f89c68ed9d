"""Exception types raised by converters and the gateway."""


class ConvException(Exception):
    """Raised when a converter cannot convert a value."""


class ModMqttException(Exception):
    """Base class for gateway errors."""

    def __init__(self, message: str = "Unknown error") -> None:
        super().__init__(message)


class ModMqttProgramException(ModMqttException):
    """Raised on internal misuse of the gateway's own objects."""


class MosquittoException(ModMqttException):
    """Raised when the MQTT client library reports a critical error."""


class ObjectCommandNotFoundException(ModMqttException):
    """Raised when no command is registered for an MQTT topic."""

    def __init__(self, topic: str) -> None:
        self.topic = topic
        super().__init__(f"Command for topic {topic} not found")


class MqttPayloadConversionException(ModMqttException):
    """Raised when an MQTT payload cannot be turned into register values."""


class ConvNameParserException(ModMqttException):
    """Raised when a converter specification cannot be parsed."""


class ConvPluginNotFoundException(ModMqttException):
    """Raised when a requested converter plugin is not available."""


class ConfigurationException(ModMqttException):
    """Raised when configuration data is invalid."""