"""A typed envelope for data passed between worker threads."""

from __future__ import annotations

import copy

from .exceptions import ModMqttProgramException


class QueueItem:
    """Holds a copy of one value that can be taken out exactly once."""

    __slots__ = ("_type", "_data", "_taken")

    def __init__(self) -> None:
        self._type: type | None = None
        self._data = None
        self._taken = True

    @classmethod
    def create(cls, data) -> QueueItem:
        item = cls()
        item._type = type(data)
        item._data = copy.copy(data)
        item._taken = False
        return item

    def get_data(self, expected_type: type):
        """Return the held data and release it; the type must match exactly."""
        if self._taken:
            raise ModMqttProgramException("Tried to get data from queue item twice")
        if not self.is_same_as(expected_type):
            raise ModMqttProgramException(
                f"Trying to get {expected_type.__name__} from wrong item"
            )
        data = self._data
        self._data = None
        self._taken = True
        return data

    def is_same_as(self, expected_type: type) -> bool:
        return self._type is expected_type