import pytest

from mqmgate.exceptions import ModMqttProgramException
from mqmgate.queue_item import QueueItem


class _Message:
    def __init__(self, text):
        self.text = text


class _SubMessage(_Message):
    pass


def test_round_trip():
    item = QueueItem.create(_Message("hello"))
    assert item.is_same_as(_Message)
    data = item.get_data(_Message)
    assert data.text == "hello"


def test_data_is_copied():
    original = [1, 2]
    item = QueueItem.create(original)
    original.append(3)
    assert item.get_data(list) == [1, 2]


def test_get_twice_raises():
    item = QueueItem.create(_Message("x"))
    item.get_data(_Message)
    with pytest.raises(ModMqttProgramException, match="twice"):
        item.get_data(_Message)


def test_empty_item_raises():
    with pytest.raises(ModMqttProgramException, match="twice"):
        QueueItem().get_data(_Message)


def test_wrong_type_raises():
    item = QueueItem.create(_Message("x"))
    with pytest.raises(ModMqttProgramException, match="wrong item"):
        item.get_data(dict)
    assert item.get_data(_Message).text == "x"


def test_subclass_is_not_same_type():
    item = QueueItem.create(_SubMessage("y"))
    assert item.is_same_as(_Message) is False
    assert item.is_same_as(_SubMessage) is True