import pytest

from sprite_messages import MemoryMessageSink, MessageLog


@pytest.fixture
def memory():
    return MemoryMessageSink()


@pytest.fixture
def log(memory):
    return MessageLog(memory)
