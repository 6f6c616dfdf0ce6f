import pytest

from probe.commands import CommandQueue
from probe.registry import SqliteRegistry
from probe.tests.fakes import FakeClock


@pytest.fixture
async def registry():
    reg = SqliteRegistry(database=":memory:")
    await reg.connect()
    yield reg
    await reg.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def watchdog_queue():
    return CommandQueue("watchdog", maxsize=16)


@pytest.fixture
def notifier_queue():
    return CommandQueue("notifier", maxsize=16)
