"""Commands exchanged between request handlers and background workers.

Every cross-component signal is one of three variants:

- ``Seen(client_id)``: a heartbeat arrived, for the watchdog.
- ``Notify(text)``: a message for the operator, for the notifier.
- ``Terminate()``: stop consuming, sent once during shutdown.
"""

import asyncio
from dataclasses import dataclass

from probe.shared.logger import get_logger

logger = get_logger("queue")


@dataclass(frozen=True)
class Seen:
    client_id: int


@dataclass(frozen=True)
class Notify:
    text: str


@dataclass(frozen=True)
class Terminate:
    pass


Command = Seen | Notify | Terminate


class CommandQueue:
    """Bounded FIFO of commands with a single consumer.

    Producers use ``offer``, which never waits: a full or closed queue drops
    the command and logs it. Only shutdown uses the awaiting ``terminate``.
    """

    def __init__(self, name: str, maxsize: int = 1024):
        self.name = name
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    def offer(self, command: Command) -> bool:
        """Enqueue without waiting. Returns False if the command was dropped."""
        if self._closed:
            logger.warning(f"Queue {self.name} closed, dropping {command!r}")
            return False
        try:
            self._queue.put_nowait(command)
        except asyncio.QueueFull:
            logger.warning(f"Queue {self.name} full, dropping {command!r}")
            return False
        return True

    async def get(self) -> Command:
        return await self._queue.get()

    def close(self):
        """Stop accepting commands without notifying the consumer."""
        self._closed = True

    async def terminate(self):
        """Close the queue to producers and deliver ``Terminate`` to the consumer."""
        if self._closed:
            return
        self._closed = True
        await self._queue.put(Terminate())
