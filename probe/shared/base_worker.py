"""Base class for the server's long-lived background workers."""

import asyncio
from abc import ABC, abstractmethod

from probe.commands import CommandQueue
from probe.shared.logger import get_logger


class BaseWorker(ABC):
    """Single consumer of one command queue, run as an asyncio task.

    Subclasses implement ``run``, which returns once it has consumed a
    ``Terminate`` command. Exceptions escaping ``run`` end the task and are
    re-raised to whoever calls ``stop``.
    """

    def __init__(self, name: str, inbound: CommandQueue):
        self.name = name
        self.inbound = inbound
        self.logger = get_logger(name)
        self._task: asyncio.Task | None = None

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    def start(self) -> asyncio.Task:
        """Schedule ``run`` on the running loop and return its task."""
        self._task = asyncio.create_task(self.run(), name=self.name)
        self.logger.info(f"Worker {self.name} started")
        return self._task

    async def stop(self):
        """Send ``Terminate`` and wait for the worker to exit."""
        if self._task is None or self._task.done():
            self.inbound.close()
        else:
            await self.inbound.terminate()
        if self._task is not None:
            task, self._task = self._task, None
            await task
        self.logger.info(f"Worker {self.name} stopped")

    @abstractmethod
    async def run(self):
        """Main loop. Override in subclass."""
        ...
