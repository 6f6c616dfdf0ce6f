"""Watchdog scanner: detects tracked clients that have gone silent."""

import asyncio
import time
from typing import Callable

from probe.commands import Command, CommandQueue, Notify, Seen, Terminate
from probe.registry import NO_HOSTNAME, ClientRecord, ClientRegistry, RegistryError
from probe.shared.base_worker import BaseWorker


def offline_message(records: list[ClientRecord]) -> str:
    lines = ["Client(s) went offline:"]
    lines.extend(f"{r.hostname or NO_HOSTNAME} ({r.uuid})" for r in records)
    return "\n".join(lines)


class WatchdogScanner(BaseWorker):
    """Owns the set of client ids believed online.

    Two triggers drive it: ``Seen`` commands on the inbound queue add ids,
    and a ticker runs ``sweep`` every ``poll_interval`` seconds whether or
    not commands arrived. Only this task touches the tracked set, so an id
    is removed and reported in one step.
    """

    def __init__(
        self,
        registry: ClientRegistry,
        inbound: CommandQueue,
        notifier: CommandQueue,
        timeout_seconds: int = 1200,
        poll_interval: float = 10,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(name="watchdog", inbound=inbound)
        self._registry = registry
        self._notifier = notifier
        self._timeout = timeout_seconds
        self._poll_interval = poll_interval
        self._clock = clock
        self._tracked: set[int] = set()

    @property
    def tracked(self) -> frozenset[int]:
        return frozenset(self._tracked)

    def now(self) -> int:
        return int(self._clock())

    async def seed(self):
        """Track every client seen within the timeout window."""
        records = await self._registry.list_active_since(self.now() - self._timeout)
        self._tracked.update(r.id for r in records)
        self.logger.info(f"Seeded watchdog with {len(records)} online clients")

    async def run(self):
        try:
            await self.seed()
            await self._loop()
        except RegistryError as e:
            self.logger.critical(f"Registry failure, watchdog cannot continue: {e}")
            raise

    async def _loop(self):
        loop = asyncio.get_running_loop()
        next_sweep = loop.time() + self._poll_interval
        while True:
            remaining = next_sweep - loop.time()
            if remaining > 0:
                try:
                    command = await asyncio.wait_for(self.inbound.get(), timeout=remaining)
                except asyncio.TimeoutError:
                    command = None
                if command is not None:
                    if not self.apply(command):
                        return
                    continue
            await self.sweep()
            next_sweep = loop.time() + self._poll_interval

    def apply(self, command: Command) -> bool:
        """Apply one inbound command. Returns False on Terminate."""
        if isinstance(command, Seen):
            if command.client_id not in self._tracked:
                self._tracked.add(command.client_id)
                self.logger.info(f"Tracking client {command.client_id}")
            return True
        elif isinstance(command, Terminate):
            return False
        elif isinstance(command, Notify):
            self.logger.warning(f"Watchdog ignores Notify: {command.text[:50]}")
            return True
        raise TypeError(f"Unknown command: {command!r}")

    async def sweep(self) -> list[ClientRecord]:
        """Demote tracked clients past the timeout and report them in one message."""
        if not self._tracked:
            return []
        now = self.now()
        records = await self._registry.get_many(self._tracked)

        missing = self._tracked - {r.id for r in records}
        for client_id in missing:
            self.logger.warning(f"Tracked client {client_id} missing from registry")
            self._tracked.discard(client_id)

        offline = [r for r in records if now - r.last_seen > self._timeout]
        if not offline:
            return []

        for record in offline:
            self._tracked.discard(record.id)
        self.logger.warning(
            f"{len(offline)} client(s) went offline",
            extra={"probe_data": {"ids": [r.id for r in offline]}},
        )
        if not self._notifier.offer(Notify(offline_message(offline))):
            self.logger.error("Offline notification was not queued")
        return offline
