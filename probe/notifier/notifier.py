"""Notifier: drains Notify commands to the transport, one at a time."""

from probe.commands import Command, CommandQueue, Notify, Seen, Terminate
from probe.notifier.transport import NotificationTransport
from probe.shared.base_worker import BaseWorker


class Notifier(BaseWorker):
    """Single consumer delivering operator messages in arrival order.

    Each ``Notify`` gets exactly one send attempt. Failures are logged and
    the loop moves on.
    """

    def __init__(
        self,
        inbound: CommandQueue,
        transport: NotificationTransport,
        operator_id: int,
    ):
        super().__init__(name="notifier", inbound=inbound)
        self._transport = transport
        self._operator_id = operator_id
        self.sent = 0
        self.failed = 0

    async def run(self):
        while True:
            command = await self.inbound.get()
            if not await self.apply(command):
                return

    async def apply(self, command: Command) -> bool:
        """Handle one command. Returns False on Terminate."""
        if isinstance(command, Notify):
            await self._deliver(command.text)
            return True
        elif isinstance(command, Terminate):
            return False
        elif isinstance(command, Seen):
            self.logger.warning(f"Notifier ignores Seen({command.client_id})")
            return True
        raise TypeError(f"Unknown command: {command!r}")

    async def _deliver(self, text: str):
        try:
            await self._transport.send(self._operator_id, text)
        except Exception as e:
            self.failed += 1
            self.logger.error(f"Notification failed: {e}")
            return
        self.sent += 1
        self.logger.info(f"Notification sent: {text[:50]}")
