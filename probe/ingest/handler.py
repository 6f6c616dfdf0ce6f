"""Ingestion handler: applies one register/heartbeat event to the registry."""

import time
from dataclasses import dataclass
from typing import Callable

from probe.commands import Command, CommandQueue, Notify, Seen, Terminate
from probe.ingest.protocol import (
    ClientInfo,
    ProbeRequest,
    Response,
    ResultCode,
    parse_version,
    version_satisfies,
)
from probe.registry import NO_HOSTNAME, ClientRecord, ClientRegistry, DuplicateRegistration
from probe.shared.logger import get_logger


@dataclass
class Outcome:
    code: ResultCode
    command: Command | None = None


def online_message(record: ClientRecord) -> str:
    return f"{record.hostname or NO_HOSTNAME} ({record.id}: {record.uuid}) comes online"


class IngestionHandler:
    """Validates events, mutates the registry and decides on notifications.

    Registry errors are not caught here; the HTTP layer turns them into a
    server error.
    """

    def __init__(
        self,
        registry: ClientRegistry,
        watchdog_queue: CommandQueue,
        notifier_queue: CommandQueue,
        minimum_version: str = "0",
        clock: Callable[[], float] = time.time,
    ):
        if parse_version(minimum_version) is None:
            raise ValueError(f"Invalid minimum version: {minimum_version}")
        self._registry = registry
        self._watchdog_queue = watchdog_queue
        self._notifier_queue = notifier_queue
        self._minimum_version = minimum_version
        self._clock = clock
        self.logger = get_logger("ingest")

    def now(self) -> int:
        return int(self._clock())

    async def ingest(self, request: ProbeRequest) -> Response:
        """Handle the event, dispatch its command and build the response."""
        outcome = await self.handle(request)
        if outcome.command is not None:
            self.dispatch(outcome.command)
        return Response.from_code(outcome.code)

    def dispatch(self, command: Command) -> bool:
        """Route a command to its queue without waiting."""
        if isinstance(command, Seen):
            return self._watchdog_queue.offer(command)
        elif isinstance(command, Notify):
            return self._notifier_queue.offer(command)
        elif isinstance(command, Terminate):
            raise ValueError("Request handlers never send Terminate")
        raise TypeError(f"Unknown command: {command!r}")

    async def handle(self, request: ProbeRequest) -> Outcome:
        if not version_satisfies(request.version, self._minimum_version):
            self.logger.info(
                f"Rejected {request.uuid}: version {request.version!r} below {self._minimum_version}"
            )
            return Outcome(ResultCode.VERSION_MISMATCH)

        record = await self._registry.find_by_uuid(request.uuid)
        new_machine = False

        if record is None:
            if request.action != "register":
                return Outcome(ResultCode.NOT_REGISTERED)
            record, new_machine = await self._create(request)

        if request.action == "register":
            return await self._on_register(request, record, new_machine)
        elif request.action == "heartbeat":
            return await self._on_heartbeat(request, record)
        return Outcome(ResultCode.UNSUPPORTED_METHOD)

    async def _create(self, request: ProbeRequest) -> tuple[ClientRecord, bool]:
        info = ClientInfo.parse(request.body)
        try:
            record = await self._registry.register(
                request.uuid,
                boot_time=info.boot_time if info else 0,
                hostname=info.hostname if info else None,
                timestamp=self.now(),
            )
        except DuplicateRegistration:
            # Lost a race with a concurrent register for the same uuid.
            record = await self._registry.find_by_uuid(request.uuid)
            if record is None:
                raise
            return record, False
        self.logger.info(f"Registered new client {record.id}: {record.uuid}")
        return record, True

    async def _on_register(
        self, request: ProbeRequest, record: ClientRecord, new_machine: bool
    ) -> Outcome:
        if new_machine:
            return Outcome(ResultCode.OK, Notify(online_message(record)))

        info = ClientInfo.parse(request.body)
        if info is None or info.boot_time == record.boot_time:
            return Outcome(ResultCode.OK)

        now = self.now()
        await self._registry.update_boot_time(
            record.id, info.boot_time, now, hostname=info.hostname
        )
        record.boot_time = info.boot_time
        record.last_seen = now
        if info.hostname is not None:
            record.hostname = info.hostname
        self.logger.info(f"Client {record.id} rebooted (boot_time {info.boot_time})")
        return Outcome(ResultCode.OK, Notify(online_message(record)))

    async def _on_heartbeat(self, request: ProbeRequest, record: ClientRecord) -> Outcome:
        now = self.now()
        await self._registry.touch(record.id, now)
        if request.body:
            await self._registry.append_sample(record.id, request.body, now)
        return Outcome(ResultCode.OK, Seen(record.id))
