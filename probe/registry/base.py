"""Client registry interface shared by every storage backend."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable

NO_HOSTNAME = "(no hostname)"


class RegistryError(Exception):
    """Storage failure while reading or writing the registry."""


class DuplicateRegistration(RegistryError):
    """A client with this uuid is already registered."""

    def __init__(self, uuid: str):
        super().__init__(f"Client already registered: {uuid}")
        self.uuid = uuid


class ClientNotFound(RegistryError):
    """No client row exists for this id."""

    def __init__(self, client_id: int):
        super().__init__(f"Client not found: {client_id}")
        self.client_id = client_id


@dataclass
class ClientRecord:
    id: int
    uuid: str
    boot_time: int
    last_seen: int
    hostname: str | None = None

    @property
    def display_name(self) -> str:
        return self.hostname or NO_HOSTNAME

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "uuid": self.uuid,
            "boot_time": self.boot_time,
            "last_seen": self.last_seen,
            "hostname": self.hostname,
        }


class ClientRegistry(ABC):
    """Durable mapping from client identity to registration metadata.

    Every operation runs inside the backend's own critical section, held for
    that single operation only. Callers never need their own locking.
    """

    async def connect(self):
        """Open the backing store."""

    async def close(self):
        """Release the backing store."""

    @abstractmethod
    async def find_by_uuid(self, uuid: str) -> ClientRecord | None:
        ...

    @abstractmethod
    async def register(
        self,
        uuid: str,
        boot_time: int,
        hostname: str | None,
        timestamp: int,
    ) -> ClientRecord:
        """Create a client row. Raises DuplicateRegistration if uuid exists."""
        ...

    @abstractmethod
    async def update_boot_time(
        self,
        client_id: int,
        boot_time: int,
        timestamp: int,
        hostname: str | None = None,
    ):
        """Overwrite boot_time and last_seen; hostname only when given."""
        ...

    @abstractmethod
    async def touch(self, client_id: int, timestamp: int):
        """Set last_seen to max(last_seen, timestamp)."""
        ...

    @abstractmethod
    async def append_sample(self, client_id: int, payload: str, timestamp: int):
        ...

    @abstractmethod
    async def list_active_since(self, threshold: int) -> list[ClientRecord]:
        """All clients with last_seen strictly greater than threshold, by id."""
        ...

    @abstractmethod
    async def get_many(self, client_ids: Iterable[int]) -> list[ClientRecord]:
        """Rows for the given ids in one read, by id. Unknown ids are skipped."""
        ...
