"""Client registry backends."""

from typing import Any

from probe.registry.base import (
    NO_HOSTNAME,
    ClientNotFound,
    ClientRecord,
    ClientRegistry,
    DuplicateRegistration,
    RegistryError,
)
from probe.registry.sqlite_backend import SqliteRegistry
from probe.registry.redis_backend import RedisRegistry


def create_registry(server_config: dict[str, Any]) -> ClientRegistry:
    """Build the registry selected by ``server.storage``."""
    storage = server_config.get("storage", "sqlite")
    if storage == "sqlite":
        return SqliteRegistry(database=server_config.get("database", "probe.db"))
    if storage == "redis":
        return RedisRegistry(
            redis_url=server_config.get("redis_url", "redis://localhost:6379"),
            prefix=server_config.get("redis_prefix", "probe"),
        )
    raise ValueError(f"Unknown storage backend: {storage}")


__all__ = [
    "NO_HOSTNAME",
    "ClientNotFound",
    "ClientRecord",
    "ClientRegistry",
    "DuplicateRegistration",
    "RegistryError",
    "SqliteRegistry",
    "RedisRegistry",
    "create_registry",
]
