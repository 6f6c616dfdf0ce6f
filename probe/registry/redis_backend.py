"""Redis-backed client registry.

Layout under ``<prefix>``:

- ``<prefix>:seq``: counter handing out client ids
- ``<prefix>:uuid``: hash uuid -> id
- ``<prefix>:client:<id>``: hash with uuid, boot_time, hostname
- ``<prefix>:last_seen``: sorted set id -> last_seen
- ``<prefix>:raw:<id>``: list of JSON samples
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Iterable

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from probe.registry.base import (
    ClientNotFound,
    ClientRecord,
    ClientRegistry,
    DuplicateRegistration,
    RegistryError,
)
from probe.shared.logger import get_logger


class RedisRegistry(ClientRegistry):
    """Registry stored in Redis hashes and one sorted set."""

    def __init__(self, redis_url: str = "redis://localhost:6379", prefix: str = "probe", client=None):
        self._redis_url = redis_url
        self._prefix = prefix
        self._redis = client
        self._lock = asyncio.Lock()
        self.logger = get_logger("registry")

    def _key(self, *parts) -> str:
        return ":".join([self._prefix, *(str(p) for p in parts)])

    async def connect(self):
        if self._redis is None:
            self._redis = aioredis.from_url(self._redis_url, decode_responses=True)
        await self._run(lambda r: r.ping())
        self.logger.info(f"Redis registry ready at {self._redis_url} ({self._prefix})")

    async def close(self):
        async with self._lock:
            if self._redis is not None:
                await self._redis.aclose()
                self._redis = None

    async def _run(self, fn: Callable[[Any], Awaitable[Any]]) -> Any:
        async with self._lock:
            if self._redis is None:
                raise RegistryError("Registry is not connected")
            try:
                return await fn(self._redis)
            except RedisError as e:
                raise RegistryError(str(e)) from e
            except RegistryError:
                raise
            except Exception as e:
                raise RegistryError(f"{type(e).__name__}: {e}") from e

    async def _load(self, r, client_id: int) -> ClientRecord | None:
        fields = await r.hgetall(self._key("client", client_id))
        if not fields:
            return None
        last_seen = await r.zscore(self._key("last_seen"), str(client_id))
        return ClientRecord(
            id=int(client_id),
            uuid=fields["uuid"],
            boot_time=int(fields["boot_time"]),
            last_seen=int(last_seen or 0),
            hostname=fields.get("hostname"),
        )

    async def find_by_uuid(self, uuid: str) -> ClientRecord | None:
        async def query(r):
            client_id = await r.hget(self._key("uuid"), uuid)
            if client_id is None:
                return None
            return await self._load(r, int(client_id))

        return await self._run(query)

    async def register(self, uuid, boot_time, hostname, timestamp) -> ClientRecord:
        async def insert(r):
            if await r.hexists(self._key("uuid"), uuid):
                raise DuplicateRegistration(uuid)
            client_id = int(await r.incr(self._key("seq")))
            fields = {"uuid": uuid, "boot_time": boot_time}
            if hostname is not None:
                fields["hostname"] = hostname
            await r.hset(self._key("client", client_id), mapping=fields)
            await r.zadd(self._key("last_seen"), {str(client_id): timestamp})
            await r.hset(self._key("uuid"), uuid, client_id)
            return ClientRecord(
                id=client_id,
                uuid=uuid,
                boot_time=boot_time,
                last_seen=timestamp,
                hostname=hostname,
            )

        return await self._run(insert)

    async def update_boot_time(self, client_id, boot_time, timestamp, hostname=None):
        async def update(r):
            key = self._key("client", client_id)
            if not await r.exists(key):
                raise ClientNotFound(client_id)
            fields = {"boot_time": boot_time}
            if hostname is not None:
                fields["hostname"] = hostname
            await r.hset(key, mapping=fields)
            await r.zadd(self._key("last_seen"), {str(client_id): timestamp})

        await self._run(update)

    async def touch(self, client_id, timestamp):
        async def update(r):
            current = await r.zscore(self._key("last_seen"), str(client_id))
            if current is None:
                raise ClientNotFound(client_id)
            if timestamp > current:
                await r.zadd(self._key("last_seen"), {str(client_id): timestamp})

        await self._run(update)

    async def append_sample(self, client_id, payload, timestamp):
        sample = json.dumps({"data": payload, "timestamp": timestamp})
        await self._run(lambda r: r.rpush(self._key("raw", client_id), sample))

    async def list_active_since(self, threshold) -> list[ClientRecord]:
        async def query(r):
            members = await r.zrangebyscore(self._key("last_seen"), f"({threshold}", "+inf")
            records = []
            for client_id in sorted(int(m) for m in members):
                record = await self._load(r, client_id)
                if record is not None:
                    records.append(record)
            return records

        return await self._run(query)

    async def get_many(self, client_ids: Iterable[int]) -> list[ClientRecord]:
        ids = sorted(set(client_ids))

        async def query(r):
            records = []
            for client_id in ids:
                record = await self._load(r, client_id)
                if record is not None:
                    records.append(record)
            return records

        return await self._run(query)
