"""SQLite-backed client registry."""

import asyncio
import sqlite3
from typing import Any, Callable, Iterable

from probe.registry.base import (
    ClientNotFound,
    ClientRecord,
    ClientRegistry,
    DuplicateRegistration,
    RegistryError,
)
from probe.shared.logger import get_logger

SCHEMA_VERSION = "3"

CREATE_TABLES = """
CREATE TABLE "clients" (
    "id"        INTEGER NOT NULL PRIMARY KEY AUTOINCREMENT,
    "uuid"      TEXT NOT NULL UNIQUE,
    "boot_time" INTEGER NOT NULL,
    "last_seen" INTEGER NOT NULL,
    "hostname"  TEXT
);

CREATE TABLE "raw_data" (
    "id"        INTEGER NOT NULL PRIMARY KEY AUTOINCREMENT,
    "from"      INTEGER NOT NULL,
    "data"      TEXT NOT NULL,
    "timestamp" INTEGER NOT NULL
);

CREATE TABLE "pbs_meta" (
    "key"   TEXT NOT NULL,
    "value" TEXT NOT NULL,
    PRIMARY KEY("key")
);
"""

_CLIENT_COLUMNS = '"id", "uuid", "boot_time", "last_seen", "hostname"'


def _row_to_record(row: sqlite3.Row) -> ClientRecord:
    return ClientRecord(
        id=row["id"],
        uuid=row["uuid"],
        boot_time=row["boot_time"],
        last_seen=row["last_seen"],
        hostname=row["hostname"],
    )


class SqliteRegistry(ClientRegistry):
    """Registry over one sqlite3 connection.

    Blocking sqlite calls run in a worker thread; the asyncio lock keeps
    them strictly one at a time.
    """

    def __init__(self, database: str = "probe.db"):
        self._database = database
        self._conn: sqlite3.Connection | None = None
        self._lock = asyncio.Lock()
        self.logger = get_logger("registry")

    async def connect(self):
        async with self._lock:
            self._conn = await asyncio.to_thread(self._open)
        self.logger.info(f"SQLite registry ready at {self._database}")

    async def close(self):
        async with self._lock:
            if self._conn is not None:
                await asyncio.to_thread(self._conn.close)
                self._conn = None

    def _open(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self._database, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            tables = {
                row["name"]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }
            if "clients" not in tables:
                conn.executescript(CREATE_TABLES)
                conn.execute(
                    'INSERT INTO "pbs_meta" VALUES (?, ?)', ("version", SCHEMA_VERSION)
                )
                conn.commit()
                return conn
            version = None
            if "pbs_meta" in tables:
                row = conn.execute(
                    'SELECT "value" FROM "pbs_meta" WHERE "key" = ?', ("version",)
                ).fetchone()
                version = row["value"] if row else None
        except sqlite3.Error as e:
            raise RegistryError(f"Cannot open database {self._database}: {e}") from e
        if version != SCHEMA_VERSION:
            conn.close()
            raise RegistryError(
                f"Unsupported database version {version!r}, expected {SCHEMA_VERSION}"
            )
        return conn

    async def _run(self, fn: Callable[[sqlite3.Connection], Any]) -> Any:
        """Run ``fn`` against the connection inside the critical section."""
        async with self._lock:
            if self._conn is None:
                raise RegistryError("Registry is not connected")
            conn = self._conn
            try:
                return await asyncio.to_thread(fn, conn)
            except sqlite3.Error as e:
                raise RegistryError(str(e)) from e
            except RegistryError:
                raise
            except Exception as e:
                raise RegistryError(f"{type(e).__name__}: {e}") from e

    async def find_by_uuid(self, uuid: str) -> ClientRecord | None:
        def query(conn):
            row = conn.execute(
                f'SELECT {_CLIENT_COLUMNS} FROM "clients" WHERE "uuid" = ?', (uuid,)
            ).fetchone()
            return _row_to_record(row) if row else None

        return await self._run(query)

    async def register(self, uuid, boot_time, hostname, timestamp) -> ClientRecord:
        def insert(conn):
            try:
                cursor = conn.execute(
                    'INSERT INTO "clients" ("uuid", "boot_time", "last_seen", "hostname") '
                    "VALUES (?, ?, ?, ?)",
                    (uuid, boot_time, timestamp, hostname),
                )
            except sqlite3.IntegrityError as e:
                conn.rollback()
                raise DuplicateRegistration(uuid) from e
            conn.commit()
            return ClientRecord(
                id=cursor.lastrowid,
                uuid=uuid,
                boot_time=boot_time,
                last_seen=timestamp,
                hostname=hostname,
            )

        return await self._run(insert)

    async def update_boot_time(self, client_id, boot_time, timestamp, hostname=None):
        def update(conn):
            if hostname is None:
                cursor = conn.execute(
                    'UPDATE "clients" SET "boot_time" = ?, "last_seen" = ? WHERE "id" = ?',
                    (boot_time, timestamp, client_id),
                )
            else:
                cursor = conn.execute(
                    'UPDATE "clients" SET "boot_time" = ?, "last_seen" = ?, "hostname" = ? '
                    'WHERE "id" = ?',
                    (boot_time, timestamp, hostname, client_id),
                )
            conn.commit()
            if cursor.rowcount == 0:
                raise ClientNotFound(client_id)

        await self._run(update)

    async def touch(self, client_id, timestamp):
        def update(conn):
            cursor = conn.execute(
                'UPDATE "clients" SET "last_seen" = MAX("last_seen", ?) WHERE "id" = ?',
                (timestamp, client_id),
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise ClientNotFound(client_id)

        await self._run(update)

    async def append_sample(self, client_id, payload, timestamp):
        def insert(conn):
            conn.execute(
                'INSERT INTO "raw_data" ("from", "data", "timestamp") VALUES (?, ?, ?)',
                (client_id, payload, timestamp),
            )
            conn.commit()

        await self._run(insert)

    async def list_active_since(self, threshold) -> list[ClientRecord]:
        def query(conn):
            rows = conn.execute(
                f'SELECT {_CLIENT_COLUMNS} FROM "clients" WHERE "last_seen" > ? ORDER BY "id"',
                (threshold,),
            ).fetchall()
            return [_row_to_record(r) for r in rows]

        return await self._run(query)

    async def get_many(self, client_ids: Iterable[int]) -> list[ClientRecord]:
        ids = list(client_ids)
        if not ids:
            return []

        def query(conn):
            placeholders = ", ".join("?" for _ in ids)
            rows = conn.execute(
                f'SELECT {_CLIENT_COLUMNS} FROM "clients" WHERE "id" IN ({placeholders}) '
                'ORDER BY "id"',
                ids,
            ).fetchall()
            return [_row_to_record(r) for r in rows]

        return await self._run(query)
