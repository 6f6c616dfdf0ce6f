"""Tests for the ingestion handler."""

import json

import pytest

from probe.commands import CommandQueue, Notify, Seen, Terminate
from probe.ingest import IngestionHandler, ProbeRequest, ResultCode
from probe.registry import RegistryError


def _register(uuid="uuid-a", hostname="alpha", boot_time=100, version="1.0"):
    body = None
    if boot_time is not None:
        body = json.dumps({"hostname": hostname, "boot_time": boot_time})
    return ProbeRequest(version=version, action="register", uuid=uuid, body=body)


def _heartbeat(uuid="uuid-a", body=None, version="1.0"):
    return ProbeRequest(version=version, action="heartbeat", uuid=uuid, body=body)


@pytest.fixture
def handler(registry, watchdog_queue, notifier_queue, clock):
    return IngestionHandler(
        registry, watchdog_queue, notifier_queue, minimum_version="1.0", clock=clock
    )


class TestRegister:
    @pytest.mark.asyncio
    async def test_new_client(self, handler, registry, clock):
        outcome = await handler.handle(_register())
        assert outcome.code is ResultCode.OK
        record = await registry.find_by_uuid("uuid-a")
        assert record.boot_time == 100
        assert record.hostname == "alpha"
        assert record.last_seen == int(clock.now)
        assert outcome.command == Notify(f"alpha ({record.id}: uuid-a) comes online")

    @pytest.mark.asyncio
    async def test_new_client_without_body(self, handler, registry):
        outcome = await handler.handle(_register(boot_time=None))
        record = await registry.find_by_uuid("uuid-a")
        assert record.boot_time == 0
        assert record.hostname is None
        assert outcome.command == Notify(f"(no hostname) ({record.id}: uuid-a) comes online")

    @pytest.mark.asyncio
    async def test_unparsable_body_does_not_reject(self, handler, registry):
        req = ProbeRequest(version="1.0", action="register", uuid="uuid-a", body="{oops")
        outcome = await handler.handle(req)
        assert outcome.code is ResultCode.OK
        assert await registry.find_by_uuid("uuid-a") is not None

    @pytest.mark.asyncio
    async def test_same_boot_time_is_noop(self, handler, registry, clock):
        await handler.handle(_register())
        before = await registry.find_by_uuid("uuid-a")
        clock.advance(60)

        outcome = await handler.handle(_register())
        assert outcome.code is ResultCode.OK
        assert outcome.command is None
        assert await registry.find_by_uuid("uuid-a") == before

    @pytest.mark.asyncio
    async def test_reboot_detected(self, handler, registry, clock):
        await handler.handle(_register())
        clock.advance(300)

        outcome = await handler.handle(_register(hostname="alpha-2", boot_time=400))
        record = await registry.find_by_uuid("uuid-a")
        assert record.boot_time == 400
        assert record.last_seen == int(clock.now)
        assert record.hostname == "alpha-2"
        assert outcome.command == Notify(f"alpha-2 ({record.id}: uuid-a) comes online")

    @pytest.mark.asyncio
    async def test_reregister_without_body_is_noop(self, handler, registry):
        await handler.handle(_register())
        outcome = await handler.handle(_register(boot_time=None))
        assert outcome.command is None
        assert (await registry.find_by_uuid("uuid-a")).boot_time == 100

    @pytest.mark.asyncio
    async def test_out_of_range_boot_time_registers_without_body(self, handler, registry):
        outcome = await handler.handle(_register(boot_time=2 ** 64))
        assert outcome.code is ResultCode.OK
        record = await registry.find_by_uuid("uuid-a")
        assert record.boot_time == 0
        assert record.hostname is None
        assert isinstance(outcome.command, Notify)

    @pytest.mark.asyncio
    async def test_out_of_range_boot_time_on_reregister_is_noop(self, handler, registry):
        await handler.handle(_register())
        before = await registry.find_by_uuid("uuid-a")

        outcome = await handler.handle(_register(boot_time=-(2 ** 63) - 1))
        assert outcome.code is ResultCode.OK
        assert outcome.command is None
        assert await registry.find_by_uuid("uuid-a") == before

    @pytest.mark.asyncio
    async def test_ingest_dispatches_one_notify(self, handler, notifier_queue, watchdog_queue):
        response = await handler.ingest(_register())
        assert response.status == 200
        assert notifier_queue.qsize() == 1
        assert watchdog_queue.qsize() == 0
        assert isinstance(await notifier_queue.get(), Notify)


class TestHeartbeat:
    @pytest.mark.asyncio
    async def test_unregistered(self, handler, registry):
        outcome = await handler.handle(_heartbeat(uuid="ghost", body="data"))
        assert outcome.code is ResultCode.NOT_REGISTERED
        assert outcome.command is None
        assert await registry.find_by_uuid("ghost") is None
        assert await registry.list_active_since(0) == []

    @pytest.mark.asyncio
    async def test_touches_and_signals_watchdog(self, handler, registry, clock):
        await handler.handle(_register())
        clock.advance(30)
        outcome = await handler.handle(_heartbeat())
        record = await registry.find_by_uuid("uuid-a")
        assert outcome.code is ResultCode.OK
        assert outcome.command == Seen(record.id)
        assert record.last_seen == int(clock.now)

    @pytest.mark.asyncio
    async def test_stores_sample(self, handler, registry, clock):
        await handler.handle(_register())
        await handler.handle(_heartbeat(body='{"cpu": 3}'))
        rows = registry._conn.execute('SELECT "data", "timestamp" FROM "raw_data"').fetchall()
        assert [tuple(r) for r in rows] == [('{"cpu": 3}', int(clock.now))]

    @pytest.mark.asyncio
    async def test_no_sample_without_body(self, handler, registry):
        await handler.handle(_register())
        await handler.handle(_heartbeat())
        rows = registry._conn.execute('SELECT COUNT(*) FROM "raw_data"').fetchone()
        assert rows[0] == 0

    @pytest.mark.asyncio
    async def test_ingest_routes_seen(self, handler, watchdog_queue):
        await handler.handle(_register())
        response = await handler.ingest(_heartbeat())
        assert response.to_dict()["status"] == 200
        assert isinstance(await watchdog_queue.get(), Seen)

    @pytest.mark.asyncio
    async def test_full_queue_does_not_fail_request(self, registry, notifier_queue, clock):
        tiny = CommandQueue("watchdog", maxsize=1)
        handler = IngestionHandler(registry, tiny, notifier_queue, clock=clock)
        await handler.handle(_register())
        for _ in range(3):
            response = await handler.ingest(_heartbeat())
            assert response.status == 200
        assert tiny.qsize() == 1


class TestRejections:
    @pytest.mark.asyncio
    async def test_unsupported_action(self, handler):
        await handler.handle(_register())
        req = ProbeRequest(version="1.0", action="reboot", uuid="uuid-a")
        outcome = await handler.handle(req)
        assert outcome.code is ResultCode.UNSUPPORTED_METHOD

    @pytest.mark.asyncio
    async def test_unknown_action_for_unknown_client(self, handler):
        req = ProbeRequest(version="1.0", action="reboot", uuid="ghost")
        outcome = await handler.handle(req)
        assert outcome.code is ResultCode.NOT_REGISTERED

    @pytest.mark.asyncio
    async def test_old_version_rejected_without_mutation(self, handler, registry):
        outcome = await handler.handle(_register(version="0.9"))
        assert outcome.code is ResultCode.VERSION_MISMATCH
        assert await registry.find_by_uuid("uuid-a") is None

    @pytest.mark.asyncio
    async def test_error_response(self, handler):
        response = await handler.ingest(_heartbeat(uuid="ghost"))
        assert response.status == 400
        assert response.message == "Not registered client"

    def test_invalid_minimum_version(self, registry, watchdog_queue, notifier_queue):
        with pytest.raises(ValueError):
            IngestionHandler(registry, watchdog_queue, notifier_queue, minimum_version="x")

    def test_dispatch_rejects_terminate(self, handler):
        with pytest.raises(ValueError):
            handler.dispatch(Terminate())


class TestStorageFailures:
    @pytest.mark.asyncio
    async def test_registry_error_propagates(self, handler, registry):
        await registry.close()
        with pytest.raises(RegistryError):
            await handler.handle(_heartbeat())
