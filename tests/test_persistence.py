import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from posledger.client.local_cache import LocalCache
from posledger.client.persistence import PersistenceAdapter, run_outbox_replayer
from posledger.client.remote import RemoteStore
from posledger.schemas.records import ExpenseRecord, IngredientRecord, OrderRecord, ProductRecord, RecipeLine

ACCOUNT = "store-1"


def slow_unreachable_transport(delay):
    """Requests hang for `delay` seconds, then fail as if the server were down."""
    async def handler(request):
        await asyncio.sleep(delay)
        raise httpx.ConnectError("Connection refused", request=request)
    return httpx.MockTransport(handler)


@pytest.fixture
async def offline(offline_remote, cache):
    adapter = PersistenceAdapter(ACCOUNT, offline_remote, cache)
    yield adapter
    await adapter.drain()
    adapter.close()


class TestLoad:
    @pytest.mark.asyncio
    async def test_falls_back_to_local_cache(self, offline, cache):
        cache.set(cache.key(ACCOUNT, "ingredients"), [{"id": "beef", "name": "Ground Beef", "stockQuantity": 10}])

        assert await offline.load() == "local"
        assert offline.ingredients.get("beef").stock_quantity == 10
        assert len(offline.orders) == 0

    @pytest.mark.asyncio
    async def test_server_error_also_falls_back(self, cache):
        remote = RemoteStore(ACCOUNT, base_url="http://test", transport=httpx.MockTransport(lambda request: httpx.Response(503)))
        adapter = PersistenceAdapter(ACCOUNT, remote, cache)
        try:
            assert await adapter.load() == "local"
        finally:
            adapter.close()
            await remote.aclose()

    @pytest.mark.asyncio
    async def test_remote_load_mirrors_locally(self, store, remote, tmp_path):
        store.ingredients.add(IngredientRecord(id="beef", name="Ground Beef", stock_quantity=10))
        await store.drain()

        other_cache = LocalCache(root=str(tmp_path / "other"))
        adapter = PersistenceAdapter(ACCOUNT, remote, other_cache)
        try:
            assert await adapter.load() == "remote"
            assert adapter.ingredients.get("beef").name == "Ground Beef"
            assert other_cache.get(other_cache.key(ACCOUNT, "ingredients"))[0]["id"] == "beef"
        finally:
            adapter.close()


class TestOptimisticWrites:
    @pytest.mark.asyncio
    async def test_write_is_visible_before_push(self, store, remote):
        store.ingredients.add(IngredientRecord(id="beef", name="Ground Beef", stock_quantity=10))

        assert store.ingredients.get("beef") is not None
        assert store.cache.get(store.cache_key("ingredients"))[0]["id"] == "beef"

        await store.drain()
        assert [r["id"] for r in await remote.fetch_all("ingredients")] == ["beef"]

    @pytest.mark.asyncio
    async def test_update_unknown_record_raises(self, store):
        with pytest.raises(ValueError):
            store.ingredients.update("nope", name="x")

    @pytest.mark.asyncio
    async def test_failed_transaction_block_applies_nothing(self, store):
        with pytest.raises(RuntimeError):
            async with store.transaction() as uow:
                uow.upsert("ingredients", IngredientRecord(id="beef"))
                raise RuntimeError("boom")

        assert len(store.ingredients) == 0
        assert store.pending_outbox() == []


class TestOutbox:
    @pytest.mark.asyncio
    async def test_failed_push_keeps_local_state_and_queues(self, offline, cache):
        offline.ingredients.add(IngredientRecord(id="beef", name="Ground Beef", stock_quantity=10))
        await offline.drain()

        assert offline.ingredients.get("beef").stock_quantity == 10
        assert cache.get(cache.key(ACCOUNT, "ingredients"))[0]["id"] == "beef"
        [entry] = offline.pending_outbox()
        assert entry["operations"][0]["id"] == "beef"

    @pytest.mark.asyncio
    async def test_writes_queue_in_order(self, offline):
        offline.ingredients.add(IngredientRecord(id="a"))
        offline.ingredients.add(IngredientRecord(id="b"))
        async with offline.transaction() as uow:
            uow.adjust("a", 5)
        await offline.drain()

        queued = [entry["operations"][0] for entry in offline.pending_outbox()]
        assert [(op["id"], op["action"]) for op in queued] == [("a", "upsert"), ("b", "upsert"), ("a", "adjust")]
        assert offline.ingredients.get("a").stock_quantity == 5

    @pytest.mark.asyncio
    async def test_replay_once_remote_is_back(self, offline, cache, remote):
        offline.ingredients.add(IngredientRecord(id="beef", name="Ground Beef", stock_quantity=10))
        async with offline.transaction() as uow:
            uow.adjust("beef", -0.15)
        await offline.drain()
        assert len(offline.pending_outbox()) == 2

        online = PersistenceAdapter(ACCOUNT, remote, cache)
        try:
            assert await online.replay_outbox() == 2
            assert online.pending_outbox() == []
        finally:
            online.close()

        [beef] = await remote.fetch_all("ingredients")
        assert beef["stock_quantity"] == pytest.approx(9.85)

    @pytest.mark.asyncio
    async def test_entry_dropped_after_max_attempts(self, offline_remote, cache):
        adapter = PersistenceAdapter(ACCOUNT, offline_remote, cache, max_attempts=2)
        try:
            adapter.ingredients.add(IngredientRecord(id="beef"))
            await adapter.drain()

            assert await adapter.replay_outbox() == 0
            assert adapter.pending_outbox()[0]["attempts"] == 1
            assert await adapter.replay_outbox() == 0
            assert adapter.pending_outbox() == []
        finally:
            adapter.close()

    @pytest.mark.asyncio
    async def test_replay_keeps_batches_queued_by_another_session(self, offline_remote, cache):
        """A session queueing a write while another replays must not lose it"""
        slow = RemoteStore(ACCOUNT, base_url="http://test", transport=slow_unreachable_transport(0.2))
        replaying = PersistenceAdapter(ACCOUNT, slow, cache)
        other = PersistenceAdapter(ACCOUNT, offline_remote, cache)
        try:
            replaying.expenses.add(ExpenseRecord(id="e1", amount=10))
            await replaying.drain()

            replay = asyncio.create_task(replaying.replay_outbox())
            await asyncio.sleep(0.05)
            other.expenses.add(ExpenseRecord(id="e2", amount=20))
            await other.drain()

            assert await replay == 0
            queued = [entry["operations"][0]["id"] for entry in replaying.pending_outbox()]
            assert queued == ["e1", "e2"]
            assert replaying.pending_outbox()[0]["attempts"] == 1
        finally:
            replaying.close()
            other.close()
            await slow.aclose()


class TestOutboxReplayer:
    @pytest.mark.asyncio
    async def test_loop_survives_errors(self, offline):
        replay = AsyncMock(side_effect=[RuntimeError("boom"), 1, asyncio.CancelledError()])
        with patch.object(offline, "replay_outbox", replay):
            with pytest.raises(asyncio.CancelledError):
                await run_outbox_replayer(offline, interval=0)

        assert replay.await_count == 3

    @pytest.mark.asyncio
    async def test_loop_flushes_outbox(self, offline, cache, remote):
        offline.ingredients.add(IngredientRecord(id="beef", name="Ground Beef", stock_quantity=10))
        await offline.drain()

        online = PersistenceAdapter(ACCOUNT, remote, cache)
        task = asyncio.create_task(run_outbox_replayer(online, interval=60))
        try:
            for _ in range(100):
                if not online.pending_outbox():
                    break
                await asyncio.sleep(0.01)
            assert online.pending_outbox() == []
        finally:
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            online.close()

        assert [r["id"] for r in await remote.fetch_all("ingredients")] == ["beef"]


class TestSharedCache:
    @pytest.mark.asyncio
    async def test_other_session_resyncs(self, offline, offline_remote, cache):
        other = PersistenceAdapter(ACCOUNT, offline_remote, cache)
        try:
            offline.ingredients.add(IngredientRecord(id="beef", name="Ground Beef"))
            assert other.ingredients.get("beef").name == "Ground Beef"
        finally:
            other.close()

    @pytest.mark.asyncio
    async def test_other_account_untouched(self, offline, offline_remote, cache):
        other = PersistenceAdapter("store-2", offline_remote, cache)
        try:
            offline.ingredients.add(IngredientRecord(id="beef"))
            assert len(other.ingredients) == 0
        finally:
            other.close()


class TestHistoryView:
    @pytest.mark.asyncio
    async def test_clear_hides_without_deleting(self, offline):
        now = datetime.now(timezone.utc)
        offline.orders.add(OrderRecord(id="old", customer_name="Ana", date=now - timedelta(hours=2)))
        offline.orders.add(OrderRecord(id="new", customer_name="Bob", date=now))

        offline.clear_history_view(at=now - timedelta(hours=1))

        assert [o.id for o in offline.visible_orders()] == ["new"]
        assert len(offline.orders) == 2

    @pytest.mark.asyncio
    async def test_nothing_hidden_by_default(self, offline):
        offline.orders.add(OrderRecord(id="o1", customer_name="Ana"))
        assert [o.id for o in offline.visible_orders()] == ["o1"]

    @pytest.mark.asyncio
    async def test_naive_clear_time_is_utc(self, offline):
        now = datetime.now(timezone.utc)
        offline.orders.add(OrderRecord(id="old", customer_name="Ana", date=now - timedelta(hours=2)))
        offline.orders.add(OrderRecord(id="new", customer_name="Bob", date=now))

        offline.clear_history_view(at=(now - timedelta(hours=1)).replace(tzinfo=None))

        assert [o.id for o in offline.visible_orders()] == ["new"]

    @pytest.mark.asyncio
    async def test_epoch_millis_clear_time_from_older_cache(self, offline, cache):
        now = datetime.now(timezone.utc)
        offline.orders.add(OrderRecord(id="old", customer_name="Ana", date=now - timedelta(hours=2)))
        offline.orders.add(OrderRecord(id="new", customer_name="Bob", date=now))

        cleared = int((now - timedelta(hours=1)).timestamp() * 1000)
        cache.set(cache.key(None, "history_clear_time"), cleared)

        assert [o.id for o in offline.visible_orders()] == ["new"]


class TestPartialUpdate:
    @pytest.mark.asyncio
    async def test_legacy_key_replaces_field(self, offline):
        offline.products.add(ProductRecord(id="burger", recipe=[RecipeLine(ingredient_id="x", quantity=1)]))

        offline.products.update("burger", ingredients=[{"ingredientId": "y", "quantity": 2}])

        assert [line.ingredient_id for line in offline.products.get("burger").recipe] == ["y"]
