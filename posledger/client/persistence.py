"""
Persistence Adapter for one account's session.

Every mutation runs in three steps:
    (a) optimistic update of the in-memory repository,
    (b) fire-and-forget push to the remote store,
    (c) mirrored write of the whole collection to the local cache.

A failed push never rolls back (a) or (c). It is logged and appended to an
outbox in the local cache, and later pushes queue behind it until
`replay_outbox()` gets it through. Grouped writes (`transaction()`) reach the
server as one `/api/batch` call that is applied in a single database
transaction.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, Type, TypeVar

from pydantic_core import to_jsonable_python

from posledger.client.local_cache import LocalCache
from posledger.client.remote import RemoteStore
from posledger.core.config import BATCH_SIZE, MAX_ATTEMPTS, POLLING_INTERVAL
from posledger.core.exceptions import RemoteStoreError
from posledger.schemas.records import (
    COLLECTION_SCHEMAS,
    CustomerRecord,
    EmployeeRecord,
    ExpenseRecord,
    IngredientRecord,
    OrderRecord,
    ProductRecord,
    RecordSchema,
    RevenueRecord,
    StockMovementRecord,
    by_field_name,
    new_id,
    utcnow,
    without_nulls,
)
from posledger.schemas.sync import BatchOperation, apply_stock_delta

log = logging.getLogger("persistence")

T = TypeVar("T", bound=RecordSchema)

MIGRATED_FLAG = "migrated"
OUTBOX_KEY = "outbox"
HISTORY_CLEAR_KEY = "history_clear_time"


class Repository(Generic[T]):
    """In-memory collection of one record type. Writes go through the adapter."""

    def __init__(self, adapter: "PersistenceAdapter", name: str, schema: Type[T]):
        self._adapter = adapter
        self.name = name
        self.schema = schema
        self._items: List[T] = []

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def all(self) -> List[T]:
        return list(self._items)

    def get(self, record_id: str) -> Optional[T]:
        return next((r for r in self._items if r.id == record_id), None)

    def find(self, predicate: Callable[[T], bool]) -> Optional[T]:
        return next((r for r in self._items if predicate(r)), None)

    def filter(self, predicate: Callable[[T], bool]) -> List[T]:
        return [r for r in self._items if predicate(r)]

    # --- single-record writes (one REST call each) ---

    def add(self, record: T) -> T:
        """Insert-or-replace."""
        self._adapter.write(upsert_op(self.name, record))
        return self.get(record.id)

    def update(self, record_id: str, **changes: Any) -> T:
        if self.get(record_id) is None:
            raise ValueError(f"{self.name} record {record_id} not found")
        self._adapter.write(update_op(self.name, record_id, changes))
        return self.get(record_id)

    def remove(self, record_id: str) -> None:
        self._adapter.write(BatchOperation(collection=self.name, action="delete", id=record_id))

    # --- used by the adapter only ---

    def _replace_all(self, rows: List[Dict[str, Any]]) -> None:
        self._items = [self.schema.model_validate(without_nulls(row)) for row in rows]

    def _put(self, record: T) -> None:
        for index, existing in enumerate(self._items):
            if existing.id == record.id:
                self._items[index] = record
                return
        self._items.append(record)

    def _apply(self, op: BatchOperation) -> None:
        if op.action == "upsert":
            self._put(self.schema.model_validate({**op.data, "id": op.id}))
        elif op.action == "update":
            current = self.get(op.id)
            if current is not None:
                changes = by_field_name(self.schema, op.data)
                self._put(self.schema.model_validate({**current.model_dump(), **changes}))
        elif op.action == "delete":
            self._items = [r for r in self._items if r.id != op.id]
        elif op.action == "adjust":
            current = self.get(op.id)
            if current is not None:
                new_qty = apply_stock_delta(current.stock_quantity, op.delta, op.floor)
                self._put(current.model_copy(update={"stock_quantity": new_qty}))


def as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def history_cleared_since(value: Any) -> datetime:
    """Stored clear time: an ISO string, or epoch milliseconds from older caches."""
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return as_utc(datetime.fromisoformat(value))


def upsert_op(collection: str, record: RecordSchema) -> BatchOperation:
    return BatchOperation(collection=collection, action="upsert", id=record.id, data=record.model_dump(mode="json"))


def update_op(collection: str, record_id: str, changes: Dict[str, Any]) -> BatchOperation:
    return BatchOperation(collection=collection, action="update", id=record_id, data=to_jsonable_python(changes))


class UnitOfWork:
    """Writes staged inside `PersistenceAdapter.transaction()`; nothing is applied until the block exits."""

    def __init__(self):
        self.operations: List[BatchOperation] = []

    def upsert(self, collection: str, record: RecordSchema) -> None:
        self.operations.append(upsert_op(collection, record))

    def update(self, collection: str, record_id: str, **changes: Any) -> None:
        self.operations.append(update_op(collection, record_id, changes))

    def delete(self, collection: str, record_id: str) -> None:
        self.operations.append(BatchOperation(collection=collection, action="delete", id=record_id))

    def adjust(self, ingredient_id: str, delta: float, floor: Optional[float] = None) -> None:
        self.operations.append(
            BatchOperation(collection="ingredients", action="adjust", id=ingredient_id, delta=delta, floor=floor)
        )


class PersistenceAdapter:
    def __init__(
        self,
        account_id: str,
        remote: RemoteStore,
        cache: LocalCache,
        max_attempts: int = MAX_ATTEMPTS,
        batch_size: int = BATCH_SIZE,
    ):
        self.account_id = account_id
        self.remote = remote
        self.cache = cache
        self.max_attempts = max_attempts
        self.batch_size = batch_size
        self.repositories: Dict[str, Repository] = {
            name: Repository(self, name, schema) for name, schema in COLLECTION_SCHEMAS.items()
        }
        self._push_lock = asyncio.Lock()
        self._inflight = set()
        self._unsubscribe = cache.subscribe(self._on_cache_change)

    # --- repositories ---

    @property
    def ingredients(self) -> Repository[IngredientRecord]:
        return self.repositories["ingredients"]

    @property
    def products(self) -> Repository[ProductRecord]:
        return self.repositories["products"]

    @property
    def revenues(self) -> Repository[RevenueRecord]:
        return self.repositories["revenues"]

    @property
    def expenses(self) -> Repository[ExpenseRecord]:
        return self.repositories["expenses"]

    @property
    def stock_movements(self) -> Repository[StockMovementRecord]:
        return self.repositories["stock_movements"]

    @property
    def employees(self) -> Repository[EmployeeRecord]:
        return self.repositories["employees"]

    @property
    def customers(self) -> Repository[CustomerRecord]:
        return self.repositories["customers"]

    @property
    def orders(self) -> Repository[OrderRecord]:
        return self.repositories["orders"]

    def cache_key(self, name: str) -> str:
        return self.cache.key(self.account_id, name)

    # --- reads ---

    async def load(self) -> str:
        """
        Loads every collection from the remote store and mirrors it locally.
        Any remote failure falls back to the local cache. Returns the source used.
        """
        try:
            fetched = {name: await self.remote.fetch_all(name) for name in self.repositories}
        except RemoteStoreError as e:
            log.warning(f"Remote store unavailable for {self.account_id} ({e}); loading from local cache.")
            self.load_from_cache()
            return "local"

        self.load_snapshot(fetched)
        for name in self.repositories:
            self._mirror(name)
        return "remote"

    def load_snapshot(self, snapshot: Dict[str, List[Dict[str, Any]]]) -> None:
        for name, repository in self.repositories.items():
            repository._replace_all(snapshot.get(name) or [])

    def load_from_cache(self) -> None:
        self.load_snapshot(self.snapshot_from_cache())

    def snapshot_from_cache(self) -> Dict[str, List[Dict[str, Any]]]:
        return {name: self.cache.get(self.cache_key(name), []) for name in self.repositories}

    # --- writes ---

    def write(self, op: BatchOperation) -> None:
        """Single-record mutation: memory, remote push (not awaited), local mirror."""
        self.repositories[op.collection]._apply(op)
        self._schedule([op], batched=False)
        self._mirror(op.collection)

    @asynccontextmanager
    async def transaction(self):
        """
        Groups writes. If the block raises, nothing is applied anywhere.
        On exit every staged operation is applied to memory and the local cache,
        then pushed as one batch.
        """
        uow = UnitOfWork()
        yield uow
        self._commit(uow.operations)

    def _commit(self, operations: List[BatchOperation]) -> None:
        if not operations:
            return
        for op in operations:
            self.repositories[op.collection]._apply(op)
        self._schedule(operations, batched=True)
        for name in dict.fromkeys(op.collection for op in operations):
            self._mirror(name)

    def _mirror(self, name: str) -> None:
        rows = [r.model_dump(mode="json") for r in self.repositories[name]]
        self.cache.set(self.cache_key(name), rows, origin=self)

    def _schedule(self, operations: List[BatchOperation], batched: bool) -> None:
        task = asyncio.get_running_loop().create_task(self._push(new_id(), operations, batched))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _push(self, batch_id: str, operations: List[BatchOperation], batched: bool) -> None:
        # asyncio.Lock wakes waiters in FIFO order, so pushes leave in write order
        async with self._push_lock:
            if self.pending_outbox():
                self._enqueue_outbox(batch_id, operations)
                await self._replay_locked()
                return
            try:
                if batched:
                    await self.remote.apply_batch(batch_id, operations)
                else:
                    await self.remote.execute(operations[0])
            except RemoteStoreError as e:
                log.warning(f"Remote write failed for {self.account_id} ({e}); local state kept, queued for replay.")
                self._enqueue_outbox(batch_id, operations)

    async def drain(self) -> None:
        """Waits for every scheduled remote push to finish."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight))

    # --- outbox ---

    def pending_outbox(self) -> List[Dict[str, Any]]:
        return self.cache.get(self.cache_key(OUTBOX_KEY), [])

    def _save_outbox(self, entries: List[Dict[str, Any]]) -> None:
        self.cache.set(self.cache_key(OUTBOX_KEY), entries, origin=self)

    def _enqueue_outbox(self, batch_id: str, operations: List[BatchOperation]) -> None:
        entries = self.pending_outbox()
        entries.append({
            "batch_id": batch_id,
            "operations": [op.model_dump(mode="json") for op in operations],
            "attempts": 0,
        })
        self._save_outbox(entries)

    def clear_outbox(self) -> None:
        self._save_outbox([])

    async def replay_outbox(self) -> int:
        """Replays failed writes in order. Returns how many batches got through."""
        async with self._push_lock:
            return await self._replay_locked()

    async def _replay_locked(self) -> int:
        settled = set()
        attempts: Dict[str, int] = {}
        replayed = 0
        for entry in self.pending_outbox():
            if replayed >= self.batch_size:
                break
            batch_id = entry["batch_id"]
            operations = [BatchOperation.model_validate(op) for op in entry["operations"]]
            try:
                await self.remote.apply_batch(batch_id, operations)
            except RemoteStoreError as e:
                tries = entry["attempts"] + 1
                if tries >= self.max_attempts:
                    log.error(f"Dropping outbox batch {batch_id} after {tries} attempts: {e}")
                    settled.add(batch_id)
                    continue
                log.warning(f"Outbox replay stalled at batch {batch_id} (attempt {tries}): {e}")
                attempts[batch_id] = tries
                break
            settled.add(batch_id)
            replayed += 1
        self._settle_outbox(settled, attempts)
        return replayed

    def _settle_outbox(self, settled: set, attempts: Dict[str, int]) -> None:
        # Re-read: other sessions on this cache may have queued batches during the replay
        entries = [entry for entry in self.pending_outbox() if entry["batch_id"] not in settled]
        for entry in entries:
            if entry["batch_id"] in attempts:
                entry["attempts"] = max(entry["attempts"], attempts[entry["batch_id"]])
        self._save_outbox(entries)

    # --- migration flag ---

    @property
    def migrated(self) -> bool:
        return bool(self.cache.get(self.cache_key(MIGRATED_FLAG), False))

    def mark_migrated(self) -> None:
        self.cache.set(self.cache_key(MIGRATED_FLAG), True, origin=self)

    # --- order history view ---

    def clear_history_view(self, at: Optional[datetime] = None) -> datetime:
        """Hides orders up to `at` from the history view. Nothing is deleted."""
        at = as_utc(at or utcnow())
        self.cache.set(self.cache.key(None, HISTORY_CLEAR_KEY), at.isoformat(), origin=self)
        return at

    def visible_orders(self) -> List[OrderRecord]:
        cleared = self.cache.get(self.cache.key(None, HISTORY_CLEAR_KEY))
        if not cleared:
            return self.orders.all()
        since = history_cleared_since(cleared)
        return self.orders.filter(lambda o: o.date > since)

    # --- same-cache sessions ---

    def _on_cache_change(self, key: str, value: Any, origin: Optional[object]) -> None:
        if origin is self:
            return
        for name, repository in self.repositories.items():
            if key == self.cache_key(name):
                repository._replace_all(value or [])
                log.info(f"Resynced {name} for {self.account_id} from a concurrent session.")

    def close(self) -> None:
        self._unsubscribe()


async def run_outbox_replayer(adapter: PersistenceAdapter, interval: int = POLLING_INTERVAL):
    """Main loop for the outbox replayer."""
    log.info(f"--- Outbox Replayer Started for {adapter.account_id} ---")

    while True:
        try:
            replayed = await adapter.replay_outbox()
            if replayed:
                log.info(f"Outbox replayed {replayed} batch(es).")
        except Exception as e:
            log.error(f"Outbox replayer error: {e}")

        await asyncio.sleep(interval)
