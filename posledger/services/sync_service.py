import logging
from typing import Any, Dict, List, Optional, Type

from tortoise.models import Model
from tortoise.transactions import in_transaction

from posledger.models import COLLECTION_MODELS, AppliedBatch, Ingredient
from posledger.schemas.records import COLLECTION_SCHEMAS, RecordSchema, by_field_name, without_nulls
from posledger.schemas.sync import BatchOperation, MigrationRequest, apply_stock_delta

log = logging.getLogger("sync_service")


def _resolve(collection: str):
    if collection not in COLLECTION_MODELS:
        raise ValueError(f"Unknown collection: {collection}")
    return COLLECTION_MODELS[collection], COLLECTION_SCHEMAS[collection]


def to_record(instance: Model, schema: Type[RecordSchema]) -> RecordSchema:
    """Rehydrates a stored row (JSON columns included) into its record schema."""
    return schema.model_validate({name: getattr(instance, name) for name in schema.model_fields})


async def list_records(collection: str, account_id: str) -> List[Dict[str, Any]]:
    model, schema = _resolve(collection)
    rows = await model.filter(account_id=account_id)
    return [to_record(row, schema).model_dump(mode="json") for row in rows]


async def upsert_record(collection: str, account_id: str, record: RecordSchema, conn: Any = None) -> None:
    """Insert-or-replace one record; the account id is injected here, never taken from the body."""
    model, _ = _resolve(collection)
    values = record.model_dump(exclude={"id"})
    await model.update_or_create(defaults=values, using_db=conn, id=record.id, account_id=account_id)


async def update_record(collection: str, account_id: str, record_id: str, changes: Dict[str, Any], conn: Any = None) -> Optional[RecordSchema]:
    """
    Partial update. The merged record is re-validated so nested JSON fields and
    enums keep their shape. Returns None when the record does not exist.
    """
    model, schema = _resolve(collection)
    instance = await model.filter(id=record_id, account_id=account_id).using_db(conn).first()
    if not instance:
        return None

    current = to_record(instance, schema).model_dump()
    # Merge by field name so camelCase and legacy keys replace the stored value
    patch = {k: v for k, v in by_field_name(schema, changes).items() if k not in ("id", "account_id")}
    merged = schema.model_validate({**current, **patch})

    await instance.update_from_dict(merged.model_dump(exclude={"id"})).save(using_db=conn)
    return merged


async def delete_record(collection: str, account_id: str, record_id: str, conn: Any = None) -> int:
    model, _ = _resolve(collection)
    return await model.filter(id=record_id, account_id=account_id).using_db(conn).delete()


async def adjust_stock(account_id: str, ingredient_id: str, delta: float, floor: Optional[float] = None, conn: Any = None) -> Optional[float]:
    """
    Atomic read-modify-write of one ingredient's stock.
    The row is locked for the duration of the surrounding transaction.
    """
    async def _apply(connection) -> Optional[float]:
        ingredient = await (
            Ingredient.filter(id=ingredient_id, account_id=account_id)
            .using_db(connection)
            .select_for_update()
            .first()
        )
        if not ingredient:
            return None

        new_qty = apply_stock_delta(ingredient.stock_quantity, delta, floor)
        ingredient.stock_quantity = new_qty
        await ingredient.save(update_fields=["stock_quantity"], using_db=connection)
        return new_qty

    if conn is not None:
        return await _apply(conn)
    async with in_transaction() as tx:
        return await _apply(tx)


async def _apply_operation(account_id: str, op: BatchOperation, conn: Any) -> None:
    _, schema = _resolve(op.collection)

    if op.action == "upsert":
        record = schema.model_validate({**op.data, "id": op.id})
        await upsert_record(op.collection, account_id, record, conn)
    elif op.action == "update":
        if await update_record(op.collection, account_id, op.id, op.data, conn) is None:
            log.warning(f"Batch update skipped, {op.collection}/{op.id} not found.")
    elif op.action == "delete":
        await delete_record(op.collection, account_id, op.id, conn)
    elif op.action == "adjust":
        if op.collection != "ingredients":
            raise ValueError("Only ingredients support stock adjustments.")
        if await adjust_stock(account_id, op.id, op.delta, op.floor, conn) is None:
            log.warning(f"Batch adjust skipped, ingredient {op.id} not found.")


async def apply_batch(account_id: str, batch_id: str, operations: List[BatchOperation]) -> bool:
    """
    Applies every operation inside one database transaction.
    Returns False when this batch id was already applied (outbox replay).
    """
    async with in_transaction() as conn:
        # Idempotency Check
        if await AppliedBatch.filter(batch_id=batch_id).using_db(conn).exists():
            log.info(f"Idempotency: batch {batch_id} already applied.")
            return False

        for op in operations:
            await _apply_operation(account_id, op, conn)

        await AppliedBatch.create(
            account_id=account_id,
            batch_id=batch_id,
            operations=len(operations),
            using_db=conn,
        )
    log.info(f"Batch {batch_id} applied ({len(operations)} operations) for account {account_id}.")
    return True


async def import_snapshot(snapshot: MigrationRequest) -> Dict[str, int]:
    """
    One-time bulk import of a locally cached snapshot.
    Insert-or-replace for every row of every collection, all in one transaction.
    """
    counts: Dict[str, int] = {}
    async with in_transaction() as conn:
        for collection, schema in COLLECTION_SCHEMAS.items():
            rows = getattr(snapshot, collection)
            for row in rows:
                record = schema.model_validate(without_nulls(row))
                await upsert_record(collection, snapshot.account_id, record, conn)
            counts[collection] = len(rows)
    log.info(f"Migration imported {sum(counts.values())} rows for account {snapshot.account_id}.")
    return counts
