import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, status
from tortoise.exceptions import DoesNotExist, IntegrityError

from posledger.api.v1.deps import require_account
from posledger.schemas.records import COLLECTION_SCHEMAS
from posledger.schemas.response import SuccessResponse
from posledger.schemas.sync import StockAdjustRequest
from posledger.services.sync_service import (
    adjust_stock,
    delete_record,
    list_records,
    update_record,
    upsert_record,
)

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger("uvicorn")


def build_collection_router(collection: str) -> APIRouter:
    """
    Per-collection REST surface, scoped by account:
    GET list, POST insert-or-replace, PUT partial update, DELETE.
    """
    schema = COLLECTION_SCHEMAS[collection]
    router = APIRouter(prefix=f"/{collection}")

    @router.get("", response_model=SuccessResponse, name=f"list_{collection}")
    async def list_endpoint(account_id: str = Depends(require_account)):
        """Full list for the account."""
        try:
            return SuccessResponse(data=await list_records(collection, account_id))
        except Exception as e:
            log.error(f"Error fetching {collection}: {e}")
            raise HTTPException(status_code=500, detail=f"Server failed to fetch {collection}.")

    @router.post("", response_model=SuccessResponse, name=f"upsert_{collection}")
    async def upsert_endpoint(record: schema, account_id: str = Depends(require_account)):
        """Insert-or-replace one record. The account id is injected server-side."""
        try:
            await upsert_record(collection, account_id, record)
            return SuccessResponse(data={"id": record.id})
        except (IntegrityError, DoesNotExist) as e:
            # Ids are global primary keys; the create lost to a row of another account
            log.error(f"Id conflict inserting into {collection}: {e}")
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"{collection} id {record.id} is already in use.")
        except Exception as e:
            log.error(f"Error inserting into {collection}: {e}")
            raise HTTPException(status_code=500, detail=f"Server failed to save {collection} record.")

    @router.put("/{record_id}", response_model=SuccessResponse, name=f"update_{collection}")
    async def update_endpoint(
        record_id: str,
        changes: Dict[str, Any] = Body(...),
        account_id: str = Depends(require_account),
    ):
        """Partial update of one record."""
        try:
            updated = await update_record(collection, account_id, record_id, changes)
        except ValueError as e:
            log.error(f"Value error updating {collection}/{record_id}: {e}")
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            log.error(f"Error updating {collection}/{record_id}: {e}")
            raise HTTPException(status_code=500, detail=f"Server failed to update {collection} record.")

        if updated is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{collection} record {record_id} not found.")
        return SuccessResponse(data=updated.model_dump(mode="json"))

    @router.delete("/{record_id}", response_model=SuccessResponse, name=f"delete_{collection}")
    async def delete_endpoint(record_id: str, account_id: str = Depends(require_account)):
        """Removes one record. Deleting a missing record still succeeds."""
        try:
            deleted = await delete_record(collection, account_id, record_id)
            return SuccessResponse(data={"deleted": deleted})
        except Exception as e:
            log.error(f"Error deleting from {collection}: {e}")
            raise HTTPException(status_code=500, detail=f"Server failed to delete {collection} record.")

    if collection == "ingredients":

        @router.post("/{record_id}/adjust", response_model=SuccessResponse, name="adjust_ingredient_stock")
        async def adjust_endpoint(
            record_id: str,
            payload: StockAdjustRequest,
            account_id: str = Depends(require_account),
        ):
            """Atomic stock increment/decrement, optionally clamped at `floor`."""
            try:
                new_qty = await adjust_stock(account_id, record_id, payload.delta, payload.floor)
            except Exception as e:
                log.error(f"Error adjusting stock for {record_id}: {e}")
                raise HTTPException(status_code=500, detail="Server failed to adjust stock.")

            if new_qty is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Ingredient {record_id} not found.")
            return SuccessResponse(data={"id": record_id, "stock_quantity": new_qty})

    return router


routers = [build_collection_router(name) for name in COLLECTION_SCHEMAS]
