import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError

from posledger.api.v1.deps import require_account
from posledger.schemas.response import SuccessResponse
from posledger.schemas.sync import BatchRequest, MigrationRequest
from posledger.services.sync_service import apply_batch, import_snapshot

router = APIRouter()
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger("uvicorn")


@router.post("/migrate", response_model=SuccessResponse)
async def migrate_endpoint(snapshot: MigrationRequest):
    """
    Bulk-imports a locally cached snapshot for one account.
    Every row of every collection is inserted-or-replaced in a single transaction;
    any failure rolls the whole import back.
    """
    try:
        counts = await import_snapshot(snapshot)
        return SuccessResponse(data={"message": "Migration complete", "imported": counts})
    except ValidationError as e:
        log.error(f"Migration rejected for account {snapshot.account_id}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Migration snapshot has invalid rows.")
    except Exception as e:
        log.error(f"Migration failed for account {snapshot.account_id}: {e}")
        raise HTTPException(status_code=500, detail="Migration failed")


@router.post("/batch", response_model=SuccessResponse)
async def batch_endpoint(batch: BatchRequest, account_id: str = Depends(require_account)):
    """
    Applies a group of writes (one checkout, one reversal, one stock entry...)
    inside one transaction. Replaying an already applied batch id is a no-op.
    """
    try:
        applied = await apply_batch(account_id, batch.batch_id, batch.operations)
        return SuccessResponse(data={"batch_id": batch.batch_id, "applied": applied})
    except (ValueError, ValidationError) as e:
        log.error(f"Value error applying batch {batch.batch_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        log.error(f"Error applying batch {batch.batch_id}: {e}")
        raise HTTPException(status_code=500, detail="Server failed to apply batch.")
