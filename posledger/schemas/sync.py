from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, Field

from posledger.schemas.records import RecordSchema, new_id


class BatchOperation(RecordSchema):
    """One write against one record. 'adjust' adds delta to an ingredient's stock."""
    collection: str
    action: Literal["upsert", "update", "delete", "adjust"]
    id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    delta: float = 0
    floor: Optional[float] = None # Clamp for 'adjust'; None lets stock go negative


class BatchRequest(RecordSchema):
    batch_id: str = Field(default_factory=new_id)
    operations: List[BatchOperation] = Field(default_factory=list)


class StockAdjustRequest(RecordSchema):
    delta: float
    floor: Optional[float] = None


class MigrationRequest(RecordSchema):
    """Full locally cached snapshot of one account. Rows stay raw until back-filled."""
    account_id: str = Field(
        validation_alias=AliasChoices("account_id", "accountId", "userId", "user_id")
    )
    ingredients: List[Dict[str, Any]] = Field(default_factory=list)
    products: List[Dict[str, Any]] = Field(default_factory=list)
    revenues: List[Dict[str, Any]] = Field(default_factory=list)
    expenses: List[Dict[str, Any]] = Field(default_factory=list)
    stock_movements: List[Dict[str, Any]] = Field(default_factory=list)
    employees: List[Dict[str, Any]] = Field(default_factory=list)
    customers: List[Dict[str, Any]] = Field(default_factory=list)
    orders: List[Dict[str, Any]] = Field(default_factory=list)


def apply_stock_delta(current: float, delta: float, floor: Optional[float] = None) -> float:
    """
    New stock after an 'adjust'. With a floor, a decrement stops at the floor
    and never raises stock that already sits below it.
    """
    new_qty = current + delta
    if floor is not None and new_qty < floor:
        new_qty = max(new_qty, min(floor, current))
    return new_qty
