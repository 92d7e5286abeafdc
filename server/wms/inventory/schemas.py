from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, condecimal


DecimalValue = condecimal(max_digits=14, decimal_places=2)


class AvailableLocationResponse(BaseModel):
    location_id: int
    location_code: str
    location_name: str
    inventory_id: int
    available_stock: DecimalValue
    unit_cost: DecimalValue
    max_capacity: DecimalValue
    current_capacity: DecimalValue
    available_capacity: DecimalValue
    is_full: bool
    stocked_at: datetime


class InventoryRecordResponse(BaseModel):
    id: int
    item_id: int
    location_id: int
    quantity: DecimalValue
    status: str
    unit_cost: DecimalValue
    total_value: DecimalValue
    source_reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    last_updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InventoryStatusUpdate(BaseModel):
    status: Literal["AVAILABLE", "RESERVED", "DAMAGED", "QUARANTINE", "BLOCKED"]
    notes: Optional[str] = None


class StockTransferCreate(BaseModel):
    item_id: int
    from_location_id: int
    to_location_id: int
    qty: DecimalValue = Field(..., gt=0)
    notes: Optional[str] = None


class StockTransferResponse(BaseModel):
    item_id: int
    from_location_id: int
    to_location_id: int
    qty: DecimalValue
    unit_cost: DecimalValue
    source_qty_before: DecimalValue
    source_qty_after: DecimalValue
    dest_qty_before: DecimalValue
    dest_qty_after: DecimalValue

    model_config = ConfigDict(from_attributes=True)


class CapacityDriftResponse(BaseModel):
    location_id: int
    code: str
    stored: DecimalValue
    actual: DecimalValue


class CapacityRecomputeResponse(BaseModel):
    checked_location_id: Optional[int] = None
    drifted: List[CapacityDriftResponse]
