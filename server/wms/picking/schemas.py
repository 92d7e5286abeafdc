from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, condecimal


DecimalValue = condecimal(max_digits=14, decimal_places=2)


class PickingCreate(BaseModel):
    sales_order_id: int
    notes: Optional[str] = None


class PickingCreateResponse(BaseModel):
    picking_id: int
    picking_number: str


class PickingProcessLine(BaseModel):
    picking_line_id: int
    qty: DecimalValue = Field(..., gt=0)
    source_location_id: Optional[int] = None


class PickingProcessRequest(BaseModel):
    lines: List[PickingProcessLine] = Field(..., min_length=1)


class PickingLineResponse(BaseModel):
    id: int
    sales_order_line_id: int
    item_id: int
    item_name: str
    location_id: int
    location_code: str
    qty_required: DecimalValue
    qty_picked: DecimalValue
    remaining_qty: DecimalValue
    status: str

    model_config = ConfigDict(from_attributes=True)


class PickingResponse(BaseModel):
    id: int
    picking_number: str
    sales_order_id: int
    so_number: str
    status: str
    notes: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    total_qty_required: DecimalValue
    total_qty_picked: DecimalValue
    lines: List[PickingLineResponse]
