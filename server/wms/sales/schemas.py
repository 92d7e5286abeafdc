from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, condecimal


DecimalValue = condecimal(max_digits=14, decimal_places=2)


class SalesOrderLineCreate(BaseModel):
    item_id: int
    quantity: DecimalValue = Field(..., gt=0)
    unit_price: Optional[DecimalValue] = None


class SalesOrderCreate(BaseModel):
    customer_id: int
    holding_location_id: Optional[int] = None
    order_date: Optional[date] = None
    required_date: Optional[date] = None
    notes: Optional[str] = None
    lines: List[SalesOrderLineCreate]


class HoldingLocationAssign(BaseModel):
    location_id: int


class SalesOrderLineResponse(BaseModel):
    id: int
    item_id: int
    quantity: DecimalValue
    unit_price: DecimalValue

    model_config = ConfigDict(from_attributes=True)


class SalesOrderResponse(BaseModel):
    id: int
    so_number: str
    customer_id: int
    holding_location_id: Optional[int] = None
    status: str
    order_date: date
    required_date: Optional[date] = None
    shipped_at: Optional[datetime] = None
    notes: Optional[str] = None
    total_amount: DecimalValue
    lines: List[SalesOrderLineResponse]

    model_config = ConfigDict(from_attributes=True)
