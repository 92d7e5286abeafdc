from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, condecimal


DecimalValue = condecimal(max_digits=14, decimal_places=2)


class PurchaseOrderLineCreate(BaseModel):
    item_id: int
    quantity: DecimalValue = Field(..., gt=0)
    unit_price: Optional[DecimalValue] = None


class PurchaseOrderLineResponse(BaseModel):
    id: int
    item_id: int
    item_name: str
    quantity: DecimalValue
    unit_price: DecimalValue
    line_total: DecimalValue

    model_config = ConfigDict(from_attributes=True)


class PurchaseOrderCreate(BaseModel):
    supplier_id: int
    order_date: Optional[date] = None
    expected_date: Optional[date] = None
    notes: Optional[str] = None
    lines: List[PurchaseOrderLineCreate]


class PurchaseOrderResponse(BaseModel):
    id: int
    po_number: str
    supplier_id: int
    status: str
    order_date: date
    expected_date: Optional[date] = None
    notes: Optional[str] = None
    total: DecimalValue
    sent_at: Optional[datetime] = None
    created_at: datetime
    lines: List[PurchaseOrderLineResponse]


class ASNLineCreate(BaseModel):
    item_id: int
    shipped_qty: DecimalValue = Field(..., gt=0)
    unit_price: Optional[DecimalValue] = None


class ASNCreate(BaseModel):
    purchase_order_id: int
    holding_location_id: int
    shipment_date: Optional[date] = None
    expected_arrival_date: Optional[date] = None
    carrier_name: Optional[str] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    lines: List[ASNLineCreate]


class ASNArrive(BaseModel):
    actual_arrival_date: Optional[datetime] = None


class ASNLineResponse(BaseModel):
    id: int
    item_id: int
    item_name: str
    shipped_qty: DecimalValue
    remaining_qty: DecimalValue
    put_away_qty: DecimalValue
    unit_price: DecimalValue
    fee_rate: Decimal
    fee_amount: DecimalValue

    model_config = ConfigDict(from_attributes=True)


class ASNResponse(BaseModel):
    id: int
    asn_number: str
    purchase_order_id: int
    holding_location_id: int
    status: str
    shipment_date: Optional[date] = None
    expected_arrival_date: Optional[date] = None
    actual_arrival_date: Optional[datetime] = None
    carrier_name: Optional[str] = None
    tracking_number: Optional[str] = None
    total_fee_amount: DecimalValue
    lines: List[ASNLineResponse]


class PutawaySuggestionResponse(BaseModel):
    asn_line_id: int
    item_id: int
    item_label: str
    qty: DecimalValue
    location_id: Optional[int] = None
    location_code: Optional[str] = None
    available_capacity: Optional[DecimalValue] = None

    model_config = ConfigDict(from_attributes=True)


class PutawayLine(BaseModel):
    asn_line_id: int
    qty: DecimalValue = Field(..., gt=0)
    location_id: int


class PutawayRequest(BaseModel):
    lines: List[PutawayLine] = Field(..., min_length=1)
