from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from wms.auth import require_module
from wms.db import get_db, run_with_retry
from wms.errors import FulfillmentError, http_exception
from wms.inventory import schemas
from wms.inventory.service import get_available_locations, get_item, set_inventory_status
from wms.models import Inventory, User
from wms.module_keys import ModuleKey
from wms.movements.service import transfer_stock
from wms.statuses import InventoryStatus


router = APIRouter(prefix="/api/inventory", tags=["inventory"])

require_inventory = require_module(ModuleKey.INVENTORY.value)


@router.get("/available-locations", response_model=List[schemas.AvailableLocationResponse])
def available_locations(
    item_id: int = Query(...),
    min_quantity: Optional[Decimal] = Query(default=None, gt=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_inventory),
):
    try:
        get_item(db, current_user.company_id, item_id)
    except FulfillmentError as exc:
        raise http_exception(exc)
    return get_available_locations(db, current_user.company_id, item_id, min_quantity)


@router.get("", response_model=List[schemas.InventoryRecordResponse])
def list_inventory_records(
    item_id: Optional[int] = None,
    location_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_inventory),
):
    query = db.query(Inventory).filter(Inventory.company_id == current_user.company_id)
    if item_id is not None:
        query = query.filter(Inventory.item_id == item_id)
    if location_id is not None:
        query = query.filter(Inventory.location_id == location_id)
    return query.order_by(Inventory.created_at.asc(), Inventory.id.asc()).all()


@router.post("/transfer", response_model=schemas.StockTransferResponse)
def transfer_stock_endpoint(
    payload: schemas.StockTransferCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_inventory),
):
    try:
        result = run_with_retry(
            lambda: transfer_stock(
                db,
                current_user.company_id,
                item_id=payload.item_id,
                from_location_id=payload.from_location_id,
                to_location_id=payload.to_location_id,
                qty=payload.qty,
                notes=payload.notes,
            )
        )
    except FulfillmentError as exc:
        db.rollback()
        raise http_exception(exc)
    db.commit()
    return result


@router.patch("/{inventory_id}/status", response_model=schemas.InventoryRecordResponse)
def update_inventory_status(
    inventory_id: int,
    payload: schemas.InventoryStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_inventory),
):
    try:
        record = set_inventory_status(
            db,
            current_user.company_id,
            inventory_id,
            InventoryStatus(payload.status),
            payload.notes,
        )
    except FulfillmentError as exc:
        db.rollback()
        raise http_exception(exc)
    db.commit()
    db.refresh(record)
    return record
