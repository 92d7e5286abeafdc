from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from wms.auth import require_module
from wms.db import get_db, run_with_retry
from wms.errors import FulfillmentError, http_exception
from wms.models import Picking, User
from wms.module_keys import ModuleKey
from wms.picking import schemas
from wms.picking.service import cancel_picking, create_picking, get_picking, get_picking_by_sales_order, process_picking


router = APIRouter(prefix="/api/pickings", tags=["pickings"])

require_picking = require_module(ModuleKey.PICKING.value)


def _to_response(picking: Picking) -> schemas.PickingResponse:
    return schemas.PickingResponse(
        id=picking.id,
        picking_number=picking.picking_number,
        sales_order_id=picking.sales_order_id,
        so_number=picking.sales_order.so_number,
        status=picking.status,
        notes=picking.notes,
        created_at=picking.created_at,
        completed_at=picking.completed_at,
        cancelled_at=picking.cancelled_at,
        total_qty_required=picking.total_qty_required,
        total_qty_picked=picking.total_qty_picked,
        lines=[
            schemas.PickingLineResponse(
                id=line.id,
                sales_order_line_id=line.sales_order_line_id,
                item_id=line.item_id,
                item_name=line.item.name if line.item else f"Item #{line.item_id}",
                location_id=line.location_id,
                location_code=line.location.code if line.location else f"Location #{line.location_id}",
                qty_required=line.qty_required,
                qty_picked=line.qty_picked,
                remaining_qty=line.remaining_qty,
                status=line.status,
            )
            for line in picking.lines
        ],
    )


@router.post("", response_model=schemas.PickingCreateResponse, status_code=status.HTTP_201_CREATED)
def create_picking_endpoint(
    payload: schemas.PickingCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_picking),
):
    try:
        picking = run_with_retry(
            lambda: create_picking(db, current_user.company_id, payload.sales_order_id, payload.notes)
        )
    except FulfillmentError as exc:
        db.rollback()
        raise http_exception(exc)
    db.commit()
    return {"picking_id": picking.id, "picking_number": picking.picking_number}


@router.post("/{picking_id}/process", response_model=schemas.PickingResponse)
def process_picking_endpoint(
    picking_id: int,
    payload: schemas.PickingProcessRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_picking),
):
    entries = [line.model_dump() for line in payload.lines]
    try:
        picking = run_with_retry(lambda: process_picking(db, current_user.company_id, picking_id, entries))
    except FulfillmentError as exc:
        db.rollback()
        raise http_exception(exc)
    db.commit()
    return _to_response(get_picking(db, current_user.company_id, picking.id))


@router.post("/{picking_id}/cancel", response_model=schemas.PickingResponse)
def cancel_picking_endpoint(
    picking_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_picking),
):
    try:
        picking = run_with_retry(lambda: cancel_picking(db, current_user.company_id, picking_id))
    except FulfillmentError as exc:
        db.rollback()
        raise http_exception(exc)
    db.commit()
    return _to_response(get_picking(db, current_user.company_id, picking.id))


@router.get("/by-sales-order/{sales_order_id}", response_model=schemas.PickingResponse)
def get_picking_by_sales_order_endpoint(
    sales_order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_picking),
):
    picking = get_picking_by_sales_order(db, current_user.company_id, sales_order_id)
    if not picking:
        raise HTTPException(status_code=404, detail="No picking found for this sales order.")
    return _to_response(picking)


@router.get("/{picking_id}", response_model=schemas.PickingResponse)
def get_picking_endpoint(
    picking_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_picking),
):
    try:
        picking = get_picking(db, current_user.company_id, picking_id)
    except FulfillmentError as exc:
        raise http_exception(exc)
    return _to_response(picking)
